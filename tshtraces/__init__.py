"""Analyze IP traffic traces in TSH format."""

from __future__ import annotations

from .diagnostics import verbose
from .errors import (
    ConsistencyError,
    CorruptTraceError,
    MalformedRecordError,
    NonMonotonicTimestampError,
    ProtocolTableError,
    ReportError,
    TooManyCollisionsError,
    TraceFileError,
    TshError,
)
from .trace import get_trace_summary, process_trace, records_in
from .reporting import write_trace_summary
from .utils import date_of, get_ip_address

__all__ = [
    "__version__",
    "ConsistencyError",
    "CorruptTraceError",
    "MalformedRecordError",
    "NonMonotonicTimestampError",
    "ProtocolTableError",
    "ReportError",
    "TooManyCollisionsError",
    "TraceFileError",
    "TshError",
    "date_of",
    "get_ip_address",
    "get_trace_summary",
    "process_trace",
    "records_in",
    "verbose",
    "write_trace_summary",
]
__version__ = "0.4.0"
