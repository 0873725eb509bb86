from __future__ import annotations


class TshError(Exception):
    """Base class for every fatal trace-processing condition."""


class TraceFileError(TshError, OSError):
    """The trace, or the dump output, could not be opened."""


class CorruptTraceError(TshError):
    """File size is not a multiple of the TSH record length."""


class MalformedRecordError(TshError):
    """A record could not be decoded (bad length, microseconds >= 1,000,000)."""


class NonMonotonicTimestampError(TshError):
    """Timestamps went back in time while flow extraction was active."""


class TooManyCollisionsError(TshError):
    """Too many payload-carrying segments shared one timestamp on one interface."""


class ConsistencyError(TshError):
    """Packets summed across transport protocols do not match the record count."""


class ProtocolTableError(TshError):
    """The protocol number table is malformed or has duplicate numbers."""


class ReportError(TshError):
    """A report was requested for a summary that holds no usable data."""
