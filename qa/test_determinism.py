from __future__ import annotations

from pathlib import Path

from tshtraces.reporting import write_trace_summary
from tshtraces.trace import process_trace

FIXTURE = Path(__file__).resolve().parents[1] / "tests" / "fixtures" / "sample_1073132115.tsh.hex"


def _sample(tmp_path: Path) -> Path:
    lines = [line for line in FIXTURE.read_text(encoding="utf-8").splitlines() if not line.startswith("#")]
    trace = tmp_path / "sample_1073132115.tsh"
    trace.write_bytes(bytes.fromhex("".join(lines).replace(" ", "")))
    return trace


def test_repeated_runs_are_identical(tmp_path: Path) -> None:
    trace = _sample(tmp_path)
    first = process_trace(trace, with_flow_extraction=True)
    second = process_trace(trace, with_flow_extraction=True)

    assert first.summary.to_dict() == second.summary.to_dict()
    assert first.indices() == second.indices()

    a = write_trace_summary(first.summary, tmp_path / "a.csv")
    b = write_trace_summary(second.summary, tmp_path / "b.csv")
    assert a.read_bytes() == b.read_bytes()
