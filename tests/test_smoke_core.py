from __future__ import annotations

import unittest
from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

import tshtraces
import tshtraces.cli as cli
from tshtraces.progress import build_statusbar
from tshtraces.protocols import protocol_table


class TestSmokeCore(unittest.TestCase):
    def test_version_consistency(self) -> None:
        pyproject_path = Path(__file__).resolve().parents[1] / "pyproject.toml"
        data = tomllib.loads(pyproject_path.read_text(encoding="utf-8"))
        self.assertEqual(data["project"]["version"], tshtraces.__version__)

    def test_public_api(self) -> None:
        for name in tshtraces.__all__:
            self.assertTrue(hasattr(tshtraces, name), name)
        self.assertTrue(issubclass(tshtraces.TraceFileError, OSError))
        self.assertTrue(issubclass(tshtraces.CorruptTraceError, tshtraces.TshError))

    def test_protocol_table_ships_with_package(self) -> None:
        self.assertEqual(protocol_table()[6], "TCP")
        self.assertGreater(len(protocol_table()), 100)

    def test_banner_mentions_version(self) -> None:
        self.assertIn(tshtraces.__version__, cli._build_banner())


class TestStatusBar(unittest.TestCase):
    def test_label_names_the_trace(self) -> None:
        bar = build_statusbar(Path("/data/ODU-1073132115.tsh"), 10, enabled=False)
        self.assertEqual(bar.label, "Processing ODU-1073132115.tsh")
        self.assertFalse(bar.enabled)
