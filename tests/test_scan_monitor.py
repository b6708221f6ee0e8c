from __future__ import annotations

import importlib.util
from pathlib import Path

import pytest

from pyperipheral.config import ScanConfig
from pyperipheral.models import EngineState, SnapshotEntry

_SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "scan_monitor.py"


@pytest.fixture(scope="module")
def monitor():
    spec = importlib.util.spec_from_file_location("scan_monitor", _SCRIPT)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_bar_count_defaults_to_config(monitor) -> None:
    args = monitor._parse_args([])

    assert monitor._bar_count(args, ScanConfig(bar_count=8)) == 8
    assert monitor._bar_count(args, ScanConfig()) == 4


def test_bar_count_flag_wins(monitor) -> None:
    args = monitor._parse_args(["--bars", "3"])

    assert monitor._bar_count(args, ScanConfig(bar_count=8)) == 3


def test_render_draws_configured_bars(monitor, capsys: pytest.CaptureFixture[str]) -> None:
    entry = SnapshotEntry(peripheral_id="AA", name="Hub", rssi=-20, last_seen=0.0)

    monitor._render(EngineState(scanning=True, snapshot=(entry,)), 8)

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "[monitor] scanning - 1 peripheral(s)"
    assert "######## -20 dBm" in lines[1]
    assert "Hub [AA]" in lines[1]
