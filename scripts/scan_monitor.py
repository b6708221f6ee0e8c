#!/usr/bin/env python3
"""Live peripheral list monitor.

Runs the scan engine against an MQTT scanning gateway or a websocket
device manager and prints the ranked peripheral list every time it changes.

Examples::

    python scripts/scan_monitor.py --mqtt-host broker.local --target ev3
    python scripts/scan_monitor.py --websocket wss://localhost:20110/scratch/ble --target LEGO
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyperipheral import EngineState, ScanConfig, ScanEngine  # noqa: E402
from pyperipheral.discovery.mqtt import MqttDiscoverySource  # noqa: E402
from pyperipheral.discovery.websocket import WebsocketDiscoverySource  # noqa: E402
from pyperipheral.exceptions import PeripheralError  # noqa: E402

_LOG = logging.getLogger("scan_monitor")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print the ranked list of nearby peripherals as it changes.",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--mqtt-host",
        help="MQTT broker fed by a scanning gateway (default: PYPERIPHERAL_MQTT_HOST).",
    )
    source.add_argument(
        "--websocket",
        metavar="URL",
        help="Websocket device manager URL (JSON-RPC discover/didDiscoverPeripheral).",
    )
    parser.add_argument(
        "--target",
        default=None,
        help="Scan target identifier (default: PYPERIPHERAL_TARGET_ID).",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--bars",
        type=int,
        default=None,
        help="Number of signal bars to draw (default: PYPERIPHERAL_BAR_COUNT or 4).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args(argv)


def _bar_count(args: argparse.Namespace, config: ScanConfig) -> int:
    return args.bars if args.bars is not None else config.bar_count


def _render(state: EngineState, bar_count: int) -> None:
    status = "scanning" if state.scanning else "idle"
    print(f"[monitor] {status} - {len(state.snapshot)} peripheral(s)")
    for entry in state.snapshot:
        level = entry.signal_level(bar_count)
        bars = "#" * level + "." * (max(1, bar_count) - level)
        marker = " (stale)" if entry.is_stale else ""
        print(f"[monitor]   {bars} {entry.signal_label:<14} {entry.display_name} [{entry.peripheral_id}]{marker}")


async def _run(args: argparse.Namespace, config: ScanConfig) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)
    if args.duration > 0:
        loop.call_later(args.duration, stop.set)

    bar_count = _bar_count(args, config)

    def on_state(state: EngineState) -> None:
        _render(state, bar_count)

    if args.websocket:
        async with WebsocketDiscoverySource(args.websocket) as ws_source:
            async with ScanEngine(config, ws_source, on_state=on_state):
                await stop.wait()
        return

    mqtt_source = MqttDiscoverySource(config.broker, loop=loop, logger=_LOG)
    mqtt_source.start()
    try:
        async with ScanEngine(config, mqtt_source, on_state=on_state):
            await stop.wait()
    finally:
        mqtt_source.stop()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.target is not None:
        overrides["target_id"] = args.target
    try:
        config = ScanConfig.from_env(**overrides)
        if args.mqtt_host:
            config = dataclasses.replace(config, broker=dataclasses.replace(config.broker, host=args.mqtt_host))
        asyncio.run(_run(args, config))
    except PeripheralError as exc:
        print(f"[monitor] {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
