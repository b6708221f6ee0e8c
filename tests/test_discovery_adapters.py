from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import aiohttp
import pytest

from pyperipheral.config import BrokerProfile
from pyperipheral.discovery import InMemoryDiscoverySource
from pyperipheral.discovery.mqtt import (
    DiscoveryTopics,
    MqttDiscoverySource,
    decode_discovery_message,
    encode_scan_request,
)
from pyperipheral.discovery.websocket import (
    WebsocketDiscoverySource,
    default_discover_params,
    parse_rpc_message,
)
from pyperipheral.exceptions import DiscoveryProtocolError, DiscoveryTransportError

TOPICS = DiscoveryTopics.for_prefix("lab/scanner/")


class _Collector:
    def __init__(self) -> None:
        self.batches: list[dict] = []
        self.timeouts = 0

    def on_batch(self, batch) -> None:
        self.batches.append(dict(batch))

    def on_timeout(self) -> None:
        self.timeouts += 1


def test_in_memory_source_unsubscribe() -> None:
    source = InMemoryDiscoverySource()
    collector = _Collector()
    unsubscribe = source.subscribe(collector.on_batch, collector.on_timeout)

    source.emit_batch({"a": {}})
    source.emit_timeout()
    unsubscribe()
    source.emit_batch({"b": {}})

    assert collector.batches == [{"a": {}}]
    assert collector.timeouts == 1


def test_topics_for_prefix() -> None:
    assert TOPICS.scan == "lab/scanner/scan"
    assert TOPICS.peripherals == "lab/scanner/peripherals"
    assert TOPICS.timeout == "lab/scanner/timeout"


def test_decode_batch_and_timeout_messages() -> None:
    payload = json.dumps({"AA": {"name": "Hub", "rssi": -51}}).encode()

    batch = decode_discovery_message(TOPICS.peripherals, payload, TOPICS)
    timeout = decode_discovery_message(TOPICS.timeout, b"", TOPICS)
    keepalive = decode_discovery_message(TOPICS.peripherals, b"  ", TOPICS)

    assert batch.kind == "batch"
    assert batch.batch == {"AA": {"name": "Hub", "rssi": -51}}
    assert timeout.kind == "timeout"
    assert keepalive.kind == "batch"
    assert keepalive.batch == {}


@pytest.mark.parametrize(
    ("topic", "payload"),
    [
        ("other/topic", b"{}"),
        (TOPICS.peripherals, b"not json"),
        (TOPICS.peripherals, b"[1, 2]"),
    ],
)
def test_decode_rejects_bad_messages(topic: str, payload: bytes) -> None:
    with pytest.raises(DiscoveryProtocolError):
        decode_discovery_message(topic, payload, TOPICS)


def test_encode_scan_request() -> None:
    assert json.loads(encode_scan_request("ev3")) == {"target": "ev3"}


@pytest.mark.asyncio
async def test_mqtt_source_requires_running_client() -> None:
    source = MqttDiscoverySource(BrokerProfile(), loop=asyncio.get_running_loop())

    assert not source.is_running
    with pytest.raises(DiscoveryTransportError):
        source.request_scan("ev3")
    source.stop()


@pytest.mark.asyncio
async def test_mqtt_source_dispatches_on_loop() -> None:
    source = MqttDiscoverySource(BrokerProfile(topic_prefix="lab/scanner"), loop=asyncio.get_running_loop())
    collector = _Collector()
    source.subscribe(collector.on_batch, collector.on_timeout)

    source._dispatch(decode_discovery_message(TOPICS.peripherals, b'{"a": {"rssi": -40}}', TOPICS))  # noqa: SLF001
    source._dispatch(decode_discovery_message(TOPICS.timeout, b"", TOPICS))  # noqa: SLF001

    assert collector.batches == [{"a": {"rssi": -40}}]
    assert collector.timeouts == 1


@pytest.mark.asyncio
async def test_mqtt_connection_loss_emits_timeout() -> None:
    source = MqttDiscoverySource(BrokerProfile(), loop=asyncio.get_running_loop())
    collector = _Collector()
    source.subscribe(collector.on_batch, collector.on_timeout)

    # Before start() or after stop() a disconnect is expected.
    source._on_disconnect(None, None, None, "normal disconnection", None)  # noqa: SLF001
    await asyncio.sleep(0)
    assert collector.timeouts == 0

    source._running = True  # noqa: SLF001
    source._on_disconnect(None, None, None, "keep alive timeout", None)  # noqa: SLF001
    await asyncio.sleep(0)
    assert collector.timeouts == 1


def test_default_discover_params() -> None:
    assert default_discover_params("LEGO") == {"filters": [{"namePrefix": "LEGO"}]}
    assert default_discover_params("") == {"filters": []}


def test_parse_rpc_message() -> None:
    assert parse_rpc_message('{"jsonrpc": "2.0", "id": 1, "result": null}')["id"] == 1
    with pytest.raises(DiscoveryProtocolError):
        parse_rpc_message("[]")
    with pytest.raises(DiscoveryProtocolError):
        parse_rpc_message("{")


def test_websocket_notifications_become_batches() -> None:
    source = WebsocketDiscoverySource("ws://localhost:1/ble")
    collector = _Collector()
    source.subscribe(collector.on_batch, collector.on_timeout)
    params = {"peripheralId": "AA", "name": "Hub", "rssi": -60}

    source.handle_message({"jsonrpc": "2.0", "method": "didDiscoverPeripheral", "params": params})
    source.handle_message({"jsonrpc": "2.0", "method": "didDiscoverPeripheral", "params": {"name": "no id"}})
    source.handle_message({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "adapter off"}})
    source.handle_message({"jsonrpc": "2.0", "method": "characteristicDidChange", "params": {}})

    assert collector.batches == [{"AA": params}]
    assert collector.timeouts == 0


def test_websocket_request_scan_requires_connection() -> None:
    source = WebsocketDiscoverySource("ws://localhost:1/ble")

    assert not source.is_connected
    with pytest.raises(DiscoveryTransportError):
        source.request_scan("LEGO")


class _FakeWebsocket:
    def __init__(self, frames: list[str] | None = None, *, hold_open: bool = False) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._frames = list(frames or [])
        self._hold_open = hold_open

    def __aiter__(self) -> _FakeWebsocket:
        return self

    async def __anext__(self) -> SimpleNamespace:
        if self._frames:
            return SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=self._frames.pop(0))
        if self._hold_open:
            await asyncio.Event().wait()
        raise StopAsyncIteration

    async def send_str(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_websocket_scan_request_and_discovery_timeout() -> None:
    source = WebsocketDiscoverySource("ws://localhost:1/ble", discovery_timeout=0.05)
    collector = _Collector()
    source.subscribe(collector.on_batch, collector.on_timeout)
    fake_ws = _FakeWebsocket()
    # Bypass connect(); request_scan only needs a loop and an open websocket.
    source._loop = asyncio.get_running_loop()  # type: ignore[attr-defined]
    source._ws = fake_ws  # type: ignore[assignment]

    source.request_scan("LEGO")
    await asyncio.sleep(0.1)

    request = json.loads(fake_ws.sent[0])
    assert request["method"] == "discover"
    assert request["params"] == {"filters": [{"namePrefix": "LEGO"}]}
    assert collector.timeouts == 1

    source.request_scan("LEGO")
    source.handle_message({"method": "didDiscoverPeripheral", "params": {"peripheralId": "AA", "rssi": -40}})
    await asyncio.sleep(0.1)

    assert collector.timeouts == 1
    assert json.loads(fake_ws.sent[1])["id"] == request["id"] + 1

    await source.close()
    assert fake_ws.closed


@pytest.mark.asyncio
async def test_websocket_connection_loss_emits_timeout() -> None:
    source = WebsocketDiscoverySource("ws://localhost:1/ble")
    collector = _Collector()
    source.subscribe(collector.on_batch, collector.on_timeout)
    frame = json.dumps({"method": "didDiscoverPeripheral", "params": {"peripheralId": "AA", "rssi": -40}})
    source._ws = _FakeWebsocket([frame, "not json"])  # type: ignore[assignment]

    await source._read_loop()  # noqa: SLF001

    assert collector.batches == [{"AA": {"peripheralId": "AA", "rssi": -40}}]
    assert collector.timeouts == 1


@pytest.mark.asyncio
async def test_websocket_close_does_not_emit_timeout() -> None:
    source = WebsocketDiscoverySource("ws://localhost:1/ble")
    collector = _Collector()
    source.subscribe(collector.on_batch, collector.on_timeout)
    fake_ws = _FakeWebsocket(hold_open=True)
    source._ws = fake_ws  # type: ignore[assignment]
    source._reader = asyncio.create_task(source._read_loop())  # noqa: SLF001
    await asyncio.sleep(0)

    await source.close()

    assert fake_ws.closed
    assert collector.timeouts == 0
