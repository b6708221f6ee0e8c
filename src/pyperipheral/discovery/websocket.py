"""Websocket (JSON-RPC 2.0) discovery adapter.

Speaks the device-manager dialect used by Scratch Link style helpers:

* ``request_scan`` sends a ``discover`` request with the scan filters;
* every ``didDiscoverPeripheral`` notification becomes a one-entry batch;
* if no peripheral shows up within ``discovery_timeout`` seconds of a scan
  request, the scan-timeout signal is emitted;
* losing the connection emits the scan-timeout signal too.

The reader runs as a task on the caller's event loop, so events reach the
engine on its own thread.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from pyperipheral._constants import DEFAULT_WEBSOCKET_URL, DISCOVERY_TIMEOUT_S
from pyperipheral.discovery import BatchHandler, TimeoutHandler, Unsubscribe, _Subscribers
from pyperipheral.exceptions import DiscoveryProtocolError, DiscoveryTransportError

_logger = logging.getLogger(__name__)

DiscoverParams = Callable[[str], dict[str, Any]]


def default_discover_params(target_id: str) -> dict[str, Any]:
    """Filter peripherals by advertised name prefix."""
    if not target_id:
        return {"filters": []}
    return {"filters": [{"namePrefix": target_id}]}


def parse_rpc_message(text: str) -> dict[str, Any]:
    """Parse one JSON-RPC frame.

    Raises
    ------
    DiscoveryProtocolError
        If the frame is not a JSON object.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DiscoveryProtocolError(f"Frame is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise DiscoveryProtocolError("Frame is not a JSON object")
    return parsed


class WebsocketDiscoverySource:
    """Discovery source backed by an aiohttp websocket.

    Usage::

        async with WebsocketDiscoverySource(url) as source:
            async with ScanEngine(config, source) as engine:
                ...
    """

    def __init__(
        self,
        url: str = DEFAULT_WEBSOCKET_URL,
        *,
        session: aiohttp.ClientSession | None = None,
        discover_params: DiscoverParams = default_discover_params,
        discovery_timeout: float = DISCOVERY_TIMEOUT_S,
    ) -> None:
        self._url = url
        self._external_session = session is not None
        self._http_session = session
        self._discover_params = discover_params
        self._discovery_timeout = discovery_timeout
        self._subscribers = _Subscribers()
        self._ids = itertools.count(1)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._sends: set[asyncio.Task[None]] = set()
        self._closing = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> WebsocketDiscoverySource:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        """Open the websocket and start reading notifications."""
        self._loop = asyncio.get_running_loop()
        self._closing = False
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        try:
            self._ws = await self._http_session.ws_connect(self._url)
        except aiohttp.WSServerHandshakeError as exc:
            raise DiscoveryTransportError(
                f"Websocket handshake failed: {exc.message}",
                status_code=exc.status,
                endpoint=self._url,
            ) from exc
        except aiohttp.ClientError as exc:
            raise DiscoveryTransportError(f"Websocket connection failed: {exc}", endpoint=self._url) from exc
        _logger.debug("Websocket discovery connected url=%s", self._url)
        self._reader = asyncio.create_task(self._read_loop(), name="pyperipheral-ws-reader")

    async def close(self) -> None:
        self._closing = True
        self._cancel_discovery_timeout()

        reader = self._reader
        self._reader = None
        if reader is not None:
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        for task in list(self._sends):
            task.cancel()
        self._sends.clear()

        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            await ws.close()

        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._loop = None

    # ------------------------------------------------------------------
    # DiscoverySource
    # ------------------------------------------------------------------

    def subscribe(self, on_batch: BatchHandler, on_timeout: TimeoutHandler) -> Unsubscribe:
        return self._subscribers.add(on_batch, on_timeout)

    def request_scan(self, target_id: str) -> None:
        loop = self._loop
        if loop is None or not self.is_connected:
            raise DiscoveryTransportError("Websocket discovery source is not connected", endpoint=self._url)

        request = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "discover",
            "params": self._discover_params(target_id),
        }
        task = loop.create_task(self._send(request))
        self._sends.add(task)
        task.add_done_callback(self._on_send_done)

        self._cancel_discovery_timeout()
        self._timeout_handle = loop.call_later(self._discovery_timeout, self._on_discovery_timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _send(self, message: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            raise DiscoveryTransportError("Websocket closed before send", endpoint=self._url)
        await ws.send_str(json.dumps(message))

    def _on_send_done(self, task: asyncio.Task[None]) -> None:
        self._sends.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.warning("Websocket scan request failed: %s", exc)

    def _cancel_discovery_timeout(self) -> None:
        handle = self._timeout_handle
        self._timeout_handle = None
        if handle is not None:
            handle.cancel()

    def _on_discovery_timeout(self) -> None:
        self._timeout_handle = None
        _logger.debug("Websocket discovery timed out after %.1fs", self._discovery_timeout)
        self._subscribers.emit_timeout()

    def handle_message(self, message: dict[str, Any]) -> None:
        """Process one decoded JSON-RPC frame."""
        if "error" in message:
            _logger.warning("Discovery request %s failed: %s", message.get("id"), message.get("error"))
            return

        if message.get("method") != "didDiscoverPeripheral":
            return

        params = message.get("params")
        if not isinstance(params, dict):
            _logger.debug("didDiscoverPeripheral without params: %r", message)
            return
        peripheral_id = params.get("peripheralId")
        if not isinstance(peripheral_id, str) or not peripheral_id:
            _logger.debug("didDiscoverPeripheral without peripheralId: %r", params)
            return

        self._cancel_discovery_timeout()
        self._subscribers.emit_batch({peripheral_id: params})

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    message = parse_rpc_message(msg.data)
                except DiscoveryProtocolError:
                    _logger.debug("Dropping websocket frame", exc_info=True)
                    continue
                self.handle_message(message)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                _logger.warning("Websocket discovery error: %s", ws.exception())
                break
        if self._closing:
            _logger.debug("Websocket discovery reader stopped")
            return
        _logger.warning("Websocket discovery connection lost url=%s", self._url)
        self._cancel_discovery_timeout()
        self._subscribers.emit_timeout()
