"""MQTT discovery adapter.

Talks to a scanning gateway through a broker:

* ``<prefix>/scan``        -- we publish ``{"target": "<target id>"}``
* ``<prefix>/peripherals`` -- the gateway publishes ``{id: observation, ...}``
* ``<prefix>/timeout``     -- the gateway publishes when a scan gave up

paho runs its own network thread; decoded messages are handed to the
asyncio loop with ``call_soon_threadsafe`` so the engine only ever sees them
on its own thread.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Literal, cast

import paho.mqtt.client as mqtt

from pyperipheral.config import BrokerProfile
from pyperipheral.discovery import BatchHandler, TimeoutHandler, Unsubscribe, _Subscribers
from pyperipheral.exceptions import DiscoveryProtocolError, DiscoveryTransportError


@dataclass(frozen=True)
class DiscoveryTopics:
    scan: str
    peripherals: str
    timeout: str

    @classmethod
    def for_prefix(cls, prefix: str) -> DiscoveryTopics:
        base = prefix.strip().rstrip("/")
        return cls(scan=f"{base}/scan", peripherals=f"{base}/peripherals", timeout=f"{base}/timeout")


@dataclass(frozen=True)
class DiscoveryMessage:
    """Decoded inbound MQTT message."""

    kind: Literal["batch", "timeout"]
    topic: str
    batch: dict[str, Any] = dataclasses.field(default_factory=dict)


def decode_discovery_message(topic: str, payload: bytes, topics: DiscoveryTopics) -> DiscoveryMessage:
    """Decode an inbound message.

    Raises
    ------
    DiscoveryProtocolError
        For unknown topics or batch payloads that are not a JSON object.
    """
    if topic == topics.timeout:
        return DiscoveryMessage(kind="timeout", topic=topic)
    if topic != topics.peripherals:
        raise DiscoveryProtocolError(f"Unexpected topic {topic!r}")

    text = payload.decode("utf-8", errors="replace").strip()
    if not text:
        # Gateways publish an empty body as a keep-alive batch.
        return DiscoveryMessage(kind="batch", topic=topic)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DiscoveryProtocolError(f"Peripheral batch is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise DiscoveryProtocolError("Peripheral batch is not a JSON object")
    return DiscoveryMessage(kind="batch", topic=topic, batch=parsed)


def encode_scan_request(target_id: str) -> str:
    return json.dumps({"target": target_id}, separators=(",", ":"))


class MqttDiscoverySource:
    """Threaded paho-mqtt discovery source that delivers events onto an asyncio loop."""

    def __init__(
        self,
        broker: BrokerProfile,
        *,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._broker = broker
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._topics = DiscoveryTopics.for_prefix(broker.topic_prefix)
        self._subscribers = _Subscribers()
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is running."""
        return self._running

    @property
    def topics(self) -> DiscoveryTopics:
        return self._topics

    def subscribe(self, on_batch: BatchHandler, on_timeout: TimeoutHandler) -> Unsubscribe:
        return self._subscribers.add(on_batch, on_timeout)

    def request_scan(self, target_id: str) -> None:
        client = self._client
        if client is None or not self._running:
            raise DiscoveryTransportError("MQTT discovery source is not running", endpoint=self._topics.scan)
        info = client.publish(self._topics.scan, encode_scan_request(target_id), qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise DiscoveryTransportError(
                f"Scan request publish failed rc={info.rc}",
                status_code=info.rc,
                endpoint=self._topics.scan,
            )
        self._logger.debug("MQTT scan request published topic=%s target=%s", self._topics.scan, target_id)

    def _dispatch(self, message: DiscoveryMessage) -> None:
        if message.kind == "timeout":
            self._subscribers.emit_timeout()
            return
        self._subscribers.emit_batch(message.batch)

    def _on_disconnect(
        self,
        _client: Any,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if not self._running:
            return
        # stop() clears _running first, so this is a lost connection.
        self._logger.warning("MQTT discovery connection lost: %s", reason_code)
        self._loop.call_soon_threadsafe(self._subscribers.emit_timeout)

    def start(self) -> None:
        """Connect, subscribe and start paho's network thread."""
        self.stop()
        broker = self._broker
        self._logger.debug("MQTT discovery start requested broker=%s", broker.redacted())

        client_id = broker.client_id or f"pyperipheral-{secrets.token_hex(4)}"
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if broker.username:
            client.username_pw_set(broker.username, broker.password)
        if broker.tls:
            client.tls_set()

        topics = self._topics

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected; subscribing %s and %s", topics.peripherals, topics.timeout)
            c.subscribe([(topics.peripherals, 0), (topics.timeout, 0)])

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                message = decode_discovery_message(msg.topic, msg.payload, topics)
            except DiscoveryProtocolError:
                self._logger.debug("Dropping MQTT discovery message topic=%s", msg.topic, exc_info=True)
                return
            self._loop.call_soon_threadsafe(self._dispatch, message)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = self._on_disconnect

        try:
            client.connect(broker.host, broker.port, keepalive=broker.keepalive)
        except OSError as exc:
            raise DiscoveryTransportError(
                f"Could not connect to MQTT broker {broker.host}:{broker.port}: {exc}",
                endpoint=f"{broker.host}:{broker.port}",
            ) from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
