"""Engine and adapter configuration for pyperipheral."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyperipheral._constants import (
    AUTO_RESCAN_INTERVAL_S,
    DEFAULT_BAR_COUNT,
    DEFAULT_TOPIC_PREFIX,
    EXPIRATION_THRESHOLD_S,
    MAINTENANCE_TICK_S,
    STALE_THRESHOLD_S,
)
from pyperipheral.exceptions import ScanConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class BrokerProfile:
    """MQTT broker used by :class:`pyperipheral.discovery.mqtt.MqttDiscoverySource`.

    The broker is expected to be fed by a gateway that performs the actual
    radio scan and publishes JSON batches.
    """

    host: str = "localhost"
    port: int = 1883
    topic_prefix: str = DEFAULT_TOPIC_PREFIX
    keepalive: int = 60
    username: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)
    tls: bool = False
    client_id: str = ""

    def redacted(self) -> dict[str, Any]:
        """Field values safe for debug logs (the password is masked when set)."""
        values = dataclasses.asdict(self)
        if values["password"] is not None:
            values["password"] = "<redacted>"
        return values


@dataclasses.dataclass(frozen=True)
class ScanConfig:
    """Scan engine configuration.

    Parameters
    ----------
    target_id : str
        Identifier passed to the discovery source with every scan request
        (for example the extension id of the peripheral family).
    stale_threshold : float
        Seconds without an observation after which an entry is shown as stale.
    expiration_threshold : float
        Seconds without an observation after which an entry is dropped.
        Must be larger than ``stale_threshold``.
    auto_rescan_interval : float
        Seconds of silence (no batch and no scan request) after which the
        engine asks the discovery source to scan again, keeping the list.
    maintenance_tick : float
        Interval of the maintenance timer.  Must be smaller than
        ``stale_threshold`` so stale transitions surface promptly.
    bar_count : int
        Number of bars used when rendering signal strength.
    broker : BrokerProfile
        Broker settings for the MQTT discovery adapter.
    """

    target_id: str = ""
    stale_threshold: float = STALE_THRESHOLD_S
    expiration_threshold: float = EXPIRATION_THRESHOLD_S
    auto_rescan_interval: float = AUTO_RESCAN_INTERVAL_S
    maintenance_tick: float = MAINTENANCE_TICK_S
    bar_count: int = DEFAULT_BAR_COUNT
    broker: BrokerProfile = dataclasses.field(default_factory=BrokerProfile)

    def __post_init__(self) -> None:
        for name in ("stale_threshold", "expiration_threshold", "auto_rescan_interval", "maintenance_tick"):
            if getattr(self, name) <= 0:
                raise ScanConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.expiration_threshold <= self.stale_threshold:
            raise ScanConfigError(
                f"expiration_threshold ({self.expiration_threshold}) must exceed "
                f"stale_threshold ({self.stale_threshold})"
            )
        if self.maintenance_tick >= self.stale_threshold:
            raise ScanConfigError(
                f"maintenance_tick ({self.maintenance_tick}) must be smaller than "
                f"stale_threshold ({self.stale_threshold})"
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> ScanConfig:
        """Create configuration from environment variables.

        Reads ``PYPERIPHERAL_TARGET_ID``, the ``PYPERIPHERAL_*`` timing
        variables and ``PYPERIPHERAL_MQTT_*`` broker variables.  Explicit
        keyword arguments override environment values.

        Raises
        ------
        ScanConfigError
            If a numeric variable cannot be parsed or the resulting
            windows are inconsistent.
        """
        env = os.environ

        broker_kwargs: dict[str, Any] = {}
        _ENV_BROKER_MAP = {
            "PYPERIPHERAL_MQTT_HOST": "host",
            "PYPERIPHERAL_MQTT_TOPIC_PREFIX": "topic_prefix",
            "PYPERIPHERAL_MQTT_USERNAME": "username",
            "PYPERIPHERAL_MQTT_PASSWORD": "password",
            "PYPERIPHERAL_MQTT_CLIENT_ID": "client_id",
        }
        for env_key, field_name in _ENV_BROKER_MAP.items():
            val = env.get(env_key)
            if val is not None:
                broker_kwargs[field_name] = val

        _ENV_BROKER_INT_MAP = {
            "PYPERIPHERAL_MQTT_PORT": "port",
            "PYPERIPHERAL_MQTT_KEEPALIVE": "keepalive",
        }
        for env_key, field_name in _ENV_BROKER_INT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                try:
                    broker_kwargs[field_name] = int(val)
                except ValueError as exc:
                    raise ScanConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        if "PYPERIPHERAL_MQTT_TLS" in env:
            broker_kwargs["tls"] = _env_bool(env.get("PYPERIPHERAL_MQTT_TLS"), False)

        # Allow overriding broker fields via a nested dict
        broker_overrides = overrides.pop("broker", None)
        if isinstance(broker_overrides, dict):
            broker_kwargs.update(broker_overrides)
        elif isinstance(broker_overrides, BrokerProfile):
            broker_kwargs = dataclasses.asdict(broker_overrides)

        config_kwargs: dict[str, Any] = {"broker": BrokerProfile(**broker_kwargs)}

        target = env.get("PYPERIPHERAL_TARGET_ID")
        if target is not None:
            config_kwargs["target_id"] = target

        _ENV_SECONDS_MAP = {
            "PYPERIPHERAL_STALE_THRESHOLD": "stale_threshold",
            "PYPERIPHERAL_EXPIRATION_THRESHOLD": "expiration_threshold",
            "PYPERIPHERAL_AUTO_RESCAN_INTERVAL": "auto_rescan_interval",
            "PYPERIPHERAL_MAINTENANCE_TICK": "maintenance_tick",
        }
        for env_key, field_name in _ENV_SECONDS_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise ScanConfigError(f"{env_key} must be a number, got {val!r}") from exc

        bars_env = env.get("PYPERIPHERAL_BAR_COUNT")
        if bars_env is not None and "bar_count" not in overrides:
            try:
                config_kwargs["bar_count"] = int(bars_env)
            except ValueError as exc:
                raise ScanConfigError(f"PYPERIPHERAL_BAR_COUNT must be an integer, got {bars_env!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
