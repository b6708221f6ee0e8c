"""Peripheral observation model."""

from __future__ import annotations

from typing import Any

from pyperipheral.models._base import OptionalStr, PeripheralBaseModel


class PeripheralObservation(PeripheralBaseModel):
    """One raw observation of a peripheral, as reported by a discovery source.

    Parameters
    ----------
    peripheral_id : str or None
        Identifier reported inside the payload (``peripheralId``).  The key
        the observation was delivered under is used when this is missing.
    name : str or None
        Advertised display name.
    rssi : Any
        Raw signal reading, *not* sanitized; see :func:`pyperipheral.rssi.sanitize_rssi`.

    Any other keys, ``raw`` included, are kept as extra fields and passed
    through unmodified.
    """

    peripheral_id: OptionalStr = None
    name: OptionalStr = None
    rssi: Any = None

    @property
    def extras(self) -> dict[str, Any]:
        """Opaque fields carried by the observation."""
        return dict(self.model_extra or {})
