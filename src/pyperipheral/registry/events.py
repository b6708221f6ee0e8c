"""Normalized discovery events.

Every discovery adapter converts its input into these events. Only the
registry is allowed to merge them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pyperipheral.models.peripheral import PeripheralObservation


class DiscoveryBatch(BaseModel):
    """An incremental batch of observations keyed by peripheral identifier.

    An empty batch is valid: it still means the discovery source is alive.
    """

    model_config = ConfigDict(frozen=True)

    observations: dict[str, PeripheralObservation] = Field(default_factory=dict)
    raw: dict[Any, Any] = Field(default_factory=dict, description="Original payload (as received)")

    def __len__(self) -> int:
        return len(self.observations)

    @property
    def is_empty(self) -> bool:
        return not self.observations
