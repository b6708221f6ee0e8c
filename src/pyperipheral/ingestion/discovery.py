"""Discovery batch ingestion.

Turns the raw ``{identifier: observation}`` mapping a discovery source
delivers into a :class:`~pyperipheral.registry.events.DiscoveryBatch`.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from pyperipheral.ingestion.normalize import safe_str
from pyperipheral.models.peripheral import PeripheralObservation
from pyperipheral.registry.events import DiscoveryBatch

_logger = logging.getLogger(__name__)


def parse_observation(value: Any) -> PeripheralObservation:
    """Validate one observation.

    Anything that is not a usable mapping becomes an empty observation: the
    peripheral was still seen, it just told us nothing new.  Fields that fail
    validation are dropped one by one; the rest of the observation is kept.
    """
    if not isinstance(value, Mapping):
        return PeripheralObservation()
    data = {str(key): item for key, item in value.items()}
    try:
        return PeripheralObservation.model_validate(data)
    except ValidationError as exc:
        rejected = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        _logger.debug("Dropping unparseable observation fields %s", sorted(rejected), exc_info=True)
    kept = {key: item for key, item in data.items() if key not in rejected}
    if len(kept) == len(data):
        return PeripheralObservation()
    return parse_observation(kept)


def observation_patch(observation: PeripheralObservation) -> dict[str, Any]:
    """Dump the merge patch for an observation.

    Only keys the source actually sent are included, ``None`` values
    included: those overwrite.  Keys it left out are absent from the patch
    so the previous values survive.
    """
    dumped = observation.model_dump()
    sent = observation.model_fields_set | set(observation.model_extra or {})
    return copy.deepcopy({key: item for key, item in dumped.items() if key in sent})


def build_batch(payload: Mapping[Any, Any] | DiscoveryBatch | None) -> DiscoveryBatch:
    """Build a discovery batch from a raw payload.

    ``None`` and non-mapping payloads are treated as an empty batch.
    """
    if isinstance(payload, DiscoveryBatch):
        return payload
    if not isinstance(payload, Mapping):
        if payload is not None:
            _logger.debug("Treating non-mapping discovery payload as empty batch: %r", type(payload))
        return DiscoveryBatch()

    observations: dict[str, PeripheralObservation] = {}
    for key, value in payload.items():
        identifier = safe_str(key)
        if identifier is None:
            _logger.debug("Skipping observation with empty identifier")
            continue
        observations[identifier] = parse_observation(value)
    return DiscoveryBatch(observations=observations, raw=dict(payload))
