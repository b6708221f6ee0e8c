"""Base model for discovery payloads.

Every inbound discovery model inherits from :class:`PeripheralBaseModel`
which provides:

* ``alias_generator=to_camel`` so camelCase payload keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that turns placeholder values
  (``""``, ``"--"``) on declared fields into ``None``.
* Opaque extra keys, kept exactly as the source sent them.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from pyperipheral.ingestion.normalize import safe_str

# Placeholder strings some discovery gateways send for "not available".
_SENTINELS = frozenset({"", "--"})

OptionalStr = Annotated[str | None, BeforeValidator(safe_str)]
"""Annotated type that coerces scalars to ``str`` and empty values to ``None``."""


class PeripheralBaseModel(BaseModel):
    """Base for discovery payload models.

    Unknown keys are kept (``extra="allow"``): discovery sources attach
    opaque fields that must reach the presentation layer unmodified.

    A key that is present in the payload always counts as set, even when
    its value is ``None`` or a placeholder.  Only absent keys leave the
    previous registry value alone.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @classmethod
    def _declared_keys(cls) -> set[str]:
        keys = set(cls.model_fields)
        keys.update(info.alias for info in cls.model_fields.values() if info.alias)
        return keys

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Map placeholder values on declared fields to ``None``."""
        if not isinstance(values, dict):
            return values
        declared = cls._declared_keys()

        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if key in declared and isinstance(value, str) and value.strip() in _SENTINELS:
                value = None
            cleaned[key] = value
        return cleaned
