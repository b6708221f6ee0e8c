"""Normalization helpers.

Centralizes defensive parsing of scalar payload values.
"""

from __future__ import annotations

import math
from typing import Any


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text if text else None
