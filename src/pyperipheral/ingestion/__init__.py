"""Ingestion layer.

This package turns raw discovery payloads into validated models and
merge patches.  Only the registry is allowed to merge them.
"""

__all__: list[str] = []
