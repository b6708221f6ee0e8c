"""Registry layer.

This package is the single source of truth for which peripherals are
currently visible: discovery batches are merged here, aged out here, and
published from here as ordered snapshots.
"""
