"""State/store layer.

This package is the single source of truth for how vehicle deltas relayed
from upstream are merged into per-(region, vehicle type) snapshots.
"""
