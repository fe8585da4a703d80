"""Ingestion layer.

This package turns upstream realtime broadcasts into normalized delta payloads
for the vehicle state cache.
"""

__all__: list[str] = []
