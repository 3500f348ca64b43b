"""
Bridge package for legacy-export.

Centralizes everything that talks to the source: the bridge contract, the
push-to-pull row stream and the Postgres implementation. Keep this layer
focused on I/O and addressing, decoupled from the state machine.
"""

from legacy_export.bridge.base import Bridge
from legacy_export.bridge.postgres import PostgresBridge, build_dsn
from legacy_export.bridge.stream import Row, RowStream

__all__ = [
    "Bridge",
    "PostgresBridge",
    "Row",
    "RowStream",
    "build_dsn",
]
