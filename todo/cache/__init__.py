"""
Local cache layer for the todo client.

Provides:
- SnapshotStore: durable, atomically written snapshot of remote state
- SCHEMA_VERSION: cache format version this program understands
"""

from .snapshot_store import SCHEMA_VERSION, SnapshotStore, decode_snapshot, encode_snapshot

__all__ = [
    "SCHEMA_VERSION",
    "SnapshotStore",
    "decode_snapshot",
    "encode_snapshot",
]
