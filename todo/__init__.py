# todo - Asana task client with an offline cache
"""
Exports for the CLI and other consumers.
"""

from .cache import SnapshotStore
from .config import Config, load_config
from .errors import (
    AmbiguousSelection,
    AuthError,
    NoCacheAvailable,
    RemoteUnavailable,
    StaleCacheFallback,
    TodoError,
)
from .focus import FocusResolver
from .sync import SyncEngine, SyncMode

__version__ = "0.4.0"

__all__ = [
    "AmbiguousSelection",
    "AuthError",
    "Config",
    "FocusResolver",
    "NoCacheAvailable",
    "RemoteUnavailable",
    "SnapshotStore",
    "StaleCacheFallback",
    "SyncEngine",
    "SyncMode",
    "TodoError",
    "load_config",
]
