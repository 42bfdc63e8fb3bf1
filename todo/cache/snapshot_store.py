"""
Durable snapshot cache for the todo client.

Features:
- Whole-snapshot JSON persistence with an explicit schema_version
- Atomic save (temp file + os.replace), so readers never see a torn write
- Schema mismatch or corruption degrades to a cold start, never a crash
- Caller-supplied staleness tolerance
"""

import json
import logging
import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from .. import paths
from ..errors import CacheWriteError, CorruptCache
from ..models import CacheSnapshot

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


def decode_snapshot(text: str, expected_version: int = SCHEMA_VERSION) -> CacheSnapshot:
    """
    Parse a cache document.

    Raises:
        CorruptCache: invalid JSON, wrong schema_version, or malformed fields
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CorruptCache(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise CorruptCache("cache document is not an object")

    version = data.get("schema_version")
    if version != expected_version:
        raise CorruptCache(f"schema_version {version!r} != expected {expected_version}")

    try:
        return CacheSnapshot.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CorruptCache(f"malformed snapshot: {e!r}") from e


def encode_snapshot(snapshot: CacheSnapshot) -> str:
    return json.dumps(snapshot.to_dict(), indent=2) + "\n"


class SnapshotStore:
    """Loads, saves and ages the single cached snapshot."""

    def __init__(self, path: Path | None = None, schema_version: int = SCHEMA_VERSION):
        """
        Initialize the store.

        Args:
            path: Cache file location. Defaults to paths.cache_path().
            schema_version: Version this program reads and writes.
        """
        self.path = Path(path) if path else paths.cache_path()
        self.schema_version = schema_version

    def load(self) -> CacheSnapshot | None:
        """
        Read the persisted snapshot.

        Returns None (cold start) when the file is missing, unreadable, or
        fails validation. Corruption is logged, never raised.
        """
        logger.debug(f"Loading cache from {self.path}...")
        if not self.path.exists():
            logger.info(f"No cache at {self.path}, cold start")
            return None

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read cache at {self.path}, treating as empty: {e}")
            return None

        try:
            snapshot = decode_snapshot(text, self.schema_version)
        except CorruptCache as e:
            logger.warning(f"Discarding cache at {self.path}: {e}")
            return None

        logger.debug(
            f"Loaded snapshot fetched at {snapshot.fetched_at.isoformat()} "
            f"({len(snapshot.tasks)} tasks)"
        )
        return snapshot

    def save(self, snapshot: CacheSnapshot) -> None:
        """
        Atomically persist a snapshot.

        Raises:
            CacheWriteError: the file could not be written; the previous
                snapshot on disk is left untouched
        """
        logger.debug(f"Saving cache to {self.path}...")
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(encode_snapshot(snapshot))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise CacheWriteError(f"Could not write cache to {self.path}: {e}") from e

    def clear(self) -> bool:
        """Delete the cache file. Returns True if a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Cleared cache at {self.path}")
        return True

    @staticmethod
    def age(snapshot: CacheSnapshot, now: datetime | None = None) -> timedelta:
        now = now or datetime.now(UTC)
        return now - snapshot.fetched_at

    @staticmethod
    def is_stale(
        snapshot: CacheSnapshot,
        max_age: timedelta | None,
        now: datetime | None = None,
    ) -> bool:
        """
        Staleness is purely now - fetched_at > max_age.

        max_age=None means any age is acceptable.
        """
        if max_age is None:
            return False
        return SnapshotStore.age(snapshot, now) > max_age
