"""
Error kinds shared across the cache and synchronization core.

Cache Store and Remote Client raise these; the Synchronization Core is the
only place that decides which ones become a soft fallback and which ones
fail the command.
"""

from dataclasses import dataclass, field
from datetime import datetime


class TodoError(Exception):
    """Base class for all user-facing errors."""

    pass


class NoCacheAvailable(TodoError):
    """Cache-only mode was requested but nothing is persisted."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message or "No cached tasks available. Run a command without --use-cache first."
        )


class AmbiguousSelection(TodoError):
    """The active workspace or focus project cannot be determined uniquely."""

    def __init__(self, message: str, candidates: list[tuple[str, str]] | None = None):
        super().__init__(message)
        self.candidates = candidates or []

    def __str__(self) -> str:
        base = super().__str__()
        if not self.candidates:
            return base
        listed = ", ".join(f"{name} ({gid})" for gid, name in self.candidates)
        return f"{base} Candidates: {listed}"


class RemoteError(TodoError):
    """The remote service rejected a request."""

    def __init__(self, message: str, http_status: int | None = None):
        super().__init__(message)
        self.http_status = http_status


class RemoteUnavailable(RemoteError):
    """Network or transport failure talking to the remote service."""

    pass


class AuthError(TodoError):
    """Credential invalid or expired and cannot be refreshed."""

    pass


class InvalidDateExpression(TodoError):
    """A due date expression could not be understood."""

    def __init__(self, expression: str):
        super().__init__(f"Could not understand date expression: {expression!r}")
        self.expression = expression


class CorruptCache(TodoError):
    """Persisted cache could not be decoded or has the wrong schema version."""

    pass


class CacheWriteError(TodoError):
    """Snapshot could not be persisted; the in-memory copy is still usable."""

    pass


class OfflineModeError(TodoError):
    """A mutating command was requested in cache-only mode."""

    pass


class ConfigError(TodoError):
    """Configuration file is unreadable or malformed."""

    pass


@dataclass
class StaleCacheFallback:
    """
    Soft warning attached to a successful task view.

    Not raised: a refresh attempt failed but an older snapshot was usable.
    """

    reason: str
    fetched_at: datetime | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        when = self.fetched_at.isoformat() if self.fetched_at else "unknown time"
        return f"Showing cached data from {when}: {self.reason}"
