"""
Command context management.

Each CLI invocation runs under one command id so log lines from the cache,
resolver and remote client can be correlated.
"""

import contextvars
import uuid

_command_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "command_id", default=None
)


def get_command_id() -> str | None:
    """Get the current command ID from context."""
    return _command_id_var.get()


def set_command_id(command_id: str) -> contextvars.Token:
    """Set the command ID in context. Returns token for reset."""
    return _command_id_var.set(command_id)


def generate_command_id() -> str:
    return f"cmd-{uuid.uuid4().hex[:12]}"


class CommandContext:
    """
    Context manager for command-scoped operations.

    Usage:
        with CommandContext(name="list") as ctx:
            logger.info("Listing tasks")  # carries ctx.command_id
    """

    def __init__(self, name: str | None = None, command_id: str | None = None):
        self.name = name
        self.command_id = command_id or generate_command_id()
        self._token: contextvars.Token | None = None

    def __enter__(self) -> "CommandContext":
        self._token = set_command_id(self.command_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _command_id_var.reset(self._token)
