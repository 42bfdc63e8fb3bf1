"""
Observability for the todo client.

Provides:
- configure_logging: JSON or human log output on stderr
- CommandContext: per-invocation command id stamped on log records
"""

from .context import CommandContext, generate_command_id, get_command_id
from .logging import HumanFormatter, JSONFormatter, configure_logging

__all__ = [
    "CommandContext",
    "HumanFormatter",
    "JSONFormatter",
    "configure_logging",
    "generate_command_id",
    "get_command_id",
]
