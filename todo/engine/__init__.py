"""Remote access to the Asana API."""

from .asana_client import AsanaClient, TaskFilter

__all__ = ["AsanaClient", "TaskFilter"]
