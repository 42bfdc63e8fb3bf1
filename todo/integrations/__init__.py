"""Write-back integrations."""

from .asana_writer import AsanaWriter, AsanaWriteResult

__all__ = ["AsanaWriter", "AsanaWriteResult"]
