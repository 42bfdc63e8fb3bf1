"""
Test fixtures for deterministic testing.

This module provides:
- make_snapshot: one-workspace CacheSnapshot with a focus project
- FakeClock: settable clock for SyncEngine
- FakeAsanaClient: in-memory stand-in for AsanaClient with call recording
"""

from .remote import FakeAsanaClient
from .snapshots import NOW, TODAY, FakeClock, make_snapshot

__all__ = ["NOW", "TODAY", "FakeAsanaClient", "FakeClock", "make_snapshot"]
