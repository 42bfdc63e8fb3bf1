"""
Tests for workspace / focus project resolution.

All remote lookups go through FakeAsanaClient; nothing touches the network.
"""

from unittest.mock import Mock

import pytest

from tests.fixtures import FakeAsanaClient, make_snapshot
from todo.errors import AmbiguousSelection
from todo.focus import FocusResolver, RemoteLookup
from todo.models import ExplicitSelection, Project, Provenance, Workspace


@pytest.fixture
def resolver():
    return FocusResolver()


class TestExplicitOverride:
    """Explicit flags and config always win."""

    def test_complete_override_wins_over_cache(self, resolver):
        """Both ids given: no cache or remote consulted."""
        client = Mock()
        selection = resolver.resolve(
            make_snapshot(),
            ExplicitSelection(workspace_id="ws9", focus_project_id="p9"),
            remote=RemoteLookup(client),
        )
        assert selection.workspace_id == "ws9"
        assert selection.focus_project_id == "p9"
        assert selection.provenance == Provenance.EXPLICIT
        client.fetch_workspaces.assert_not_called()

    def test_project_only_uses_cached_workspace(self, resolver):
        """A project known to the cache takes its workspace from there."""
        selection = resolver.resolve(
            make_snapshot(), ExplicitSelection(focus_project_id="p2"), cache_only=True
        )
        assert selection.workspace_id == "ws1"
        assert selection.focus_project_id == "p2"
        assert selection.provenance == Provenance.EXPLICIT

    def test_project_only_searches_workspaces(self, resolver):
        """An uncached project is found by searching each workspace."""
        client = FakeAsanaClient(
            workspaces=[Workspace(gid="ws1", name="A"), Workspace(gid="ws2", name="B")],
            projects={"ws1": [], "ws2": [Project(gid="p7", name="Home", workspace_gid="ws2")]},
        )
        selection = resolver.resolve(
            None, ExplicitSelection(focus_project_id="p7"), remote=RemoteLookup(client)
        )
        assert selection.workspace_id == "ws2"

    def test_project_only_offline_unknown_project(self, resolver):
        """Offline, an uncached project cannot be placed in a workspace."""
        with pytest.raises(AmbiguousSelection):
            resolver.resolve(
                make_snapshot(), ExplicitSelection(focus_project_id="nope"), cache_only=True
            )


class TestPersistedSelection:
    """The snapshot's selection is reused only while still valid."""

    def test_valid_persisted_selection(self, resolver):
        """A persisted project present in the snapshot is reused without remote calls."""
        client = FakeAsanaClient()
        selection = resolver.resolve(make_snapshot(), remote=RemoteLookup(client))
        assert selection.focus_project_id == "focus1"
        assert selection.provenance == Provenance.CACHED
        assert client.calls == []

    def test_persisted_project_missing_from_snapshot(self, resolver):
        """A persisted project that no longer exists is re-resolved remotely."""
        snapshot = make_snapshot(selected_focus_project_id="deleted")
        client = FakeAsanaClient()
        selection = resolver.resolve(snapshot, remote=RemoteLookup(client))
        assert selection.focus_project_id == "focus1"
        assert selection.provenance == Provenance.QUERIED

    def test_persisted_project_missing_offline_is_ambiguous(self, resolver):
        """Offline, an invalid persisted selection fails instead of guessing."""
        snapshot = make_snapshot(selected_focus_project_id="deleted")
        with pytest.raises(AmbiguousSelection):
            resolver.resolve(snapshot, cache_only=True)

    def test_workspace_override_disagrees_with_persisted(self, resolver):
        """A workspace override for another workspace ignores the persisted project."""
        client = FakeAsanaClient(projects={"ws2": []})
        selection = resolver.resolve(
            make_snapshot(), ExplicitSelection(workspace_id="ws2"), remote=RemoteLookup(client)
        )
        assert selection.workspace_id == "ws2"
        assert selection.focus_project_id is None

    def test_persisted_workspace_without_project(self, resolver):
        """A workspace-only selection is reused while the workspace is cached."""
        snapshot = make_snapshot(selected_focus_project_id=None)
        selection = resolver.resolve(snapshot, cache_only=True)
        assert selection.workspace_id == "ws1"
        assert selection.focus_project_id is None


class TestRemoteAutoSelection:
    """Auto-selection from the remote service."""

    def test_single_workspace_single_candidate(self, resolver):
        """One workspace with one focus candidate is selected."""
        selection = resolver.resolve(None, remote=RemoteLookup(FakeAsanaClient()))
        assert selection.workspace_id == "ws1"
        assert selection.focus_project_id == "focus1"
        assert selection.provenance == Provenance.QUERIED

    def test_two_focus_candidates_is_ambiguous(self, resolver):
        """Two candidates in the only workspace are never guessed between."""
        client = FakeAsanaClient(
            projects={
                "ws1": [
                    Project(gid="f1", name="Focus A", workspace_gid="ws1", is_focus_candidate=True),
                    Project(gid="f2", name="Focus B", workspace_gid="ws1", is_focus_candidate=True),
                ]
            }
        )
        with pytest.raises(AmbiguousSelection) as exc_info:
            resolver.resolve(None, remote=RemoteLookup(client))
        assert [gid for gid, _ in exc_info.value.candidates] == ["f1", "f2"]
        assert "Focus A (f1)" in str(exc_info.value)

    def test_two_workspaces_is_ambiguous(self, resolver):
        """More than one workspace needs an explicit choice."""
        client = FakeAsanaClient(
            workspaces=[Workspace(gid="ws1", name="A"), Workspace(gid="ws2", name="B")]
        )
        with pytest.raises(AmbiguousSelection) as exc_info:
            resolver.resolve(None, remote=RemoteLookup(client))
        assert len(exc_info.value.candidates) == 2

    def test_no_workspaces_is_ambiguous(self, resolver):
        """An account with no workspaces cannot be resolved."""
        with pytest.raises(AmbiguousSelection):
            resolver.resolve(None, remote=RemoteLookup(FakeAsanaClient(workspaces=[])))

    def test_no_candidates_selects_workspace_only(self, resolver):
        """No focus candidate leaves the focus project unset."""
        client = FakeAsanaClient(projects={"ws1": [Project(gid="p2", name="Errands")]})
        selection = resolver.resolve(None, remote=RemoteLookup(client))
        assert selection.workspace_id == "ws1"
        assert selection.focus_project_id is None

    def test_deterministic(self, resolver):
        """Identical inputs give identical selections."""
        first = resolver.resolve(None, remote=RemoteLookup(FakeAsanaClient()))
        second = resolver.resolve(None, remote=RemoteLookup(FakeAsanaClient()))
        assert first == second


class TestCacheOnlyResolution:
    """Cache-only resolution never reaches the network."""

    def test_cache_only_never_calls_remote(self, resolver):
        """Even with a lookup supplied, cache_only ignores it."""
        client = Mock()
        with pytest.raises(AmbiguousSelection):
            resolver.resolve(None, remote=RemoteLookup(client), cache_only=True)
        client.fetch_workspaces.assert_not_called()
        client.fetch_projects.assert_not_called()

    def test_no_remote_is_cache_only(self, resolver):
        """Without a lookup, an empty cache is ambiguous."""
        with pytest.raises(AmbiguousSelection):
            resolver.resolve(None)


class TestRemoteLookup:
    """Memoization of remote lookups."""

    def test_memoizes_fetches(self):
        """Workspaces and projects are fetched once per lookup."""
        client = FakeAsanaClient()
        lookup = RemoteLookup(client)
        lookup.workspaces()
        lookup.workspaces()
        lookup.projects("ws1")
        lookup.projects("ws1")
        assert client.calls == [("fetch_workspaces",), ("fetch_projects", "ws1")]
