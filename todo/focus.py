"""
Focus resolver. Decides which workspace and focus project are active.

Priority order, first match wins:
1. Explicit override (command-line flag, then config file). Never persisted.
2. Persisted selection in the snapshot, only while it still points at a
   project (or workspace) present in that same snapshot.
3. Remote auto-selection: the only workspace, and within it the only
   project marked as a focus candidate.
4. Otherwise AmbiguousSelection. The resolver never guesses between
   equally plausible candidates.

Cache-only resolution stops after step 2: offline mode never reaches the
network.
"""

import logging

from .errors import AmbiguousSelection
from .models import CacheSnapshot, ExplicitSelection, FocusSelection, Project, Provenance, Workspace

logger = logging.getLogger(__name__)


class RemoteLookup:
    """
    Memoized view of the remote workspaces/projects for one command.

    The refresh procedure reuses whatever the resolver already fetched.
    """

    def __init__(self, client):
        self.client = client
        self._workspaces: list[Workspace] | None = None
        self._projects: dict[str, list[Project]] = {}

    def workspaces(self) -> list[Workspace]:
        if self._workspaces is None:
            self._workspaces = self.client.fetch_workspaces()
        return self._workspaces

    def projects(self, workspace_id: str) -> list[Project]:
        if workspace_id not in self._projects:
            self._projects[workspace_id] = self.client.fetch_projects(workspace_id)
        return self._projects[workspace_id]


class FocusResolver:
    """Produces a FocusSelection without requiring flags on every invocation."""

    def resolve(
        self,
        snapshot: CacheSnapshot | None,
        explicit: ExplicitSelection | None = None,
        remote: RemoteLookup | None = None,
        cache_only: bool = False,
    ) -> FocusSelection:
        """
        Resolve the active workspace and focus project.

        Args:
            snapshot: Current cached snapshot, if any.
            explicit: Caller overrides.
            remote: Lookup used for auto-selection. Ignored when cache_only.
            cache_only: Never query the remote service.

        Raises:
            AmbiguousSelection: no unique answer without an explicit choice
        """
        explicit = explicit or ExplicitSelection()
        network = remote if not cache_only else None

        if explicit.is_complete:
            logger.debug("Using explicit workspace and focus project")
            return FocusSelection(
                workspace_id=explicit.workspace_id,
                focus_project_id=explicit.focus_project_id,
                provenance=Provenance.EXPLICIT,
            )

        if explicit.focus_project_id is not None:
            workspace_id = self._workspace_for_project(explicit.focus_project_id, snapshot, network)
            return FocusSelection(
                workspace_id=workspace_id,
                focus_project_id=explicit.focus_project_id,
                provenance=Provenance.EXPLICIT,
            )

        persisted = self._from_snapshot(snapshot, explicit)
        if persisted is not None:
            return persisted

        if network is None:
            raise AmbiguousSelection(
                "Cannot determine the workspace and focus project from the cache. "
                "Run online once, or pass --workspace/--project."
            )

        return self._from_remote(network, explicit)

    def _from_snapshot(
        self, snapshot: CacheSnapshot | None, explicit: ExplicitSelection
    ) -> FocusSelection | None:
        if snapshot is None:
            return None

        project_id = snapshot.selected_focus_project_id
        if project_id is not None:
            project = snapshot.project_by_gid(project_id)
            if project is None:
                logger.info(
                    f"Persisted focus project {project_id} no longer exists in the cache, re-resolving"
                )
                return None
            workspace_id = project.workspace_gid or snapshot.selected_workspace_id
            if explicit.workspace_id is not None and workspace_id != explicit.workspace_id:
                return None
            logger.debug(f"Using persisted focus project {project_id}")
            return FocusSelection(
                workspace_id=workspace_id,
                focus_project_id=project_id,
                provenance=Provenance.CACHED,
            )

        workspace_id = snapshot.selected_workspace_id
        if workspace_id is None:
            return None
        if not any(w.gid == workspace_id for w in snapshot.workspaces):
            logger.info(f"Persisted workspace {workspace_id} no longer exists in the cache")
            return None
        if explicit.workspace_id is not None and workspace_id != explicit.workspace_id:
            return None
        return FocusSelection(
            workspace_id=workspace_id, focus_project_id=None, provenance=Provenance.CACHED
        )

    def _from_remote(self, remote: RemoteLookup, explicit: ExplicitSelection) -> FocusSelection:
        if explicit.workspace_id is not None:
            workspace_id = explicit.workspace_id
        else:
            workspaces = remote.workspaces()
            if not workspaces:
                raise AmbiguousSelection("No Asana workspaces are available to this account.")
            if len(workspaces) > 1:
                raise AmbiguousSelection(
                    "More than one workspace is available; choose one with --workspace.",
                    candidates=[(w.gid, w.name) for w in workspaces],
                )
            workspace_id = workspaces[0].gid
            logger.info(f"Auto-selected the only workspace {workspace_id}")

        candidates = [p for p in remote.projects(workspace_id) if p.is_focus_candidate]
        if len(candidates) > 1:
            raise AmbiguousSelection(
                "More than one focus project candidate; choose one with --project.",
                candidates=[(p.gid, p.name) for p in candidates],
            )

        focus_project_id = candidates[0].gid if candidates else None
        if focus_project_id:
            logger.info(f"Auto-selected focus project {focus_project_id}")
        else:
            logger.info(f"No focus project candidate in workspace {workspace_id}")

        return FocusSelection(
            workspace_id=workspace_id,
            focus_project_id=focus_project_id,
            provenance=Provenance.QUERIED,
        )

    def _workspace_for_project(
        self,
        project_id: str,
        snapshot: CacheSnapshot | None,
        remote: RemoteLookup | None,
    ) -> str:
        if snapshot is not None:
            project = snapshot.project_by_gid(project_id)
            if project is not None and project.workspace_gid:
                return project.workspace_gid

        if remote is None:
            raise AmbiguousSelection(
                f"Project {project_id} is not in the cache; pass --workspace as well."
            )

        workspaces = remote.workspaces()
        if len(workspaces) == 1:
            return workspaces[0].gid
        for workspace in workspaces:
            if any(p.gid == project_id for p in remote.projects(workspace.gid)):
                return workspace.gid

        raise AmbiguousSelection(
            f"Project {project_id} was not found in any workspace; pass --workspace as well.",
            candidates=[(w.gid, w.name) for w in workspaces],
        )
