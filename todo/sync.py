"""
Synchronization core: the single entry point for task reads and writes.

Decides when the cached snapshot can be trusted, when to refresh it from
Asana, and what to do when a refresh fails:

- CACHE_ONLY never touches the network; no cache is a hard error.
- PREFER_CACHE serves a fresh cache and refreshes a stale one.
- FORCE_REFRESH always refreshes.

A failed refresh falls back to the existing snapshot (with a
StaleCacheFallback warning) only for transport-level failures. Auth and
selection problems always fail the command.

Usage:
    engine = SyncEngine(SnapshotStore(), AsanaClient(), config)
    view = engine.get_task_view(SyncMode.PREFER_CACHE)
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum

from .cache import SnapshotStore
from .config import Config
from .dates import parse_due_date
from .errors import (
    AmbiguousSelection,
    CacheWriteError,
    NoCacheAvailable,
    OfflineModeError,
    RemoteUnavailable,
    StaleCacheFallback,
    TodoError,
)
from .focus import FocusResolver, RemoteLookup
from .models import CacheSnapshot, ExplicitSelection, FocusSelection, Provenance, Task, TaskView

logger = logging.getLogger(__name__)

# fetched_at written after a failed post-mutation refresh; stale for any max_age
STALE_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class SyncMode(StrEnum):
    CACHE_ONLY = "cache_only"
    PREFER_CACHE = "prefer_cache"
    FORCE_REFRESH = "force_refresh"


@dataclass
class MutationOutcome:
    """Result of a create/complete call plus the refreshed view, if any."""

    task_gid: str | None
    view: TaskView | None = None
    warnings: list[StaleCacheFallback] = field(default_factory=list)


def merge_tasks(*task_lists: Iterable[Task]) -> list[Task]:
    """
    Concatenate task lists, de-duplicating by gid.

    A task keeps the position of its first occurrence; a later occurrence
    replaces its contents (the focus project's copy knows its section).
    """
    merged: dict[str, Task] = {}
    for tasks in task_lists:
        for task in tasks:
            merged[task.gid] = task
    return list(merged.values())


class SyncEngine:
    """Coordinates SnapshotStore, AsanaClient and FocusResolver for one command."""

    def __init__(
        self,
        store: SnapshotStore,
        client=None,
        config: Config | None = None,
        resolver: FocusResolver | None = None,
        clock: Callable[[], datetime] | None = None,
        today: Callable[[], date] | None = None,
    ):
        """
        Args:
            store: Snapshot persistence.
            client: AsanaClient (or any object with the same fetch/create/
                complete methods). None means the network is unavailable.
            config: User preferences; defaults apply when omitted.
            resolver: Focus resolver.
            clock: Returns the current aware UTC time.
            today: Returns the caller's local date, for due date expressions.
        """
        self.store = store
        self.client = client
        self.config = config or Config()
        self.resolver = resolver or FocusResolver()
        self.clock = clock or (lambda: datetime.now(UTC))
        self.today = today or date.today

    # =========================================================================
    # Reads
    # =========================================================================

    def get_task_view(
        self,
        mode: SyncMode,
        max_age: timedelta | None = None,
        explicit: ExplicitSelection | None = None,
    ) -> TaskView:
        """
        Return the task collection for the active selection.

        Args:
            mode: How far the cache may be trusted.
            max_age: Staleness tolerance for PREFER_CACHE. Defaults to the
                configured cache.max_age_minutes.
            explicit: Caller overrides (flags merged with config).

        Raises:
            NoCacheAvailable: CACHE_ONLY with nothing persisted
            RemoteUnavailable: refresh failed and there is no snapshot
            AuthError: credentials rejected and not refreshable
            AmbiguousSelection: workspace/focus project cannot be determined
        """
        explicit = explicit or ExplicitSelection()
        if max_age is None:
            max_age = self.config.cache.max_age
        snapshot = self.store.load()

        if mode == SyncMode.CACHE_ONLY:
            if snapshot is None:
                raise NoCacheAvailable()
            self._warn_if_old(snapshot)
            return TaskView(
                snapshot=snapshot,
                selection=self._cached_selection(snapshot, explicit),
                source="cache",
            )

        if mode == SyncMode.PREFER_CACHE and snapshot is not None:
            now = self.clock()
            if snapshot.fetched_at == STALE_EPOCH:
                logger.info("Cache was marked stale after a failed refresh, refreshing")
            elif self.store.is_stale(snapshot, max_age, now):
                logger.info(
                    f"Cache is {self.store.age(snapshot, now)} old (max {max_age}), refreshing"
                )
            elif not self._scope_matches(snapshot, explicit):
                logger.info("Cached tasks were fetched for a different selection, refreshing")
            else:
                logger.debug("Serving fresh cache")
                return TaskView(
                    snapshot=snapshot,
                    selection=self._cached_selection(snapshot, explicit),
                    source="cache",
                )

        return self._refresh_or_fallback(snapshot, explicit)

    def refresh(self, explicit: ExplicitSelection | None = None) -> TaskView:
        """Fetch and persist a new snapshot, with no stale fallback."""
        return self._refresh(explicit or ExplicitSelection(), self.store.load())

    def _refresh_or_fallback(
        self, snapshot: CacheSnapshot | None, explicit: ExplicitSelection
    ) -> TaskView:
        try:
            return self._refresh(explicit, snapshot)
        except RemoteUnavailable as e:
            if snapshot is None:
                logger.error(f"Refresh failed and no cache is available: {e}")
                raise
            logger.warning(f"Refresh failed, falling back to cache: {e}")
            warning = StaleCacheFallback(
                reason=str(e),
                fetched_at=snapshot.fetched_at,
                details={"http_status": e.http_status},
            )
            try:
                selection = self._cached_selection(snapshot, explicit)
            except AmbiguousSelection:
                selection = None
            return TaskView(
                snapshot=snapshot,
                selection=selection,
                source="stale-cache",
                warnings=[warning],
            )

    def _refresh(
        self,
        explicit: ExplicitSelection,
        previous: CacheSnapshot | None,
        remote: RemoteLookup | None = None,
    ) -> TaskView:
        if self.client is None:
            raise RemoteUnavailable("No connection to Asana is configured")
        remote = remote or RemoteLookup(self.client)

        selection = self._resolve_live(previous, explicit, remote)
        workspace_id = selection.workspace_id
        project_id = selection.focus_project_id
        logger.info(f"Refreshing workspace {workspace_id}, focus project {project_id}")

        workspaces = remote.workspaces()
        projects = remote.projects(workspace_id)
        sections = self.client.fetch_sections(project_id) if project_id else []
        my_tasks = self.client.fetch_tasks(workspace_id=workspace_id)
        focus_tasks = self.client.fetch_tasks(project_id=project_id) if project_id else []

        persisted = self._persisted_selection(selection, previous, {p.gid for p in projects})
        snapshot = CacheSnapshot(
            fetched_at=self.clock(),
            schema_version=self.store.schema_version,
            selected_workspace_id=persisted[0],
            selected_focus_project_id=persisted[1],
            workspaces=workspaces,
            projects=projects,
            sections=sections,
            tasks=merge_tasks(my_tasks, focus_tasks),
            scope_workspace_id=workspace_id,
            scope_project_id=project_id,
        )

        view = TaskView(snapshot=snapshot, selection=selection, source="remote", refreshed=True)
        try:
            self.store.save(snapshot)
        except CacheWriteError as e:
            logger.warning(f"Fetched tasks but could not update the cache: {e}")
            view.notices.append(str(e))
        logger.info(f"Refreshed {len(snapshot.tasks)} tasks")
        return view

    def _resolve_live(
        self,
        previous: CacheSnapshot | None,
        explicit: ExplicitSelection,
        remote: RemoteLookup,
    ) -> FocusSelection:
        """
        Resolve with the network, re-checking a cached focus project.

        The persisted selection is only validated against the previous
        snapshot, so a project deleted in Asana since then would still be
        returned. It is checked against the live project list and, when
        gone, forgotten before resolving again.
        """
        selection = self.resolver.resolve(previous, explicit, remote=remote)
        if selection.provenance != Provenance.CACHED or selection.focus_project_id is None:
            return selection
        live_projects = remote.projects(selection.workspace_id)
        if any(p.gid == selection.focus_project_id for p in live_projects):
            return selection

        logger.warning(
            f"Focus project {selection.focus_project_id} no longer exists in Asana, re-resolving"
        )
        forgotten = replace(previous, selected_workspace_id=None, selected_focus_project_id=None)
        return self.resolver.resolve(forgotten, explicit, remote=remote)

    def _persisted_selection(
        self,
        selection: FocusSelection,
        previous: CacheSnapshot | None,
        project_ids: set[str],
    ) -> tuple[str | None, str | None]:
        """Selection to store: overrides are not persisted, the prior choice is kept."""
        if selection.provenance != Provenance.EXPLICIT:
            return selection.workspace_id, selection.focus_project_id
        if previous is None or previous.selected_workspace_id != selection.workspace_id:
            return None, None
        previous_project = previous.selected_focus_project_id
        if previous_project is not None and previous_project not in project_ids:
            return None, None
        return previous.selected_workspace_id, previous_project

    def _cached_selection(
        self, snapshot: CacheSnapshot, explicit: ExplicitSelection
    ) -> FocusSelection:
        """Resolve without the network, falling back to the scope the cache holds."""
        try:
            return self.resolver.resolve(snapshot, explicit, cache_only=True)
        except AmbiguousSelection:
            if explicit.is_empty and snapshot.scope_workspace_id:
                return FocusSelection(
                    workspace_id=snapshot.scope_workspace_id,
                    focus_project_id=snapshot.scope_project_id,
                    provenance=Provenance.CACHED,
                )
            raise

    def _scope_matches(self, snapshot: CacheSnapshot, explicit: ExplicitSelection) -> bool:
        if explicit.is_empty:
            return (
                snapshot.selected_workspace_id is not None
                and snapshot.scope_workspace_id == snapshot.selected_workspace_id
                and snapshot.scope_project_id == snapshot.selected_focus_project_id
            )
        if explicit.workspace_id is not None and explicit.workspace_id != snapshot.scope_workspace_id:
            return False
        if (
            explicit.focus_project_id is not None
            and explicit.focus_project_id != snapshot.scope_project_id
        ):
            return False
        return True

    def _warn_if_old(self, snapshot: CacheSnapshot) -> None:
        if snapshot.fetched_at == STALE_EPOCH:
            logger.warning("Cache was marked stale after a failed refresh. Run `todo update`.")
            return
        age = self.store.age(snapshot, self.clock())
        if age > self.config.cache.warn_after:
            minutes = int(age.total_seconds() // 60)
            logger.warning(
                f"Cache is {minutes} minutes old. Is the background update running?"
            )

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_task(
        self,
        name: str,
        due: str | None = None,
        notes: str | None = None,
        explicit: ExplicitSelection | None = None,
        in_focus_project: bool = False,
        cache_only: bool = False,
    ) -> MutationOutcome:
        """
        Create a task assigned to the user, then refresh the cache.

        Args:
            name: Task name.
            due: Due date expression ("tomorrow", "friday", "2026-01-15").
            notes: Task description.
            explicit: Caller overrides.
            in_focus_project: Also add the task to the focus project.
            cache_only: The command runs offline; always refused.

        Raises:
            OfflineModeError: cache_only is set
            InvalidDateExpression: due could not be parsed (nothing is sent)
        """
        if cache_only:
            raise OfflineModeError("Cannot add tasks in cache-only mode. Run without --use-cache.")
        if not name or not name.strip():
            raise TodoError("Task name must not be empty")
        due_on = parse_due_date(due, self.today()) if due else None

        explicit = explicit or ExplicitSelection()
        previous = self.store.load()
        remote = self._remote()
        selection = self._resolve_live(previous, explicit, remote)

        project_id = None
        if in_focus_project:
            if selection.focus_project_id is None:
                raise AmbiguousSelection("No focus project is selected; pass --project.")
            project_id = selection.focus_project_id

        result = self.client.create_task(
            selection.workspace_id,
            name.strip(),
            due_on=due_on,
            notes=notes,
            project_id=project_id,
        )
        logger.info(f"Created task {result.gid}")
        return self._after_mutation(result.gid, explicit, previous, remote)

    def complete_task(
        self,
        task_gid: str,
        explicit: ExplicitSelection | None = None,
        cache_only: bool = False,
    ) -> MutationOutcome:
        """
        Mark a task complete, then refresh the cache.

        Raises:
            OfflineModeError: cache_only is set
        """
        if cache_only:
            raise OfflineModeError(
                "Cannot complete tasks in cache-only mode. Run without --use-cache."
            )
        explicit = explicit or ExplicitSelection()
        remote = self._remote()
        self.client.complete_task(task_gid)
        logger.info(f"Completed task {task_gid}")
        return self._after_mutation(task_gid, explicit, self.store.load(), remote)

    def _remote(self) -> RemoteLookup:
        if self.client is None:
            raise RemoteUnavailable("No connection to Asana is configured")
        return RemoteLookup(self.client)

    def _after_mutation(
        self,
        task_gid: str | None,
        explicit: ExplicitSelection,
        previous: CacheSnapshot | None,
        remote: RemoteLookup,
    ) -> MutationOutcome:
        try:
            view = self._refresh(explicit, previous, remote)
        except TodoError as e:
            logger.warning(f"Change was saved in Asana but the cache refresh failed: {e}")
            fetched_at = self._mark_stale()
            return MutationOutcome(
                task_gid=task_gid,
                warnings=[StaleCacheFallback(reason=f"cache refresh failed: {e}", fetched_at=fetched_at)],
            )
        return MutationOutcome(task_gid=task_gid, view=view)

    def _mark_stale(self) -> datetime | None:
        """Force the next read to refresh. Returns the original fetched_at."""
        snapshot = self.store.load()
        if snapshot is None:
            return None
        try:
            self.store.save(replace(snapshot, fetched_at=STALE_EPOCH))
        except CacheWriteError as e:
            logger.error(f"Could not mark the cache stale: {e}")
        return snapshot.fetched_at
