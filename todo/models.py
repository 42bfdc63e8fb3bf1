"""
Value types for the cache and synchronization core.

Everything here is a plain dataclass with to_dict/from_dict for the JSON
cache file. Tasks are replaced wholesale on every sync; nothing is patched
in place.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum

from .errors import StaleCacheFallback


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value)


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    # Asana returns "2026-01-01T10:00:00.000Z"
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class CredentialKind(StrEnum):
    PERSONAL_ACCESS_TOKEN = "personal_access_token"
    OAUTH = "oauth"


@dataclass
class Credential:
    """Access credential with expiry metadata."""

    token: str
    kind: CredentialKind = CredentialKind.PERSONAL_ACCESS_TOKEN
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.kind == CredentialKind.PERSONAL_ACCESS_TOKEN or self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        return now >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "kind": str(self.kind),
            "refresh_token": self.refresh_token,
            "expires_at": _format_datetime(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Credential":
        return cls(
            token=data["token"],
            kind=CredentialKind(data.get("kind", CredentialKind.PERSONAL_ACCESS_TOKEN)),
            refresh_token=data.get("refresh_token"),
            expires_at=_parse_datetime(data.get("expires_at")),
        )


@dataclass(frozen=True)
class Workspace:
    gid: str
    name: str

    def to_dict(self) -> dict:
        return {"gid": self.gid, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict) -> "Workspace":
        return cls(gid=str(data["gid"]), name=data.get("name", ""))


@dataclass(frozen=True)
class Project:
    gid: str
    name: str
    workspace_gid: str | None = None
    is_focus_candidate: bool = False

    def to_dict(self) -> dict:
        return {
            "gid": self.gid,
            "name": self.name,
            "workspace_gid": self.workspace_gid,
            "is_focus_candidate": self.is_focus_candidate,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            gid=str(data["gid"]),
            name=data.get("name", ""),
            workspace_gid=data.get("workspace_gid"),
            is_focus_candidate=bool(data.get("is_focus_candidate", False)),
        )


@dataclass(frozen=True)
class Section:
    gid: str
    name: str
    project_gid: str | None = None

    def to_dict(self) -> dict:
        return {"gid": self.gid, "name": self.name, "project_gid": self.project_gid}

    @classmethod
    def from_dict(cls, data: dict) -> "Section":
        return cls(
            gid=str(data["gid"]),
            name=data.get("name", ""),
            project_gid=data.get("project_gid"),
        )


@dataclass(frozen=True)
class Task:
    gid: str
    name: str
    completed: bool = False
    due_on: date | None = None
    project_gid: str | None = None
    section_gid: str | None = None
    modified_at: datetime | None = None
    notes: str = ""
    # numeric custom fields by lower-cased name; None when unset
    custom_fields: dict[str, float | None] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict:
        return {
            "gid": self.gid,
            "name": self.name,
            "completed": self.completed,
            "due_on": self.due_on.isoformat() if self.due_on else None,
            "project_gid": self.project_gid,
            "section_gid": self.section_gid,
            "modified_at": _format_datetime(self.modified_at),
            "notes": self.notes,
            "custom_fields": dict(self.custom_fields),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        return cls(
            gid=str(data["gid"]),
            name=data.get("name", ""),
            completed=bool(data.get("completed", False)),
            due_on=_parse_date(data.get("due_on")),
            project_gid=data.get("project_gid"),
            section_gid=data.get("section_gid"),
            modified_at=_parse_datetime(data.get("modified_at")),
            notes=data.get("notes") or "",
            custom_fields=dict(data.get("custom_fields") or {}),
        )


@dataclass
class CacheSnapshot:
    """Last-fetched state of the remote service plus selection metadata."""

    fetched_at: datetime
    schema_version: int
    selected_workspace_id: str | None = None
    selected_focus_project_id: str | None = None
    workspaces: list[Workspace] = field(default_factory=list)
    projects: list[Project] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    # Selection the tasks were fetched for (may be an explicit override)
    scope_workspace_id: str | None = None
    scope_project_id: str | None = None

    def project_by_gid(self, gid: str | None) -> Project | None:
        if gid is None:
            return None
        for project in self.projects:
            if project.gid == gid:
                return project
        return None

    def to_dict(self) -> dict:
        return {
            "schema_version": self.schema_version,
            "fetched_at": self.fetched_at.isoformat(),
            "selected_workspace_id": self.selected_workspace_id,
            "selected_focus_project_id": self.selected_focus_project_id,
            "scope_workspace_id": self.scope_workspace_id,
            "scope_project_id": self.scope_project_id,
            "workspaces": [w.to_dict() for w in self.workspaces],
            "projects": [p.to_dict() for p in self.projects],
            "sections": [s.to_dict() for s in self.sections],
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheSnapshot":
        fetched_at = _parse_datetime(data["fetched_at"])
        if fetched_at is None:
            raise ValueError("fetched_at is required")
        return cls(
            fetched_at=fetched_at,
            schema_version=int(data["schema_version"]),
            selected_workspace_id=data.get("selected_workspace_id"),
            selected_focus_project_id=data.get("selected_focus_project_id"),
            scope_workspace_id=data.get("scope_workspace_id"),
            scope_project_id=data.get("scope_project_id"),
            workspaces=[Workspace.from_dict(w) for w in data.get("workspaces", [])],
            projects=[Project.from_dict(p) for p in data.get("projects", [])],
            sections=[Section.from_dict(s) for s in data.get("sections", [])],
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
        )


class Provenance(StrEnum):
    EXPLICIT = "explicit"
    CACHED = "cached"
    QUERIED = "queried"


@dataclass(frozen=True)
class FocusSelection:
    workspace_id: str
    focus_project_id: str | None
    provenance: Provenance


@dataclass(frozen=True)
class ExplicitSelection:
    """Caller-supplied overrides; either field may be absent."""

    workspace_id: str | None = None
    focus_project_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.workspace_id is None and self.focus_project_id is None

    @property
    def is_complete(self) -> bool:
        return self.workspace_id is not None and self.focus_project_id is not None


@dataclass
class TaskView:
    """Result of Synchronization Core reads."""

    snapshot: CacheSnapshot
    selection: FocusSelection | None
    source: str  # "cache" | "remote" | "stale-cache"
    refreshed: bool = False
    warnings: list[StaleCacheFallback] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)

    @property
    def tasks(self) -> list[Task]:
        return self.snapshot.tasks

    @property
    def is_stale_fallback(self) -> bool:
        return bool(self.warnings)
