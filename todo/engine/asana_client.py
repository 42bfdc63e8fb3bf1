"""Asana API client: typed reads plus task mutations through AsanaWriter."""

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any

import requests

from .. import config
from ..config import FocusConfig
from ..credentials import CredentialStore
from ..errors import AuthError, RemoteError, RemoteUnavailable
from ..integrations.asana_writer import AsanaWriter, AsanaWriteResult
from ..models import Project, Section, Task, Workspace

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100
RATE_LIMIT_DELAY = 1
TASK_FIELDS = (
    "name,completed,due_on,modified_at,notes,"
    "memberships.project.gid,memberships.section.gid,"
    "custom_fields.name,custom_fields.number_value"
)


@dataclass(frozen=True)
class TaskFilter:
    """Which tasks to pull."""

    incomplete_only: bool = True
    assignee: str = "me"  # used for workspace-scoped ("My Tasks") fetches


def _number_fields(raw: dict) -> dict[str, float | None]:
    """Numeric custom fields by lower-cased name. Other field types are skipped."""
    fields = {}
    for custom_field in raw.get("custom_fields") or []:
        name = (custom_field.get("name") or "").strip().lower()
        if not name or "number_value" not in custom_field:
            continue
        value = custom_field["number_value"]
        fields[name] = float(value) if value is not None else None
    return fields


def _task_from_api(raw: dict, project_gid: str | None = None) -> Task:
    memberships = raw.get("memberships") or []
    section_gid = None
    for membership in memberships:
        member_project = (membership.get("project") or {}).get("gid")
        if project_gid is None and member_project:
            project_gid = member_project
        if member_project == project_gid:
            section_gid = (membership.get("section") or {}).get("gid")
            break

    return Task.from_dict(
        {
            "gid": raw["gid"],
            "name": raw.get("name", ""),
            "completed": raw.get("completed", False),
            "due_on": raw.get("due_on"),
            "project_gid": project_gid,
            "section_gid": section_gid,
            "modified_at": raw.get("modified_at"),
            "notes": raw.get("notes") or "",
            "custom_fields": _number_fields(raw),
        }
    )


class AsanaClient:
    """
    Thin typed interface over the Asana REST API.

    Every request takes its bearer token from the CredentialStore. A 401
    triggers one forced refresh and one retry; transport failures raise
    RemoteUnavailable so callers can tell them apart from empty results.
    """

    def __init__(
        self,
        credentials: CredentialStore | None = None,
        writer: AsanaWriter | None = None,
        focus: FocusConfig | None = None,
        base_url: str | None = None,
    ):
        self.credentials = credentials or CredentialStore()
        self.base_url = base_url or config.ASANA_API_BASE
        self.writer = writer or AsanaWriter(credentials=self.credentials, base_url=self.base_url)
        self.focus = focus or FocusConfig()

    def _send(self, url: str, token: str, params: dict | None) -> requests.Response:
        return requests.get(
            url,
            params=params,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            timeout=30,
        )

    def _get(self, endpoint: str, params: dict | None = None) -> dict[str, Any]:
        """Make authenticated GET request to Asana API."""
        url = f"{self.base_url}/{endpoint}"
        credential = self.credentials.get_valid_credential()
        logger.debug(f"GET {endpoint} {params or {}}")

        try:
            resp = self._send(url, credential.token, params)

            if resp.status_code == 401:
                logger.info("Asana rejected the access token, refreshing and retrying once")
                credential = self.credentials.get_valid_credential(force_refresh=True)
                resp = self._send(url, credential.token, params)
                if resp.status_code == 401:
                    raise AuthError("Asana rejected the refreshed access token")

            if resp.status_code == 429:
                retry_after = int(resp.headers.get("Retry-After", RATE_LIMIT_DELAY))
                logger.warning(f"Asana API rate limited. Waiting {retry_after}s before retry.")
                time.sleep(retry_after)
                resp = self._send(url, credential.token, params)
        except requests.RequestException as e:
            raise RemoteUnavailable(f"Could not reach Asana: {e}") from e

        if resp.status_code >= 500:
            raise RemoteUnavailable(
                f"Asana API error: {resp.status_code} {resp.text[:200]}",
                http_status=resp.status_code,
            )
        if resp.status_code != 200:
            raise RemoteError(
                f"Asana API error: {resp.status_code} {resp.text[:200]}",
                http_status=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise RemoteUnavailable(f"Asana returned an unreadable response: {e}") from e

    def _get_all(self, endpoint: str, params: dict | None = None) -> list[dict]:
        """GET a collection, following next_page offsets."""
        params = dict(params or {})
        params["limit"] = PAGE_LIMIT
        items: list[dict] = []
        while True:
            data = self._get(endpoint, params=dict(params))
            items.extend(data.get("data", []))
            next_page = data.get("next_page") or {}
            offset = next_page.get("offset")
            if not offset:
                return items
            params["offset"] = offset

    def fetch_workspaces(self) -> list[Workspace]:
        """List all workspaces visible to the user."""
        raw = self._get_all("workspaces", params={"opt_fields": "name"})
        return [Workspace.from_dict(w) for w in raw]

    def fetch_projects(self, workspace_id: str) -> list[Project]:
        """List active projects in a workspace, marking focus candidates."""
        raw = self._get_all(
            "projects",
            params={"workspace": workspace_id, "archived": "false", "opt_fields": "name"},
        )
        return [
            Project(
                gid=str(p["gid"]),
                name=p.get("name", ""),
                workspace_gid=workspace_id,
                is_focus_candidate=self.focus.matches(p.get("name", "")),
            )
            for p in raw
        ]

    def fetch_sections(self, project_id: str) -> list[Section]:
        """List sections in a project."""
        raw = self._get_all(f"projects/{project_id}/sections", params={"opt_fields": "name"})
        return [
            Section(gid=str(s["gid"]), name=s.get("name", ""), project_gid=project_id)
            for s in raw
        ]

    def fetch_user_task_list_gid(self, workspace_id: str, assignee: str = "me") -> str | None:
        data = self._get(f"users/{assignee}/user_task_list", params={"workspace": workspace_id})
        return (data.get("data") or {}).get("gid")

    def fetch_tasks(
        self,
        project_id: str | None = None,
        workspace_id: str | None = None,
        task_filter: TaskFilter | None = None,
    ) -> list[Task]:
        """
        List tasks in a project, or the user's own task list in a workspace.

        Exactly one of project_id / workspace_id must be given.
        """
        if (project_id is None) == (workspace_id is None):
            raise ValueError("fetch_tasks needs exactly one of project_id or workspace_id")
        task_filter = task_filter or TaskFilter()

        params = {"opt_fields": TASK_FIELDS}
        if task_filter.incomplete_only:
            params["completed_since"] = "now"

        if project_id is not None:
            raw = self._get_all(f"projects/{project_id}/tasks", params=params)
            return [_task_from_api(t, project_gid=project_id) for t in raw]

        list_gid = self.fetch_user_task_list_gid(workspace_id, task_filter.assignee)
        if not list_gid:
            return []
        raw = self._get_all(f"user_task_lists/{list_gid}/tasks", params=params)
        return [_task_from_api(t) for t in raw]

    def _check_write(self, result: AsanaWriteResult, action: str) -> AsanaWriteResult:
        if result.success:
            return result
        if result.http_status == 401:
            raise AuthError(f"Could not {action}: {result.error}")
        if result.unavailable:
            raise RemoteUnavailable(f"Could not {action}: {result.error}", result.http_status)
        raise RemoteError(f"Could not {action}: {result.error}", result.http_status)

    def create_task(
        self,
        workspace_id: str,
        name: str,
        due_on: date | None = None,
        notes: str | None = None,
        project_id: str | None = None,
    ) -> AsanaWriteResult:
        """Create a task assigned to the current user."""
        result = self.writer.create_task(
            workspace_gid=workspace_id,
            name=name,
            notes=notes,
            due_on=due_on,
            project_gid=project_id,
        )
        return self._check_write(result, "create task")

    def complete_task(self, task_id: str) -> AsanaWriteResult:
        """Mark a task as completed."""
        return self._check_write(self.writer.complete_task(task_id), "complete task")
