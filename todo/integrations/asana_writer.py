"""
Task mutations against the Asana REST API.

Reads go through engine.asana_client with requests; writes are sent here
with httpx. Every call returns an AsanaWriteResult instead of raising, so
the client can decide which failures are transient.
"""

import logging
import time
from dataclasses import dataclass
from datetime import date

import httpx

from .. import config
from ..credentials import CredentialStore

logger = logging.getLogger(__name__)

RATE_LIMIT_DELAY = 1  # seconds, when 429 carries no Retry-After
WRITE_TIMEOUT = 30.0


@dataclass
class AsanaWriteResult:
    """Outcome of one task mutation."""

    success: bool
    gid: str | None = None
    data: dict | None = None
    error: str | None = None
    http_status: int | None = None
    unavailable: bool = False  # nothing reached Asana, or it answered 5xx


def _error_message(response: httpx.Response) -> str:
    """Prefer Asana's own error messages over the raw body."""
    message = f"Asana API error {response.status_code}"
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        return f"{message}: {response.text[:200]}"
    details = "; ".join(e.get("message", "") for e in errors if isinstance(e, dict))
    return f"{message}: {details}" if details else message


def task_payload(
    workspace_gid: str,
    name: str,
    notes: str | None = None,
    due_on: date | None = None,
    project_gid: str | None = None,
    assignee: str = "me",
) -> dict:
    data = {"name": name, "assignee": assignee, "workspace": workspace_gid}
    if notes:
        data["notes"] = notes
    if due_on:
        data["due_on"] = due_on.isoformat()
    if project_gid:
        data["projects"] = [project_gid]
    return {"data": data}


class AsanaWriter:
    """Create and complete tasks in Asana."""

    def __init__(self, credentials: CredentialStore | None = None, base_url: str | None = None):
        self.credentials = credentials or CredentialStore()
        self.base_url = base_url or config.ASANA_API_BASE

    def _send(self, method: str, url: str, token: str, body: dict) -> httpx.Response:
        return httpx.request(
            method,
            url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            json=body,
            timeout=WRITE_TIMEOUT,
        )

    def _write(self, method: str, endpoint: str, body: dict) -> AsanaWriteResult:
        """
        Send one mutation.

        A 401 forces one credential refresh and a retry; a 429 waits for
        Retry-After and retries once. A credential that cannot be refreshed
        raises AuthError from the store.
        """
        url = f"{self.base_url}/{endpoint}"
        credential = self.credentials.get_valid_credential()
        logger.debug(f"{method} {endpoint}")

        try:
            response = self._send(method, url, credential.token, body)
            if response.status_code == 401:
                logger.info("Asana rejected the access token, refreshing and retrying once")
                credential = self.credentials.get_valid_credential(force_refresh=True)
                response = self._send(method, url, credential.token, body)
            if response.status_code == 429:
                wait = int(response.headers.get("Retry-After", RATE_LIMIT_DELAY))
                logger.warning(f"Asana rate limited {method} {endpoint}, retrying in {wait}s")
                time.sleep(wait)
                response = self._send(method, url, credential.token, body)
        except httpx.HTTPError as e:
            logger.error(f"{method} {endpoint} did not reach Asana: {e}")
            return AsanaWriteResult(success=False, error=f"Asana request failed: {e}", unavailable=True)

        if response.status_code in (200, 201):
            data = response.json().get("data") or {}
            return AsanaWriteResult(
                success=True, gid=data.get("gid"), data=data, http_status=response.status_code
            )

        error = _error_message(response)
        logger.error(f"{method} {endpoint} failed: {error}")
        return AsanaWriteResult(
            success=False,
            error=error,
            http_status=response.status_code,
            unavailable=response.status_code >= 500,
        )

    def create_task(
        self,
        workspace_gid: str,
        name: str,
        notes: str | None = None,
        due_on: date | None = None,
        project_gid: str | None = None,
        assignee: str = "me",
    ) -> AsanaWriteResult:
        """
        Create a task, assigned to the current user unless told otherwise.

        Passing project_gid also adds the task to that project.
        """
        payload = task_payload(workspace_gid, name, notes, due_on, project_gid, assignee)
        return self._write("POST", "tasks", payload)

    def update_task(self, task_gid: str, updates: dict) -> AsanaWriteResult:
        return self._write("PUT", f"tasks/{task_gid}", {"data": updates})

    def complete_task(self, task_gid: str) -> AsanaWriteResult:
        return self.update_task(task_gid, {"completed": True})
