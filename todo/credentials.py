"""
Credential store for Asana access.

Resolution order:
1. ASANA_PAT environment variable (personal access token)
2. credentials.json under the app config dir, shaped like
   {"asana": {"pat": "..."}} or
   {"asana": {"token": ..., "kind": "oauth", "refresh_token": ..., "expires_at": ...,
              "client_id": ..., "client_secret": ...}}

OAuth access tokens are refreshed at most once per invocation, under an
auth.lock file so two processes never rotate the refresh token at once.
"""

import json
import logging
import os
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import requests

from . import config, paths
from .errors import AuthError
from .models import Credential, CredentialKind

logger = logging.getLogger(__name__)

AUTH_LOCK_MAX_AGE_SECONDS = 300


def _lock_is_valid(lock_path: Path, now: float | None = None) -> bool:
    """A lock is held if the file exists and its timestamp is recent."""
    try:
        contents = lock_path.read_text().strip()
        timestamp = int(contents)
    except (OSError, ValueError):
        return False
    now = now if now is not None else time.time()
    return now - timestamp < AUTH_LOCK_MAX_AGE_SECONDS


def is_auth_in_progress(lock_path: Path | None = None) -> bool:
    return _lock_is_valid(lock_path or paths.auth_lock_path())


@contextmanager
def acquire_auth_lock(lock_path: Path | None = None) -> Iterator[Path]:
    """
    Hold the auth lock for the duration of the block.

    Raises:
        AuthError: another process is already refreshing credentials
    """
    lock_path = lock_path or paths.auth_lock_path()
    logger.debug(f"Attempting to acquire auth lock at {lock_path}")

    if is_auth_in_progress(lock_path):
        raise AuthError("Another authentication refresh is already in progress")

    if lock_path.exists():
        logger.debug("Removing stale auth lock")
        lock_path.unlink(missing_ok=True)

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd = os.open(lock_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL)
    except FileExistsError as e:
        raise AuthError("Another authentication refresh is already in progress") from e
    with os.fdopen(fd, "w") as f:
        f.write(str(int(time.time())))

    try:
        yield lock_path
    finally:
        try:
            lock_path.unlink()
        except OSError as e:
            logger.warning(f"Failed to remove auth lock file: {e}")


class CredentialStore:
    """Persists and retrieves the Asana credential, refreshing OAuth tokens on expiry."""

    def __init__(
        self,
        path: Path | None = None,
        lock_path: Path | None = None,
        token_url: str | None = None,
    ):
        self.path = path or paths.credentials_path()
        self.lock_path = lock_path or paths.auth_lock_path()
        self.token_url = token_url or config.ASANA_TOKEN_URL
        self._credential: Credential | None = None
        self._refreshed = False

    def _read_file(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AuthError(f"Could not read credentials from {self.path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def load(self) -> Credential | None:
        """Look up the stored credential without validating it."""
        pat = os.environ.get(config.ASANA_PAT_ENV)
        if pat:
            return Credential(token=pat, kind=CredentialKind.PERSONAL_ACCESS_TOKEN)

        asana = self._read_file().get("asana") or {}
        if asana.get("pat"):
            return Credential(token=asana["pat"], kind=CredentialKind.PERSONAL_ACCESS_TOKEN)
        if asana.get("token"):
            try:
                return Credential.from_dict(asana)
            except (KeyError, ValueError) as e:
                raise AuthError(f"Malformed credentials in {self.path}: {e}") from e
        return None

    def save(self, credential: Credential) -> None:
        """Persist the credential, keeping any OAuth client settings alongside it."""
        data = self._read_file()
        asana = data.get("asana") or {}
        for key in ("pat", "token", "kind", "refresh_token", "expires_at"):
            asana.pop(key, None)
        if credential.kind == CredentialKind.PERSONAL_ACCESS_TOKEN:
            asana["pat"] = credential.token
        else:
            asana.update(credential.to_dict())
        data["asana"] = asana

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self._credential = credential

    def get_valid_credential(self, force_refresh: bool = False) -> Credential:
        """
        Return a usable credential.

        Args:
            force_refresh: the remote rejected the current token; refresh it now.

        Raises:
            AuthError: no credential, or it is expired and cannot be refreshed
        """
        credential = self._credential or self.load()
        if credential is None:
            raise AuthError(
                f"No Asana credentials found. Set {config.ASANA_PAT_ENV} or add them to {self.path}."
            )
        self._credential = credential

        if not force_refresh and not credential.is_expired():
            return credential

        if credential.kind == CredentialKind.PERSONAL_ACCESS_TOKEN:
            raise AuthError("Personal access token was rejected; create a new one in Asana")

        if self._refreshed:
            raise AuthError("Access token rejected again after refresh")

        self._credential = self._refresh(credential)
        return self._credential

    def _refresh(self, credential: Credential) -> Credential:
        if not credential.refresh_token:
            raise AuthError("Access token expired and no refresh token is stored")

        asana = self._read_file().get("asana") or {}
        client_id = asana.get("client_id")
        client_secret = asana.get("client_secret")
        if not client_id or not client_secret:
            raise AuthError(f"OAuth client_id/client_secret missing from {self.path}")

        self._refreshed = True
        with acquire_auth_lock(self.lock_path):
            logger.info("Refreshing Asana access token...")
            try:
                resp = requests.post(
                    self.token_url,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": credential.refresh_token,
                        "client_id": client_id,
                        "client_secret": client_secret,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    timeout=30,
                )
            except requests.RequestException as e:
                raise AuthError(f"Token refresh failed: {e}") from e

            if resp.status_code != 200:
                raise AuthError(f"Token refresh failed: {resp.status_code} {resp.text[:200]}")

            tokens = resp.json()
            if not tokens.get("access_token"):
                raise AuthError("Token refresh response did not include an access token")
            expires_in = tokens.get("expires_in")
            refreshed = Credential(
                token=tokens["access_token"],
                kind=CredentialKind.OAUTH,
                # Refresh tokens may rotate
                refresh_token=tokens.get("refresh_token") or credential.refresh_token,
                expires_at=(
                    datetime.now(UTC) + timedelta(seconds=int(expires_in)) if expires_in else None
                ),
            )
            try:
                self.save(refreshed)
            except OSError as e:
                logger.warning(f"Could not persist refreshed credentials: {e}")
                self._credential = refreshed

        logger.debug("Access token refreshed")
        return refreshed
