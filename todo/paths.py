from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "TODO_HOME"
APP_ENV_CACHE = "TODO_CACHE_PATH"
APP_ENV_CONFIG = "TODO_CONFIG_PATH"


def app_home() -> Path:
    """
    User-writable home for the todo client.
    Override with TODO_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".todo").resolve()


def config_dir() -> Path:
    d = app_home() / "config"
    d.mkdir(parents=True, exist_ok=True)
    return d


def data_dir() -> Path:
    d = app_home() / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


def cache_path() -> Path:
    """
    Canonical cache file path.

    Resolution order:
    1. TODO_CACHE_PATH env var (explicit override)
    2. ~/.todo/data/cache.json (default)
    """
    if os.environ.get(APP_ENV_CACHE):
        return Path(os.environ[APP_ENV_CACHE]).expanduser().resolve()
    return data_dir() / "cache.json"


def config_path() -> Path:
    """User preferences file (YAML)."""
    if os.environ.get(APP_ENV_CONFIG):
        return Path(os.environ[APP_ENV_CONFIG]).expanduser().resolve()
    return config_dir() / "config.yaml"


def credentials_path() -> Path:
    return config_dir() / "credentials.json"


def auth_lock_path() -> Path:
    """Lock file held while credentials are being refreshed."""
    return config_dir() / "auth.lock"
