"""Runtime selection helpers: target environment, URLs, browser and feature flags.

Environment variables win over configuration so a CI job can retarget a run
without editing YAML:
- QA_ENVIRONMENT: environment name (``environments.<name>.*``)
- QA_BROWSER: browser kind handed to the session factory
- PLAYWRIGHT_HEADLESS: ``true``/``false``
"""
from __future__ import annotations

import logging
import os
from typing import Optional
from urllib.parse import urljoin

from .config_store import ConfigStore
from .exceptions import ConfigKeyError, TypeCoercionError
from .paths import to_bool

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "test"
DEFAULT_BROWSER = "chromium"


def current_environment(store: ConfigStore) -> str:
    env_name = os.getenv("QA_ENVIRONMENT")
    if env_name:
        return env_name
    if store.contains("testing.environment"):
        return store.get_string("testing.environment", DEFAULT_ENVIRONMENT)
    return DEFAULT_ENVIRONMENT


def _environment_value(store: ConfigStore, key: str, environment: Optional[str]) -> str:
    env_name = environment or current_environment(store)
    for path in (f"environments.{env_name}.{key}", f"app.{key}"):
        if store.contains(path):
            return store.get_string(path)
    raise ConfigKeyError(f"environments.{env_name}.{key}")


def base_url(store: ConfigStore, environment: Optional[str] = None) -> str:
    """Base URL of the environment, falling back to ``app.baseUrl``."""
    return _environment_value(store, "baseUrl", environment)


def api_url(store: ConfigStore, environment: Optional[str] = None) -> str:
    """API URL of the environment, falling back to ``app.apiUrl``."""
    return _environment_value(store, "apiUrl", environment)


def url(store: ConfigStore, path: str, environment: Optional[str] = None) -> str:
    """Return an absolute URL for the provided path."""
    return urljoin(base_url(store, environment).rstrip("/") + "/", path.lstrip("/"))


def default_browser(store: ConfigStore) -> str:
    browser = os.getenv("QA_BROWSER")
    if browser:
        return browser
    if store.contains("browser.default"):
        return store.get_string("browser.default", DEFAULT_BROWSER)
    return DEFAULT_BROWSER


def headless_mode(store: ConfigStore) -> bool:
    headless_str = os.getenv("PLAYWRIGHT_HEADLESS")
    if headless_str:
        try:
            return to_bool(headless_str)
        except TypeCoercionError:
            logger.warning(f"Ignoring invalid PLAYWRIGHT_HEADLESS value: {headless_str!r}")
    if store.contains("browser.headless"):
        return store.get_bool("browser.headless", False)
    return False


def is_feature_enabled(store: ConfigStore, feature: str, default: bool = False) -> bool:
    path = f"features.{feature}"
    if not store.contains(path):
        return default
    return store.get_bool(path, default)
