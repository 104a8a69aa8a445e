"""Shared fixtures: in-memory configuration and a fake native launcher.

The fake launcher stands in for Playwright so lifecycle tests never start a
real browser.
"""
import os
import sys
import threading

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from playwright.sync_api import TimeoutError as PlaywrightTimeout

from qa_core.browser import LaunchSettings, NativeHandles
from qa_core.config_store import ConfigStore, reset_config_store
from qa_core.exceptions import SessionCreationError

# Plugin fixtures, available even when the package is not installed
from qa_core.pytest_plugin import browser_session, credential_resolver, session_manager  # noqa: F401


BASE_CONFIG = {
    "testing": {"environment": "test"},
    "environments": {
        "test": {"baseUrl": "https://test.example.com", "apiUrl": "https://api.test.example.com"},
    },
    "browser": {"default": "chromium", "headless": True},
    "timeouts": {"implicit": 5, "explicit": 2, "pageLoad": 20, "polling": 10},
}


class FakeClosable:
    def __init__(self, name, on_close=None):
        self.name = name
        self.close_calls = 0
        self._on_close = on_close

    def close(self):
        self.close_calls += 1
        if self._on_close:
            self._on_close(self.name)


class FakePage(FakeClosable):
    def __init__(self, on_close=None):
        super().__init__("page", on_close)
        self.url = "about:blank"
        self.visible_selectors = set()
        self.goto_calls = []

    def title(self):
        return "Fake Page"

    def goto(self, url, timeout=None):
        self.goto_calls.append((url, timeout))
        if url.endswith("/slow"):
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded navigating to {url}")
        self.url = url
        return {"url": url}

    def wait_for_selector(self, selector, state="visible", timeout=None):
        if selector in self.visible_selectors:
            return selector
        raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for {selector}")


class FakePlaywright:
    def __init__(self, on_close=None):
        self.stop_calls = 0
        self._on_close = on_close

    def stop(self):
        self.stop_calls += 1
        if self._on_close:
            self._on_close("playwright")


class FakeLauncher:
    """Records every launch and every native release."""

    def __init__(self, fail_with=None, delay=0.0):
        self.fail_with = fail_with
        self.delay = delay
        self.launches = []
        self.handles = []
        self.released = []
        self._lock = threading.Lock()

    def _record_release(self, name):
        with self._lock:
            self.released.append(name)

    def __call__(self, settings: LaunchSettings) -> NativeHandles:
        if self.delay:
            threading.Event().wait(self.delay)
        with self._lock:
            self.launches.append(settings)
        if self.fail_with is not None:
            raise self.fail_with

        handles = NativeHandles(
            playwright=FakePlaywright(self._record_release),
            browser=FakeClosable("browser", self._record_release),
            context=FakeClosable("context", self._record_release),
            page=FakePage(self._record_release),
        )
        with self._lock:
            self.handles.append(handles)
        return handles

    @property
    def browser_releases(self):
        return self.released.count("browser")


@pytest.fixture
def config_store():
    return ConfigStore.from_mapping(BASE_CONFIG)


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def failing_launcher():
    return FakeLauncher(fail_with=SessionCreationError("browser executable not found"))


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Runtime-selection env vars must not leak in from the host."""
    for name in ("QA_ENVIRONMENT", "QA_BROWSER", "PLAYWRIGHT_HEADLESS", "QA_CONFIG_DIR"):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_config_store()


# Overrides of the plugin's session-scoped fixtures

@pytest.fixture(scope="session")
def qa_config():
    return ConfigStore.from_mapping(BASE_CONFIG)


@pytest.fixture(scope="session")
def qa_launcher():
    return FakeLauncher()
