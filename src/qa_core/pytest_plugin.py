"""pytest fixtures for browser tests.

Registered through the ``pytest11`` entry point, so installing the package is
enough:

    def test_login(browser_session, credential_resolver):
        admin = credential_resolver.resolve("admin")
        browser_session.navigate("/login")

Every test that uses ``browser_session`` gets its own session, closed on
success, failure and error alike.
"""
import logging

import pytest

from .browser import PlaywrightLauncher
from .config_store import get_config_store
from .credentials import CredentialResolver
from .session_manager import SessionManager, current_context_id

logger = logging.getLogger(__name__)


def apply_log_level(store) -> str:
    """Set the ``qa_core`` logger level from ``logging.level``; unknown names mean INFO."""
    level = store.get_string("logging.level", "INFO") if store.contains("logging.level") else "INFO"
    level = level.strip().upper()
    try:
        logging.getLogger("qa_core").setLevel(level)
    except ValueError:
        logger.warning(f"Unknown logging.level {level!r}, using INFO")
        level = "INFO"
        logging.getLogger("qa_core").setLevel(level)
    return level


@pytest.fixture(scope="session")
def qa_config():
    """Process-wide configuration store; also applies ``logging.level``."""
    store = get_config_store()
    apply_log_level(store)
    return store


@pytest.fixture(scope="session")
def qa_launcher():
    """Native launcher used by ``session_manager``; override to stub the browser."""
    return PlaywrightLauncher()


@pytest.fixture(scope="session")
def credential_resolver(qa_config):
    return CredentialResolver(qa_config)


@pytest.fixture(scope="session")
def session_manager(qa_config, qa_launcher):
    """Session manager shared by the run; leftover sessions are closed at the end."""
    manager = SessionManager(qa_config, launcher=qa_launcher)
    yield manager
    leftover = manager.close_all()
    if leftover:
        logger.warning(f"Closed {leftover} session(s) left open at end of run")


@pytest.fixture()
def browser_session(session_manager):
    """One browser session for the current test, always closed afterwards."""
    context_id = current_context_id()
    session = session_manager.initialize(context_id)
    try:
        yield session
    finally:
        session_manager.close(context_id)
