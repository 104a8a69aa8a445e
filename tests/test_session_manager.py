"""Tests for per-context session lifecycle and driver-level waits."""
import threading

import pytest
from playwright.sync_api import Error as PlaywrightError

from qa_core.exceptions import (
    ContextReuseError,
    InteractionTimeoutError,
    NoActiveSessionError,
    SessionAlreadyActiveError,
    SessionCreationError,
)
from qa_core.session_manager import SessionManager, SessionState, current_context_id

from conftest import FakeLauncher


@pytest.fixture
def manager(config_store, launcher):
    return SessionManager(config_store, launcher=launcher)


class TestLifecycle:

    def test_initialize_returns_active_session(self, manager, launcher):
        session = manager.initialize("worker-1")

        assert session.is_active
        assert session.browser_kind == "chromium"
        assert manager.get_session("worker-1") is session
        assert manager.state("worker-1") is SessionState.ACTIVE
        assert manager.has_active_session("worker-1")
        assert len(launcher.launches) == 1

    def test_state_of_unknown_context(self, manager):
        assert manager.state("nobody") is SessionState.UNINITIALIZED
        with pytest.raises(NoActiveSessionError):
            manager.get_session("nobody")

    def test_close_releases_native_handles(self, manager, launcher):
        session = manager.initialize("worker-1")

        assert manager.close("worker-1") is True

        assert launcher.released == ["page", "context", "browser", "playwright"]
        assert session.state is SessionState.CLOSED
        assert manager.state("worker-1") is SessionState.CLOSED
        assert not manager.has_active_session("worker-1")
        with pytest.raises(NoActiveSessionError):
            manager.get_session("worker-1")
        with pytest.raises(NoActiveSessionError):
            session.page

    def test_second_initialize_is_rejected(self, manager, launcher):
        manager.initialize("worker-1")

        with pytest.raises(SessionAlreadyActiveError):
            manager.initialize("worker-1", "firefox")

        assert len(launcher.launches) == 1
        assert manager.get_session("worker-1").browser_kind == "chromium"

    def test_double_close_is_noop(self, manager, launcher):
        manager.initialize("worker-1")
        assert manager.close("worker-1") is True
        assert manager.close("worker-1") is False
        assert manager.close("never-opened") is False
        assert launcher.browser_releases == 1

    def test_closed_context_can_be_reused(self, manager, launcher):
        manager.initialize("worker-1")
        manager.close("worker-1")

        session = manager.initialize("worker-1", "firefox")

        assert session.browser_kind == "firefox"
        assert manager.state("worker-1") is SessionState.ACTIVE

    def test_reuse_forbidden_when_disabled(self, config_store, launcher):
        manager = SessionManager(config_store, launcher=launcher, allow_context_reuse=False)
        manager.initialize("worker-1")
        manager.close("worker-1")

        with pytest.raises(ContextReuseError):
            manager.initialize("worker-1")
        assert len(launcher.launches) == 1

    def test_unknown_browser_falls_back_to_default(self, manager, launcher, caplog):
        session = manager.initialize("worker-1", "netscape")

        assert session.browser_kind == "chromium"
        assert launcher.launches[0].browser_kind == "chromium"
        assert "netscape" in caplog.text

    def test_default_browser_from_environment_variable(self, manager, monkeypatch):
        monkeypatch.setenv("QA_BROWSER", "webkit")
        assert manager.initialize("worker-1").browser_kind == "webkit"

    def test_launch_failure_leaves_context_uninitialized(self, config_store, failing_launcher):
        manager = SessionManager(config_store, launcher=failing_launcher)

        with pytest.raises(SessionCreationError, match="executable not found"):
            manager.initialize("worker-1")

        assert manager.state("worker-1") is SessionState.UNINITIALIZED
        assert manager.active_contexts() == []

    def test_unexpected_launch_error_is_wrapped(self, config_store):
        manager = SessionManager(config_store, launcher=FakeLauncher(fail_with=OSError("no display")))

        with pytest.raises(SessionCreationError) as exc_info:
            manager.initialize("worker-1")

        assert exc_info.value.context_id == "worker-1"
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_close_all(self, manager, launcher):
        for name in ("a", "b", "c"):
            manager.initialize(name)
        manager.close("b")

        assert sorted(manager.active_contexts()) == ["a", "c"]
        assert manager.close_all() == 2
        assert manager.active_contexts() == []
        assert launcher.browser_releases == 3

    def test_manager_as_context_manager_closes_everything(self, config_store, launcher):
        with SessionManager(config_store, launcher=launcher) as manager:
            manager.initialize("a")
            manager.initialize("b")
        assert launcher.browser_releases == 2

    def test_session_block_closes_on_error(self, manager, launcher):
        with pytest.raises(RuntimeError):
            with manager.session("worker-1") as session:
                assert session.is_active
                raise RuntimeError("test failed")

        assert manager.state("worker-1") is SessionState.CLOSED
        assert launcher.browser_releases == 1

    def test_session_block_defaults_to_current_thread(self, manager):
        with manager.session() as session:
            assert session.context_id == current_context_id()


class TestConcurrency:

    def test_contexts_are_isolated(self, config_store):
        launcher = FakeLauncher(delay=0.01)
        manager = SessionManager(config_store, launcher=launcher)
        sessions = {}
        errors = []
        # All workers alive at once, so thread idents are distinct
        barrier = threading.Barrier(6)

        def worker():
            barrier.wait()
            context_id = current_context_id()
            try:
                sessions[context_id] = manager.initialize(context_id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(sessions) == 6
        assert len({id(s.page) for s in sessions.values()}) == 6
        assert manager.close_all() == 6

    def test_concurrent_initialize_of_one_context(self, config_store):
        launcher = FakeLauncher(delay=0.02)
        manager = SessionManager(config_store, launcher=launcher)
        barrier = threading.Barrier(5)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            try:
                manager.initialize("shared")
                outcome = "ok"
            except SessionAlreadyActiveError:
                outcome = "rejected"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("ok") == 1
        assert results.count("rejected") == 4
        assert len(launcher.launches) == 1

    def test_concurrent_close_releases_once(self, manager, launcher):
        manager.initialize("shared")
        barrier = threading.Barrier(5)
        results = []

        def worker():
            barrier.wait()
            results.append(manager.close("shared"))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert launcher.browser_releases == 1


class TestInteractions:

    def test_navigate_uses_page_load_timeout(self, manager):
        session = manager.initialize("worker-1")
        session.navigate("https://test.example.com/login")
        assert session.page.goto_calls == [("https://test.example.com/login", 20000)]

    def test_navigation_timeout_keeps_session_active(self, manager):
        session = manager.initialize("worker-1")

        with pytest.raises(InteractionTimeoutError) as exc_info:
            session.navigate("https://test.example.com/slow")

        assert exc_info.value.context_id == "worker-1"
        assert session.is_active
        assert manager.state("worker-1") is SessionState.ACTIVE

    def test_wait_for_selector(self, manager):
        session = manager.initialize("worker-1")
        session.page.visible_selectors.add("#username")

        assert session.wait_for_selector("#username") == "#username"
        with pytest.raises(InteractionTimeoutError, match="#password"):
            session.wait_for_selector("#password", timeout=1)
        assert session.is_active

    def test_wait_until_returns_first_truthy_result(self, manager):
        session = manager.initialize("worker-1")
        calls = []

        def condition(page):
            calls.append(page)
            if len(calls) == 1:
                raise PlaywrightError("element detached")
            return "ready" if len(calls) >= 3 else None

        assert session.wait_until(condition, timeout=2) == "ready"
        assert len(calls) == 3

    def test_wait_until_times_out(self, manager):
        session = manager.initialize("worker-1")

        with pytest.raises(InteractionTimeoutError, match="spinner to disappear"):
            session.wait_until(lambda page: False, timeout=0.05, message="spinner to disappear")
        assert session.is_active

    def test_browser_info(self, manager):
        session = manager.initialize("worker-1")
        session.navigate("https://test.example.com/")
        assert session.browser_info() == "Browser: chromium, URL: https://test.example.com/, Title: Fake Page"

        manager.close("worker-1")
        assert session.browser_info() == "No active browser"
