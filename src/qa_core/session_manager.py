"""
Session Manager for browser tests.

Owns exactly one browser session per execution context (one worker thread
or task). Each context moves through:

    UNINITIALIZED -> ACTIVE -> CLOSED

initialize() and close() are the only mutators. A context that already owns
an active session cannot be initialized again until it is closed, so a
second launch can never leak the first native browser process.

Usage:
    manager = SessionManager(store)
    with manager.session(browser_kind="firefox") as session:
        session.navigate("/login")
        session.wait_for_selector("#username")

The native handles are not thread-safe: a Session must only be used by the
context that created it.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Set

from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from .browser import LaunchSettings, Launcher, NativeHandles, PlaywrightLauncher
from .config_store import ConfigStore
from .environment import default_browser
from .exceptions import (
    ContextReuseError,
    InteractionTimeoutError,
    NoActiveSessionError,
    SessionAlreadyActiveError,
    SessionCreationError,
)

logger = logging.getLogger(__name__)


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    CLOSED = "closed"


def current_context_id() -> str:
    """Execution context id of the calling thread."""
    return f"thread-{threading.get_ident()}"


class Session:
    """Handle to one live browser session, owned by a single context."""

    def __init__(self, context_id: str, settings: LaunchSettings, handles: NativeHandles):
        self.context_id = context_id
        self.settings = settings
        self._handles = handles
        self._state = SessionState.ACTIVE
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Session(context={self.context_id}, browser={self.browser_kind}, state={self._state.value})"

    @property
    def browser_kind(self) -> str:
        return self.settings.browser_kind

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    def _require_active(self) -> NativeHandles:
        if self._state is not SessionState.ACTIVE:
            raise NoActiveSessionError(
                f"Session for context {self.context_id} is {self._state.value}",
                context_id=self.context_id,
            )
        return self._handles

    @property
    def page(self):
        """The Playwright Page of this session."""
        return self._require_active().page

    @property
    def context(self):
        """The isolated Playwright BrowserContext of this session."""
        return self._require_active().context

    @property
    def browser(self):
        return self._require_active().browser

    # ---- driver-level helpers ----------------------------------------------------

    def navigate(self, url: str) -> Any:
        """Navigate to ``url`` (relative URLs resolve against the configured base URL)."""
        page = self.page
        logger.info(f"Navigating to URL: {url}")
        try:
            return page.goto(url, timeout=self.settings.page_load_timeout * 1000)
        except PlaywrightTimeout as exc:
            raise InteractionTimeoutError(
                f"Page load of {url} exceeded {self.settings.page_load_timeout}s",
                context_id=self.context_id,
            ) from exc

    def wait_for_selector(self, selector: str, timeout: Optional[float] = None) -> Any:
        """Wait until ``selector`` is visible, using the explicit wait by default."""
        page = self.page
        seconds = timeout if timeout is not None else self.settings.explicit_wait
        try:
            return page.wait_for_selector(selector, state="visible", timeout=seconds * 1000)
        except PlaywrightTimeout as exc:
            raise InteractionTimeoutError(
                f"Element '{selector}' not visible within {seconds}s",
                context_id=self.context_id,
            ) from exc

    def wait_until(
        self,
        condition: Callable[[Any], Any],
        timeout: Optional[float] = None,
        message: str = "condition",
    ) -> Any:
        """Poll ``condition(page)`` until it returns a truthy value.

        Driver errors raised by the condition count as "not yet". Raises
        InteractionTimeoutError when the explicit wait elapses.
        """
        page = self.page
        seconds = timeout if timeout is not None else self.settings.explicit_wait
        interval = self.settings.polling_interval_ms / 1000
        deadline = time.monotonic() + seconds
        last_error: PlaywrightError | None = None

        while True:
            try:
                result = condition(page)
            except PlaywrightError as exc:
                result = None
                last_error = exc
            if result:
                return result
            if time.monotonic() >= deadline:
                break
            time.sleep(interval)

        error = InteractionTimeoutError(f"Timed out after {seconds}s waiting for {message}", context_id=self.context_id)
        if last_error:
            raise error from last_error
        raise error

    def browser_info(self) -> str:
        if not self.is_active:
            return "No active browser"
        try:
            page = self._handles.page
            return f"Browser: {self.browser_kind}, URL: {page.url}, Title: {page.title()}"
        except PlaywrightError as e:
            logger.debug(f"Error reading browser info: {e}")
            return f"Browser: {self.browser_kind} (details unavailable)"

    # ---- lifecycle (SessionManager only) -------------------------------------------

    def _release(self) -> bool:
        """Transition ACTIVE -> CLOSED; True only for the call that did it."""
        with self._lock:
            if self._state is not SessionState.ACTIVE:
                return False
            self._state = SessionState.CLOSED

        try:
            self._handles.release()
        except Exception as e:
            logger.warning(f"Error releasing browser for context {self.context_id}: {e}")
        return True


class SessionManager:
    """
    Factory and lifecycle owner of per-context browser sessions.

    initialize/close for one context id are serialized by a per-context lock;
    different contexts launch and tear down in parallel.
    """

    def __init__(
        self,
        config: ConfigStore,
        launcher: Optional[Launcher] = None,
        allow_context_reuse: bool = True,
    ):
        """
        Args:
            config: Loaded configuration store (launch flags, timeouts, defaults)
            launcher: Callable creating native handles (PlaywrightLauncher if omitted)
            allow_context_reuse: Whether a closed context id may be initialized again
        """
        self.config = config
        self.launcher: Launcher = launcher or PlaywrightLauncher()
        self.allow_context_reuse = allow_context_reuse
        self._sessions: Dict[str, Session] = {}
        self._closed_contexts: Set[str] = set()
        self._context_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_all()

    def _lock_for(self, context_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._context_locks.get(context_id)
            if lock is None:
                lock = self._context_locks[context_id] = threading.Lock()
            return lock

    def initialize(
        self,
        context_id: str,
        browser_kind: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Session:
        """Launch a session for ``context_id`` and return its handle.

        Raises:
            SessionAlreadyActiveError: The context already owns an active session
            ContextReuseError: The context was closed and reuse is disabled
            SessionCreationError: The native browser failed to launch
        """
        with self._lock_for(context_id):
            existing = self._sessions.get(context_id)
            if existing is not None and existing.is_active:
                raise SessionAlreadyActiveError(
                    f"Context {context_id} already has an active session",
                    context_id=context_id,
                )
            if not self.allow_context_reuse and context_id in self._closed_contexts:
                raise ContextReuseError(
                    f"Context {context_id} was closed and cannot be reused",
                    context_id=context_id,
                )

            kind = browser_kind or default_browser(self.config)
            settings = LaunchSettings.from_config(kind, self.config, options)
            logger.info(
                f"Initializing {settings.browser_kind} session for context {context_id} "
                f"(headless={settings.headless})"
            )

            try:
                handles = self.launcher(settings)
            except SessionCreationError:
                logger.error(f"Session creation failed for context {context_id}")
                raise
            except Exception as exc:
                logger.error(f"Session creation failed for context {context_id}: {exc}")
                raise SessionCreationError(
                    f"Failed to launch {settings.browser_kind}: {exc}",
                    context_id=context_id,
                ) from exc

            session = Session(context_id, settings, handles)
            with self._registry_lock:
                self._sessions[context_id] = session
                self._closed_contexts.discard(context_id)

        logger.info(f"Session initialized: {session}")
        return session

    def get_session(self, context_id: str) -> Session:
        """Active session of ``context_id``; never creates one."""
        session = self._sessions.get(context_id)
        if session is None or not session.is_active:
            raise NoActiveSessionError(f"No active session for context {context_id}", context_id=context_id)
        return session

    def close(self, context_id: str) -> bool:
        """Close the context's session. Idempotent; True only if this call closed it."""
        with self._lock_for(context_id):
            with self._registry_lock:
                session = self._sessions.pop(context_id, None)
                if session is not None:
                    self._closed_contexts.add(context_id)

            if session is None:
                logger.debug(f"No active session to close for context {context_id}")
                return False

            logger.info(f"Closing session for context {context_id}")
            closed = session._release()

        if closed:
            logger.info(f"Session closed for context {context_id}")
        return closed

    def state(self, context_id: str) -> SessionState:
        session = self._sessions.get(context_id)
        if session is not None:
            return session.state
        if context_id in self._closed_contexts:
            return SessionState.CLOSED
        return SessionState.UNINITIALIZED

    def has_active_session(self, context_id: str) -> bool:
        return self.state(context_id) is SessionState.ACTIVE

    def active_contexts(self) -> List[str]:
        with self._registry_lock:
            return [ctx for ctx, session in self._sessions.items() if session.is_active]

    def close_all(self) -> int:
        """Close every active session; returns how many were closed."""
        closed = 0
        for context_id in self.active_contexts():
            if self.close(context_id):
                closed += 1
        if closed:
            logger.info(f"Closed {closed} remaining session(s)")
        return closed

    @contextmanager
    def session(
        self,
        context_id: Optional[str] = None,
        browser_kind: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[Session]:
        """Initialize a session and close it on every exit path."""
        context_id = context_id or current_context_id()
        session = self.initialize(context_id, browser_kind, options)
        try:
            yield session
        finally:
            self.close(context_id)
