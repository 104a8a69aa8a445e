"""
Browser launch factory.

Turns a browser kind plus configuration into a running Playwright browser,
context and page. Configuration keys read here:

    browser:
      default: chromium
      headless: false
      maximize: true
      options:
        chromium: ["--disable-gpu"]      # launch flags per kind
      firefox:
        preferences: {dom.webnotifications.enabled: false}
    timeouts:
      implicit: 10       # seconds, element lookups
      explicit: 30       # seconds, wait_for_* / wait_until
      pageLoad: 60       # seconds, navigation
      polling: 500       # milliseconds, wait_until poll interval

The sync Playwright API is bound to the thread that started it, so a launcher
must be called from the thread that will own the session.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Protocol

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright

from .config_store import ConfigStore
from .environment import DEFAULT_BROWSER, base_url as environment_base_url, headless_mode
from .exceptions import ConfigKeyError, SessionCreationError, TypeCoercionError
from .paths import to_bool

logger = logging.getLogger(__name__)

DEFAULT_IMPLICIT_WAIT = 10
DEFAULT_EXPLICIT_WAIT = 30
DEFAULT_PAGE_LOAD_TIMEOUT = 60
DEFAULT_POLLING_INTERVAL_MS = 500


class BrowserKind(NamedTuple):
    """Playwright engine plus optional branded channel."""
    engine: str
    channel: Optional[str] = None


# Registry of supported browser kinds
BROWSER_REGISTRY: Dict[str, BrowserKind] = {
    'chromium': BrowserKind('chromium'),
    'chrome': BrowserKind('chromium', 'chrome'),
    'edge': BrowserKind('chromium', 'msedge'),
    'firefox': BrowserKind('firefox'),
    'webkit': BrowserKind('webkit'),
    'safari': BrowserKind('webkit'),
}

# Applied when browser.options.<kind> is empty
DEFAULT_LAUNCH_ARGS: Dict[str, List[str]] = {
    'chromium': [
        "--no-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-extensions",
        "--disable-popup-blocking",
        "--disable-notifications",
    ],
    'firefox': [],
    'webkit': [],
}

DEFAULT_FIREFOX_PREFS: Dict[str, Any] = {
    "dom.webnotifications.enabled": False,
    "media.navigator.permission.disabled": True,
}


def resolve_browser_kind(kind: Optional[str], store: ConfigStore) -> str:
    """Normalize ``kind``; unknown kinds fall back to the configured default."""
    normalized = (kind or "").strip().lower()
    if normalized in BROWSER_REGISTRY:
        return normalized

    fallback = DEFAULT_BROWSER
    if store.contains("browser.default"):
        fallback = store.get_string("browser.default", DEFAULT_BROWSER).strip().lower()
    if fallback not in BROWSER_REGISTRY:
        logger.warning(f"Configured default browser {fallback!r} not recognized, using {DEFAULT_BROWSER}")
        fallback = DEFAULT_BROWSER

    logger.warning(f"Browser {kind!r} not recognized, using {fallback}")
    return fallback


def _configured_base_url(store: ConfigStore) -> Optional[str]:
    try:
        return environment_base_url(store)
    except ConfigKeyError:
        return None


def _timeout(store: ConfigStore, path: str, default: int) -> int:
    if not store.contains(path):
        return default
    value = store.get_int(path, default)
    if value <= 0:
        logger.warning(f"Timeout '{path}' must be positive, using default: {default}")
        return default
    return value


@dataclass
class LaunchSettings:
    """Everything needed to launch one session."""
    browser_kind: str
    headless: bool = False
    args: List[str] = field(default_factory=list)
    firefox_prefs: Dict[str, Any] = field(default_factory=dict)
    implicit_wait: int = DEFAULT_IMPLICIT_WAIT
    explicit_wait: int = DEFAULT_EXPLICIT_WAIT
    page_load_timeout: int = DEFAULT_PAGE_LOAD_TIMEOUT
    polling_interval_ms: int = DEFAULT_POLLING_INTERVAL_MS
    maximize: bool = True
    viewport: Optional[Dict[str, int]] = None
    base_url: Optional[str] = None

    @property
    def engine(self) -> str:
        return BROWSER_REGISTRY[self.browser_kind].engine

    @property
    def channel(self) -> Optional[str]:
        return BROWSER_REGISTRY[self.browser_kind].channel

    @classmethod
    def from_config(
        cls,
        browser_kind: Optional[str],
        store: ConfigStore,
        options: Optional[Mapping[str, Any]] = None,
    ) -> "LaunchSettings":
        """Build settings for ``browser_kind``; ``options`` override configuration.

        Recognized options: headless, args, viewport, base_url, maximize.
        """
        options = dict(options or {})
        kind = resolve_browser_kind(browser_kind, store)
        engine = BROWSER_REGISTRY[kind].engine

        args: List[str] = []
        if store.contains(f"browser.options.{kind}"):
            args = [str(flag) for flag in store.get_list(f"browser.options.{kind}", [])]
        if args:
            logger.debug(f"Launch flags for {kind} from configuration: {args}")
        else:
            args = list(DEFAULT_LAUNCH_ARGS.get(engine, []))
            logger.debug(f"Default launch flags applied for {kind}")
        args.extend(str(flag) for flag in options.pop("args", []) or [])

        firefox_prefs: Dict[str, Any] = {}
        if engine == 'firefox':
            if store.contains("browser.firefox.preferences"):
                firefox_prefs = store.get_map("browser.firefox.preferences", {})
            if not firefox_prefs:
                firefox_prefs = dict(DEFAULT_FIREFOX_PREFS)

        headless = options.pop("headless", None)
        if headless is None:
            headless = headless_mode(store)
        else:
            try:
                headless = to_bool(headless)
            except TypeCoercionError:
                logger.warning(f"Invalid headless option {headless!r}, using configuration")
                headless = headless_mode(store)

        maximize = options.pop("maximize", None)
        if maximize is None:
            maximize = True
            if store.contains("browser.maximize"):
                maximize = store.get_bool("browser.maximize", True)

        settings = cls(
            browser_kind=kind,
            headless=headless,
            args=args,
            firefox_prefs=firefox_prefs,
            implicit_wait=_timeout(store, "timeouts.implicit", DEFAULT_IMPLICIT_WAIT),
            explicit_wait=_timeout(store, "timeouts.explicit", DEFAULT_EXPLICIT_WAIT),
            page_load_timeout=_timeout(store, "timeouts.pageLoad", DEFAULT_PAGE_LOAD_TIMEOUT),
            polling_interval_ms=_timeout(store, "timeouts.polling", DEFAULT_POLLING_INTERVAL_MS),
            maximize=bool(maximize),
            viewport=options.pop("viewport", None),
            base_url=options.pop("base_url", None) or _configured_base_url(store),
        )
        if options:
            logger.warning(f"Ignoring unknown launch options: {sorted(options)}")
        return settings


@dataclass
class NativeHandles:
    """Native objects backing one session, released in reverse order."""
    playwright: Any
    browser: Any
    context: Any
    page: Any

    def release(self) -> None:
        """Close page, context and browser, then stop Playwright.

        Every step runs even if an earlier one fails; the first error is raised.
        """
        first_error: Optional[BaseException] = None
        for name, closer in (
            ("page", lambda: self.page.close()),
            ("context", lambda: self.context.close()),
            ("browser", lambda: self.browser.close()),
            ("playwright", lambda: self.playwright.stop()),
        ):
            target = getattr(self, name)
            if target is None:
                continue
            try:
                closer()
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")
                if first_error is None:
                    first_error = e
            setattr(self, name, None)
        if first_error is not None:
            raise first_error

    def release_quietly(self) -> None:
        """release() for cleanup paths that are already raising."""
        try:
            self.release()
        except Exception as e:
            logger.warning(f"Cleanup of partially launched browser failed: {e}")


class Launcher(Protocol):
    def __call__(self, settings: LaunchSettings) -> NativeHandles: ...


class PlaywrightLauncher:
    """Launches a browser with Playwright's sync API in the calling thread."""

    def __call__(self, settings: LaunchSettings) -> NativeHandles:
        playwright: Optional[Playwright] = None
        browser: Optional[Browser] = None
        context: Optional[BrowserContext] = None
        try:
            playwright = sync_playwright().start()
            browser = self._launch(playwright, settings)
            context = browser.new_context(**self._context_options(settings))
            context.set_default_timeout(settings.implicit_wait * 1000)
            context.set_default_navigation_timeout(settings.page_load_timeout * 1000)
            page: Page = context.new_page()
        except Exception as exc:
            NativeHandles(playwright, browser, context, None).release_quietly()
            raise SessionCreationError(f"Failed to launch {settings.browser_kind}: {exc}") from exc

        logger.debug(f"Launched {settings.browser_kind} (headless={settings.headless})")
        return NativeHandles(playwright=playwright, browser=browser, context=context, page=page)

    @staticmethod
    def _launch(playwright: Playwright, settings: LaunchSettings) -> Browser:
        launch_options: Dict[str, Any] = {
            "headless": settings.headless,
            "args": list(settings.args),
        }
        if settings.channel:
            launch_options["channel"] = settings.channel
        if settings.firefox_prefs:
            launch_options["firefox_user_prefs"] = dict(settings.firefox_prefs)
        if settings.maximize and not settings.headless and settings.engine == 'chromium':
            launch_options["args"].append("--start-maximized")

        browser_type = getattr(playwright, settings.engine)
        return browser_type.launch(**launch_options)

    @staticmethod
    def _context_options(settings: LaunchSettings) -> Dict[str, Any]:
        context_options: Dict[str, Any] = {}
        if settings.base_url:
            context_options["base_url"] = settings.base_url
        if settings.viewport:
            context_options["viewport"] = dict(settings.viewport)
        elif settings.maximize and not settings.headless:
            context_options["no_viewport"] = True
        return context_options
