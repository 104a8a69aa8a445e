"""
Error taxonomy for the browser test core.

Infrastructure failures (malformed required config, browser launch failure)
propagate to the caller. Soft failures (absent optional source, coercible
type mismatch with a default) are absorbed by the component that detects
them and only logged, so they rarely reach callers.
"""


class QACoreError(Exception):
    """Base class for every error raised by qa_core."""
    pass


# ---- configuration ----------------------------------------------------------

class ConfigError(QACoreError):
    """Base class for configuration errors."""
    pass


class ConfigLoadError(ConfigError):
    """A configuration source is malformed (or required and absent)."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class ConfigSourceMissing(ConfigError):
    """An optional configuration source does not exist."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class ConfigKeyError(ConfigError, KeyError):
    """A dot-path has no value and the caller supplied no default."""

    def __init__(self, path: str):
        super().__init__(path)
        self.path = path

    def __str__(self) -> str:
        return f"Configuration key not found: {self.path}"


class TypeCoercionError(ConfigError, ValueError):
    """A configuration value exists but cannot be read as the requested type."""

    def __init__(self, path: str | None, expected: str, value: object):
        self.path = path
        self.expected = expected
        self.value = value
        where = f" at '{path}'" if path else ""
        super().__init__(f"Cannot read {value!r}{where} as {expected}")


# ---- credentials ------------------------------------------------------------

class CredentialResolutionError(QACoreError):
    """No credential source produced a complete record for a role."""

    def __init__(self, role: str):
        super().__init__(f"No complete credentials found for role: {role}")
        self.role = role


# ---- sessions ---------------------------------------------------------------

class SessionError(QACoreError):
    """Base class for session lifecycle errors."""

    def __init__(self, message: str, context_id: str | None = None):
        super().__init__(message)
        self.context_id = context_id


class SessionAlreadyActiveError(SessionError):
    """initialize() was called for a context that already owns an active session."""
    pass


class NoActiveSessionError(SessionError):
    """The context has no active session."""
    pass


class ContextReuseError(SessionError):
    """A closed context id was reused while the manager forbids reuse."""
    pass


class SessionCreationError(SessionError):
    """The native browser could not be launched."""
    pass


class InteractionTimeoutError(SessionError):
    """A driver wait timed out. The session stays active."""
    pass
