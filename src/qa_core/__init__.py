"""
Browser test core.

Layered configuration, per-role test credentials and per-context browser
sessions for Playwright-based test suites.

Usage:
    from qa_core import ConfigStore, CredentialResolver, SessionManager, default_sources

    store = ConfigStore(default_sources())
    store.load()

    admin = CredentialResolver(store).resolve("admin")
    with SessionManager(store).session() as session:
        session.navigate("/login")
"""

from .config_store import ConfigStore, get_config_store, merge, reset_config_store, set_config_store
from .credentials import CredentialRecord, CredentialResolver, Role
from .exceptions import (
    ConfigKeyError,
    ConfigLoadError,
    ConfigSourceMissing,
    ContextReuseError,
    CredentialResolutionError,
    InteractionTimeoutError,
    NoActiveSessionError,
    QACoreError,
    SessionAlreadyActiveError,
    SessionCreationError,
    TypeCoercionError,
)
from .paths import ABSENT
from .session_manager import Session, SessionManager, SessionState, current_context_id
from .sources import ConfigSource, default_sources, mapping_source, yaml_file_source, yaml_text_source

__version__ = "1.0.0"

__all__ = [
    'ABSENT',
    'ConfigStore',
    'ConfigSource',
    'get_config_store',
    'set_config_store',
    'reset_config_store',
    'merge',
    'default_sources',
    'mapping_source',
    'yaml_file_source',
    'yaml_text_source',
    'CredentialRecord',
    'CredentialResolver',
    'Role',
    'Session',
    'SessionManager',
    'SessionState',
    'current_context_id',
    'QACoreError',
    'ConfigKeyError',
    'ConfigLoadError',
    'ConfigSourceMissing',
    'TypeCoercionError',
    'CredentialResolutionError',
    'ContextReuseError',
    'InteractionTimeoutError',
    'NoActiveSessionError',
    'SessionAlreadyActiveError',
    'SessionCreationError',
]
