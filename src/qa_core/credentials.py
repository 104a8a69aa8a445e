"""
Test credential resolution.

Each role resolves through a fixed fallback chain, first complete record wins:

1. configuration: ``users.<role>.username`` / ``users.<role>.password``
2. tabular data: first row whose ``Role`` column matches the role
3. built-in default table

Records are resolved fresh on every call so a reloaded configuration or a
rewritten data file is picked up without restarting the run.

Usage:
    resolver = CredentialResolver(store, tabular_source=read_users_sheet)
    admin = resolver.resolve("admin")
    logger.info(f"Logging in as {admin.username} ({resolver.masked_password(admin)})")
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional

from .config_store import ConfigStore
from .exceptions import CredentialResolutionError, TypeCoercionError
from .paths import ABSENT, to_list

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
PASSWORD_MASK = "****"

# Rows of string columns: Username, Password, Role, DisplayName, Email, Department, IsActive
TabularSource = Callable[[], Iterable[Mapping[str, str]]]


class Role(str, Enum):
    """Closed set of test roles; the value is the canonical lookup key."""

    ADMIN = "admin"
    TESTUSER = "testuser"
    READONLY = "readonly"
    MANAGER = "manager"
    USER = "user"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}") from None

    def __str__(self) -> str:
        return self.value


class DefaultCredential(NamedTuple):
    username: str
    password: str
    display_name: str


DEFAULT_CREDENTIALS: Dict[Role, DefaultCredential] = {
    Role.ADMIN: DefaultCredential("admin@kernotec.com", "Admin123!", "Administrator"),
    Role.TESTUSER: DefaultCredential("testuser@kernotec.com", "Test123!", "Test User"),
    Role.READONLY: DefaultCredential("readonly@kernotec.com", "ReadOnly123!", "Read Only User"),
    Role.MANAGER: DefaultCredential("manager@kernotec.com", "Manager123!", "Manager"),
    Role.USER: DefaultCredential("user@kernotec.com", "User123!", "Regular User"),
}

# Overridable per role at roles.<role>.permissions
DEFAULT_PERMISSIONS: Dict[Role, FrozenSet[str]] = {
    Role.ADMIN: frozenset({"read", "write", "delete", "admin", "manage"}),
    Role.MANAGER: frozenset({"read", "write", "manage"}),
    Role.TESTUSER: frozenset({"read", "write", "test"}),
    Role.READONLY: frozenset({"read"}),
    Role.USER: frozenset({"read"}),
}


@dataclass(frozen=True)
class CredentialRecord:
    """Resolved credentials for one role. Immutable."""
    role: Role
    username: str
    password: str = field(repr=False)
    display_name: str = ""
    permissions: FrozenSet[str] = frozenset()

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


def _non_empty(value: object) -> Optional[str]:
    if value is None or value is ABSENT:
        return None
    text = str(value)
    return text if text.strip() else None


class CredentialResolver:
    """Resolves roles to credential records through the fallback chain."""

    def __init__(
        self,
        config: ConfigStore,
        tabular_source: Optional[TabularSource] = None,
        defaults: Optional[Mapping[Role, DefaultCredential]] = None,
    ):
        """
        Args:
            config: Loaded configuration store
            tabular_source: Optional reader yielding credential rows
            defaults: Built-in table consulted last (DEFAULT_CREDENTIALS if omitted)
        """
        self.config = config
        self.tabular_source = tabular_source
        self.defaults: Mapping[Role, DefaultCredential] = DEFAULT_CREDENTIALS if defaults is None else defaults

    # ---- permission table ------------------------------------------------------

    def permissions_for(self, role: Role | str) -> FrozenSet[str]:
        role = Role.parse(role)
        path = f"roles.{role.value}.permissions"
        configured = self.config.get(path)
        if configured:
            try:
                return frozenset(str(item) for item in to_list(configured, path))
            except TypeCoercionError as exc:
                logger.warning(f"{exc}; using built-in permissions for role {role.value}")
        return DEFAULT_PERMISSIONS.get(role, frozenset({"read"}))

    # ---- fallback chain ----------------------------------------------------------

    def resolve(self, role: Role | str) -> CredentialRecord:
        """Resolve ``role`` to a complete record.

        Raises:
            CredentialResolutionError: No source produced username and password.
        """
        role = Role.parse(role)
        logger.info(f"Resolving credentials for role: {role.value}")

        for source_name, lookup in (
            ("configuration", self._from_config),
            ("tabular data", self._from_tabular),
            ("default table", self._from_defaults),
        ):
            record = lookup(role)
            if record is not None and record.is_complete:
                logger.debug(f"Credentials for role {role.value} resolved from {source_name}")
                return record

        logger.warning(f"No credentials found for role: {role.value}")
        raise CredentialResolutionError(role.value)

    def _from_config(self, role: Role) -> Optional[CredentialRecord]:
        base = f"users.{role.value}"
        username = _non_empty(self.config.get(f"{base}.username"))
        password = _non_empty(self.config.get(f"{base}.password"))
        if username is None or password is None:
            return None

        display_name = _non_empty(self.config.get(f"{base}.displayName")) or role.value
        return CredentialRecord(role, username, password, display_name, self.permissions_for(role))

    def _from_tabular(self, role: Role) -> Optional[CredentialRecord]:
        if self.tabular_source is None:
            return None

        try:
            rows = list(self.tabular_source())
        except Exception as e:
            logger.warning(f"Error reading tabular credentials for role {role.value}: {e}")
            return None

        for row in rows:
            row_role = _non_empty(row.get("Role"))
            if row_role is None or row_role.strip().lower() != role.value:
                continue

            username = _non_empty(row.get("Username"))
            password = _non_empty(row.get("Password"))
            if username is None or password is None:
                logger.warning(f"Tabular row for role {role.value} is missing username or password")
                return None

            display_name = _non_empty(row.get("DisplayName")) or role.value
            return CredentialRecord(role, username, password, display_name, self.permissions_for(role))

        logger.debug(f"No tabular row for role: {role.value}")
        return None

    def _from_defaults(self, role: Role) -> Optional[CredentialRecord]:
        default = self.defaults.get(role)
        if default is None:
            return None
        return CredentialRecord(
            role, default.username, default.password, default.display_name, self.permissions_for(role)
        )

    def resolve_all(self) -> Dict[Role, CredentialRecord]:
        """Every role that resolves, in declaration order."""
        records: Dict[Role, CredentialRecord] = {}
        for role in Role:
            try:
                records[role] = self.resolve(role)
            except CredentialResolutionError:
                continue
        logger.info(f"Resolved {len(records)} credential set(s)")
        return records

    # ---- validation --------------------------------------------------------------

    def validate_credentials(self, username: Optional[str], password: Optional[str]) -> bool:
        """True iff (username, password) exactly matches some role's resolved pair."""
        if username is None or password is None or not username.strip() or not password.strip():
            logger.warning("Empty credentials rejected")
            return False

        if len(username) < MIN_USERNAME_LENGTH or len(password) < MIN_PASSWORD_LENGTH:
            logger.warning("Credentials below minimum length rejected")
            return False

        role = self._match(username, password)
        if role is None:
            logger.warning(f"Invalid credentials for user: {username}")
            return False

        logger.info(f"Valid credentials for role: {role.value}")
        return True

    def role_for(self, username: Optional[str], password: Optional[str]) -> Optional[Role]:
        """Role whose resolved credentials match exactly, or None."""
        if username is None or password is None:
            return None
        role = self._match(username, password)
        if role is None:
            logger.warning(f"Could not determine role for user: {username}")
        return role

    def _match(self, username: str, password: str) -> Optional[Role]:
        for role in Role:
            try:
                record = self.resolve(role)
            except CredentialResolutionError:
                continue
            if record.username == username and record.password == password:
                return role
        return None

    # ---- generated and display helpers -------------------------------------------

    def generate_temporary(self, role: Role | str) -> CredentialRecord:
        """Disposable credentials with a millisecond timestamp suffix.

        Not globally unique: two calls within the same millisecond collide.
        """
        role = Role.parse(role)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S%f")[:-3]
        logger.info(f"Generating temporary credentials for role: {role.value}")
        return CredentialRecord(
            role=role,
            username=f"{role.value}_temp_{timestamp}",
            password=f"TempPass123!{timestamp[9:]}",
            display_name=f"Temporary {role.value}",
            permissions=self.permissions_for(role),
        )

    @staticmethod
    def masked_password(record: CredentialRecord) -> str:
        """Password safe for log output. Never use for comparison."""
        password = record.password or ""
        if len(password) < 4:
            return PASSWORD_MASK
        return f"{password[:2]}{PASSWORD_MASK}{password[-2:]}"

    def credentials_summary(self) -> str:
        lines: List[str] = ["=== AVAILABLE CREDENTIALS ==="]
        for role, record in self.resolve_all().items():
            lines.append(f"- {role.value}: {record.username} ({record.display_name})")
        summary = "\n".join(lines)
        logger.info(f"Credentials summary:\n{summary}")
        return summary
