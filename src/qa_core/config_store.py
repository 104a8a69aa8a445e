"""
Layered configuration store.

Sources are loaded in priority order and merged left to right, later sources
winning. Consumers read through dot-path typed accessors only:

    store = ConfigStore([yaml_file_source("application", "config/application.yml")])
    store.load()
    timeout = store.get_int("timeouts.implicit", 10)

Merging is shallow: a top-level key present in an overlay replaces the base's
whole value for that key. Nested structures are not merged.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .exceptions import ConfigKeyError, ConfigLoadError, ConfigSourceMissing, TypeCoercionError
from .paths import ABSENT, freeze, resolve_path, to_bool, to_int, to_list, to_map, to_string
from .sources import ConfigSource, default_sources, mapping_source

logger = logging.getLogger(__name__)

_NO_DEFAULT = object()

_EMPTY_TREE: Mapping[str, Any] = freeze({})


def merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Shallow merge: every top-level key of ``overlay`` replaces ``base``'s value.

    Neither input is modified.
    """
    merged = dict(base)
    for key, value in overlay.items():
        merged[key] = value
    return merged


class ConfigStore:
    """Merged, read-only view over an ordered list of configuration sources."""

    def __init__(self, sources: Optional[Sequence[ConfigSource]] = None):
        self._sources: List[ConfigSource] = list(sources or [])
        self._tree: Mapping[str, Any] = _EMPTY_TREE
        self._loaded_names: tuple[str, ...] = ()
        self._loaded = False
        self._reload_lock = threading.Lock()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], name: str = "inline") -> "ConfigStore":
        """Build and load a store from a single in-memory document."""
        store = cls([mapping_source(name, mapping)])
        store.load()
        return store

    # ---- loading ---------------------------------------------------------------

    @property
    def sources(self) -> List[ConfigSource]:
        return list(self._sources)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def source_names_loaded(self) -> tuple[str, ...]:
        """Names of the sources that contributed to the current tree."""
        return self._loaded_names

    def load(self, sources: Optional[Sequence[ConfigSource]] = None) -> Mapping[str, Any]:
        """Load and merge ``sources`` (or the configured list) and install the result.

        Raises:
            ConfigLoadError: A source is malformed, or required and absent.
                The previously installed tree and source list are kept.
        """
        new_sources = self._sources if sources is None else list(sources)

        logger.info(f"Loading configuration from {len(new_sources)} source(s)")
        tree, loaded_names = self._build_tree(new_sources)

        with self._reload_lock:
            self._sources = new_sources
            self._tree = tree
            self._loaded_names = loaded_names
            self._loaded = True

        logger.info(f"Configuration loaded: {', '.join(loaded_names) or 'no sources found'}")
        return tree

    def reload(self) -> Mapping[str, Any]:
        """Re-run load() over the same source list and swap the tree atomically."""
        if not self._loaded:
            logger.warning("Reloading configuration that was never loaded")
        tree = self.load()
        logger.info("Configuration reloaded successfully")
        return tree

    def _build_tree(self, sources: Sequence[ConfigSource]) -> tuple[Mapping[str, Any], tuple[str, ...]]:
        merged: Dict[str, Any] = {}
        loaded_names: List[str] = []

        for source in sources:
            try:
                document = source.loader()
            except ConfigSourceMissing as exc:
                if source.required:
                    raise ConfigLoadError(f"Required configuration source missing: {exc}", source=source.name) from exc
                logger.warning(f"Skipping configuration source '{source.name}': {exc}")
                continue
            except ConfigLoadError:
                logger.error(f"Configuration source '{source.name}' is invalid")
                raise

            if not isinstance(document, Mapping):
                raise ConfigLoadError(
                    f"Configuration source '{source.name}' did not produce a mapping",
                    source=source.name,
                )

            merged = merge(merged, document)
            loaded_names.append(source.name)
            logger.debug(f"Merged configuration source '{source.name}' ({len(document)} top-level keys)")

        return freeze(merged), tuple(loaded_names)

    # ---- lookups -----------------------------------------------------------------

    def snapshot(self) -> Mapping[str, Any]:
        """The current read-only tree; stays consistent across a later reload()."""
        return self._tree

    def get(self, path: str) -> Any:
        """Raw node at ``path`` or ``ABSENT``."""
        return resolve_path(self._tree, path)

    def contains(self, path: str) -> bool:
        return self.get(path) is not ABSENT

    def get_string(self, path: str, default: Any = _NO_DEFAULT) -> str:
        return self._typed(path, default, to_string)

    def get_int(self, path: str, default: Any = _NO_DEFAULT) -> int:
        return self._typed(path, default, to_int)

    def get_bool(self, path: str, default: Any = _NO_DEFAULT) -> bool:
        return self._typed(path, default, to_bool)

    def get_list(self, path: str, default: Any = _NO_DEFAULT) -> List[Any]:
        return self._typed(path, default, to_list)

    def get_map(self, path: str, default: Any = _NO_DEFAULT) -> Dict[str, Any]:
        return self._typed(path, default, to_map)

    def _typed(self, path: str, default: Any, coerce: Callable[[Any, Optional[str]], Any]) -> Any:
        value = self.get(path)

        # YAML null counts as "no value"
        if value is ABSENT or value is None:
            if default is _NO_DEFAULT:
                raise ConfigKeyError(path)
            logger.warning(f"Configuration key '{path}' not found, using default: {default!r}")
            return default

        try:
            return coerce(value, path)
        except TypeCoercionError as exc:
            if default is _NO_DEFAULT:
                raise
            logger.warning(f"{exc}; using default: {default!r}")
            return default

    def __repr__(self) -> str:
        return f"ConfigStore(sources={[s.name for s in self._sources]}, loaded={self._loaded})"


# ---- process-wide instance -------------------------------------------------------

_store: Optional[ConfigStore] = None
_store_lock = threading.Lock()


def get_config_store() -> ConfigStore:
    """Process-wide store, built from default_sources() on first access."""
    global _store

    store = _store
    if store is not None:
        return store

    with _store_lock:
        if _store is None:
            logger.info("Initializing process-wide configuration store")
            new_store = ConfigStore(default_sources())
            new_store.load()
            _store = new_store
        return _store


def set_config_store(store: ConfigStore) -> None:
    """Install an explicitly built store as the process-wide instance."""
    global _store
    with _store_lock:
        _store = store


def reset_config_store() -> None:
    """Drop the process-wide instance; the next access rebuilds it."""
    global _store
    with _store_lock:
        _store = None
