"""
Configuration sources.

A source is a named loader that returns one parsed hierarchical document.
Loaders report an absent document with ConfigSourceMissing and a malformed
one with ConfigLoadError; the store decides what each means for the load.

Default layout (directory from QA_CONFIG_DIR, default ./config):
- application.yml: primary configuration
- test-config.yml: test-run overrides
- <environment>.yml: environment-specific overrides (when an environment is set)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import yaml

from .exceptions import ConfigLoadError, ConfigSourceMissing

logger = logging.getLogger(__name__)

Loader = Callable[[], Mapping[str, Any]]

DEFAULT_CONFIG_DIR = "config"
PRIMARY_CONFIG_FILE = "application.yml"
TEST_CONFIG_FILE = "test-config.yml"

# Larger files are rejected unread
MAX_CONFIG_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ConfigSource:
    """Named origin of a configuration document, loaded in list order."""
    name: str
    loader: Loader
    required: bool = False

    def __repr__(self) -> str:
        return f"ConfigSource(name={self.name!r}, required={self.required})"


def _parse_yaml(text: str, name: str) -> Dict[str, Any]:
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in config source '{name}': {exc}", source=name) from exc

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigLoadError(
            f"Invalid configuration in '{name}': root must be a mapping, got {type(document).__name__}",
            source=name,
        )
    return document


def yaml_file_source(name: str, path: str | os.PathLike, required: bool = False) -> ConfigSource:
    """Source backed by a YAML file that is read on every load."""
    config_path = Path(path)

    def load() -> Dict[str, Any]:
        if not config_path.is_file():
            raise ConfigSourceMissing(f"Configuration file not found: {config_path}", source=name)

        file_size = config_path.stat().st_size
        if file_size > MAX_CONFIG_SIZE:
            raise ConfigLoadError(f"Configuration file too large: {config_path} ({file_size} bytes)", source=name)

        try:
            text = config_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigLoadError(f"Cannot read config file {config_path}: {exc}", source=name) from exc

        logger.debug(f"Read config source '{name}' from {config_path}")
        return _parse_yaml(text, name)

    return ConfigSource(name=name, loader=load, required=required)


def yaml_text_source(name: str, text: str, required: bool = False) -> ConfigSource:
    """Source backed by an in-memory YAML string."""
    return ConfigSource(name=name, loader=lambda: _parse_yaml(text, name), required=required)


def mapping_source(name: str, mapping: Mapping[str, Any] | None) -> ConfigSource:
    """Source backed by an already-parsed mapping. ``None`` means absent."""

    def load() -> Mapping[str, Any]:
        if mapping is None:
            raise ConfigSourceMissing(f"Configuration source '{name}' not provided", source=name)
        return mapping

    return ConfigSource(name=name, loader=load)


def default_sources(
    config_dir: str | os.PathLike | None = None,
    environment: Optional[str] = None,
) -> List[ConfigSource]:
    """Fixed-priority source list: primary, test overrides, environment overrides."""
    directory = Path(config_dir or os.getenv("QA_CONFIG_DIR") or DEFAULT_CONFIG_DIR)
    environment = environment or os.getenv("QA_ENVIRONMENT")

    sources = [
        yaml_file_source("application", directory / PRIMARY_CONFIG_FILE),
        yaml_file_source("test-config", directory / TEST_CONFIG_FILE),
    ]
    if environment:
        sources.append(yaml_file_source(f"env:{environment}", directory / f"{environment}.yml"))
    return sources
