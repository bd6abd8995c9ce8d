"""
Configuration management for bwenv.

This module loads the project configuration file (`.bwenv.yaml`), applies
environment overrides, and exposes the result as an immutable BwenvConfig
that is built once per invocation and passed to the components that need
it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .envfile import WriteOrder
from .merge import MergePolicy

CONFIG_FILENAMES = (".bwenv.yaml", ".bwenv.yml", "bwenv.yaml")

RECOGNIZED_OPTIONS = frozenset(
    {"default_project", "env_file", "write_order", "merge_policy", "log_level", "provider"}
)
RECOGNIZED_PROVIDER_OPTIONS = frozenset({"type", "options"})
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

ENV_ACCESS_TOKEN = "BWS_ACCESS_TOKEN"
ENV_ORGANIZATION_ID = "BWS_ORGANIZATION_ID"
ENV_PROJECT = "BWENV_PROJECT"
ENV_ENV_FILE = "BWENV_ENV_FILE"
ENV_LOG_LEVEL = "BWENV_LOG_LEVEL"

STARTER_CONFIG = """\
# bwenv configuration
# Safe to commit: this file never holds secret values.

# Default project (name or id); override with --project
default_project: MyProject

# Default .env file location
env_file: .env

# Key order when writing .env files: sorted | insertion
write_order: sorted

# Conflict rule for `pull --merge`: preserve (local wins) | overwrite (remote wins)
merge_policy: preserve

provider:
  type: bitwarden
  options:
    organization_id: ""
"""


@dataclass(frozen=True)
class ProviderConfig:
    """Which provider to use and its options."""

    type: str = "bitwarden"
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class BwenvConfig:
    """Main configuration for bwenv."""

    default_project: str | None = None
    env_file: str = ".env"
    write_order: WriteOrder = WriteOrder.SORTED
    merge_policy: MergePolicy = MergePolicy.PRESERVE
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    access_token: str = field(default="", repr=False)
    log_level: str | None = None
    source: Path | None = None

    @classmethod
    def load(
        cls,
        config_path: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "BwenvConfig":
        """
        Load configuration from a YAML file and the environment.

        Args:
            config_path: Path to the configuration file. If None, searches
                        for config in standard locations.
            environ: Environment mapping for overrides (default: os.environ)

        Returns:
            A BwenvConfig instance with the loaded configuration.

        Raises:
            ConfigurationError: If the file is invalid or holds unknown options
        """
        environ = os.environ if environ is None else environ

        if config_path is None:
            config_path = cls._find_config_file()
        elif not Path(config_path).exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        config = cls() if config_path is None else cls._parse_config_file(config_path)
        return config._apply_environ(environ)

    @classmethod
    def _find_config_file(cls) -> Path | None:
        """Search for config file in standard locations."""
        search_paths = [Path.cwd() / name for name in CONFIG_FILENAMES]
        search_paths.append(Path.home() / ".config" / "bwenv.yaml")

        for path in search_paths:
            if path.exists():
                return path

        return None

    @classmethod
    def _parse_config_file(cls, config_path: str | Path) -> "BwenvConfig":
        """Parse a YAML configuration file."""
        path = Path(config_path)

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in config file: {exc}", exc) from exc
        except OSError as exc:
            raise ConfigurationError(f"Cannot read config file {path}: {exc.strerror}", exc) from exc

        if data is None:
            return cls(source=path)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        return cls.from_dict(data, source=path)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source: Path | None = None) -> "BwenvConfig":
        """Build a config from already-parsed options."""
        unknown = sorted(set(data) - RECOGNIZED_OPTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown config option(s): {', '.join(unknown)}")

        provider_data = data.get("provider") or {}
        if not isinstance(provider_data, dict):
            raise ConfigurationError("'provider' must be a mapping")
        unknown = sorted(set(provider_data) - RECOGNIZED_PROVIDER_OPTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown provider option(s): {', '.join(unknown)}")

        try:
            write_order = WriteOrder(str(data.get("write_order", "sorted")).lower())
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid write_order '{data.get('write_order')}' (expected sorted or insertion)"
            ) from exc

        try:
            merge_policy = MergePolicy.parse(data.get("merge_policy", "preserve"))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        default_project = data.get("default_project")
        return cls(
            default_project=str(default_project) if default_project else None,
            env_file=str(data.get("env_file") or ".env"),
            write_order=write_order,
            merge_policy=merge_policy,
            provider=ProviderConfig(
                type=str(provider_data.get("type", "bitwarden")),
                options=MappingProxyType(dict(provider_data.get("options") or {})),
            ),
            log_level=_check_log_level(data.get("log_level")),
            source=source,
        )

    def _apply_environ(self, environ: Mapping[str, str]) -> "BwenvConfig":
        options = dict(self.provider.options)
        if environ.get(ENV_ORGANIZATION_ID):
            options["organization_id"] = environ[ENV_ORGANIZATION_ID]

        return replace(
            self,
            default_project=environ.get(ENV_PROJECT) or self.default_project,
            env_file=environ.get(ENV_ENV_FILE) or self.env_file,
            log_level=_check_log_level(environ.get(ENV_LOG_LEVEL)) or self.log_level,
            access_token=environ.get(ENV_ACCESS_TOKEN, self.access_token),
            provider=ProviderConfig(type=self.provider.type, options=MappingProxyType(options)),
        )

    def with_overrides(self, **changes: Any) -> "BwenvConfig":
        """Return a copy with the given fields replaced; None values are ignored."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    def provider_options(self) -> dict[str, Any]:
        """Options handed to the provider factory, including credentials."""
        options = dict(self.provider.options)
        if self.access_token:
            options.setdefault("access_token", self.access_token)
        return options


def _check_log_level(level: Any) -> str | None:
    if not level:
        return None
    name = str(level).upper()
    if name not in LOG_LEVELS:
        raise ConfigurationError(f"Invalid log_level '{level}' (expected one of: {', '.join(LOG_LEVELS)})")
    return name


def init_config(path: str | Path = CONFIG_FILENAMES[0], force: bool = False) -> Path:
    """
    Write a starter configuration file.

    Raises:
        ConfigurationError: If the file exists and force is not set
    """
    path = Path(path)
    if path.exists() and not force:
        raise ConfigurationError(f"{path} already exists (use --force to overwrite)")

    path.write_text(STARTER_CONFIG, encoding="utf-8")
    return path


class ConfigurationError(Exception):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, from_exception: Exception | None = None) -> None:
        self.message = message
        self.from_exception = from_exception
        super().__init__(message)
        if from_exception:
            self.__cause__ = from_exception
