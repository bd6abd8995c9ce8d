"""
bwenv: Sync .env files with a remote secret store.

Keeps the variables of a local `.env` file and a remote project in step
without committing values to version control.

Basic Usage:
    bwenv pull --project my-app
    bwenv push --project my-app --overwrite
    bwenv status --project my-app
"""

__version__ = "0.1.0"

from .config import BwenvConfig, ConfigurationError
from .drift import DriftReport, diff
from .envfile import (
    EnvDocument,
    EnvEntry,
    EnvFileError,
    EnvParser,
    ParseError,
    ParseMode,
    WriteOrder,
    parse,
    serialize,
    serialize_map,
)
from .merge import MergePolicy, merge
from .providers import ProviderError, ProviderRegistry, SecretsProvider
from .sync import SafetyGateError, SyncOrchestrator
from .cli import main

__all__ = [
    "main",
    "BwenvConfig",
    "ConfigurationError",
    "DriftReport",
    "diff",
    "EnvDocument",
    "EnvEntry",
    "EnvFileError",
    "EnvParser",
    "ParseError",
    "ParseMode",
    "WriteOrder",
    "parse",
    "serialize",
    "serialize_map",
    "MergePolicy",
    "merge",
    "ProviderError",
    "ProviderRegistry",
    "SecretsProvider",
    "SafetyGateError",
    "SyncOrchestrator",
]
