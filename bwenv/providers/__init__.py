"""
Secrets provider interface and registry for bwenv.

A provider is anything that can list projects and read and write the
secrets of a project in a remote store. Providers are matched structurally
against the `SecretsProvider` protocol, so an implementation only needs the
right coroutine methods; no base class is involved.

Usage:
    from bwenv.providers import ProviderRegistry, default_registry

    registry = default_registry()
    provider = registry.create("memory", {"projects": {"web": {"API_KEY": "x"}}})

    # Register a custom provider
    registry.register(
        ProviderInfo(name="my-store", description="My secret store"),
        lambda options: MyStoreProvider(**options),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Protocol

from ..merge import MergePolicy, merge_with_changes


@dataclass(frozen=True)
class Project:
    """A remote project grouping a set of secrets."""

    id: str
    name: str
    organization_id: str = ""


@dataclass(frozen=True)
class Secret:
    """A single remote secret. The value never appears in repr."""

    id: str
    key: str
    value: str = field(repr=False)
    project_id: str = ""
    note: str | None = None


@dataclass
class ProviderInfo:
    """Metadata about a provider."""

    name: str
    description: str
    version: str = "1.0.0"
    requires: str = ""


class SecretsProvider(Protocol):
    """
    Capability interface for a remote secret store.

    Implementations:
        - MemoryProvider: in-process store for tests and offline use
        - BitwardenProvider: Bitwarden Secrets Manager

    Every method is a coroutine. Failures are reported with ProviderError
    subclasses: ProviderNotFoundError for unknown projects,
    ProviderAuthError for rejected credentials and ProviderNetworkError for
    transport failures.
    """

    async def list_projects(self) -> list[Project]:
        """Return every project visible to the credentials."""
        ...

    async def list_secrets(self, project_id: str) -> list[Secret]:
        """Return all secrets of a project."""
        ...

    async def get_secrets_map(self, project_id: str) -> dict[str, str]:
        """Return the secrets of a project as a key/value mapping."""
        ...

    async def sync_secrets(
        self, project_id: str, secrets: Mapping[str, str], overwrite: bool
    ) -> list[Secret]:
        """
        Create secrets for keys missing remotely.

        Existing keys are updated only when `overwrite` is true; otherwise
        their remote values are left alone.

        Returns:
            The remote secret for every key in `secrets` after the call
        """
        ...

    async def close(self) -> None:
        """Release connections or other resources."""
        ...


@dataclass(frozen=True)
class SyncPlan:
    """Which keys a provider has to create and update for a sync."""

    create: tuple[str, ...] = ()
    update: tuple[str, ...] = ()
    unchanged: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not (self.create or self.update)


def plan_sync(
    existing: Mapping[str, str], incoming: Mapping[str, str], overwrite: bool
) -> SyncPlan:
    """
    Work out the writes needed to sync `incoming` into `existing`.

    The conflict rules are those of the merge engine with the policy
    given by `overwrite`: keys absent from `existing` are created, differing
    keys are updated under OVERWRITE and skipped under PRESERVE, and keys
    with equal values need no write.
    """
    result = merge_with_changes(existing, incoming, MergePolicy.from_flag(overwrite))

    return SyncPlan(
        create=result.added,
        update=result.updated,
        unchanged=tuple(sorted(key for key in incoming if existing.get(key) == incoming[key])),
        skipped=result.kept,
    )


ProviderFactory = Callable[[Mapping[str, Any]], SecretsProvider]


class ProviderRegistry:
    """
    Registry of provider factories keyed by name.

    The registry maps a provider name to a factory that builds a provider
    instance from its configuration options. Each CLI invocation builds its
    own registry, so nothing is shared between runs.
    """

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}
        self._info: dict[str, ProviderInfo] = {}

    def register(
        self,
        info: ProviderInfo,
        factory: ProviderFactory,
        name: str | None = None,
    ) -> None:
        """
        Register a provider factory.

        Args:
            info: Provider metadata
            factory: Callable building a provider from an options mapping
            name: Optional custom name, defaults to info.name

        Raises:
            KeyError: If a provider with the same name is already registered
        """
        provider_name = name or info.name

        if provider_name in self._factories:
            raise KeyError(f"Provider '{provider_name}' is already registered")

        self._factories[provider_name] = factory
        self._info[provider_name] = info

    def create(self, name: str, options: Mapping[str, Any] | None = None) -> SecretsProvider:
        """
        Build a provider instance by name.

        Raises:
            KeyError: If no provider with the given name is registered
        """
        if name not in self._factories:
            available = ", ".join(sorted(self._factories))
            raise KeyError(f"Provider '{name}' not found. Available providers: {available}")

        return self._factories[name](dict(options or {}))

    def list_providers(self) -> list[ProviderInfo]:
        return [self._info[name] for name in sorted(self._info)]

    def is_registered(self, name: str) -> bool:
        return name in self._factories


def default_registry() -> ProviderRegistry:
    """Return a new registry holding the built-in providers."""
    from .built_in import register_built_in_providers

    registry = ProviderRegistry()
    register_built_in_providers(registry)
    return registry


def secrets_to_map(secrets: Iterable[Secret]) -> dict[str, str]:
    return {secret.key: secret.value for secret in secrets}


class ProviderError(Exception):
    """Base exception for provider-related errors."""

    def __init__(self, message: str, provider: str | None = None, project: str | None = None):
        self.message = message
        self.provider = provider
        self.project = project
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.insert(0, f"[{self.provider}]")
        if self.project:
            parts.append(f"(project: {self.project})")
        return " ".join(parts)


class ProviderNotFoundError(ProviderError):
    """A project or secret does not exist."""


class ProviderAuthError(ProviderError):
    """Credentials are missing, invalid, or expired."""


class ProviderNetworkError(ProviderError):
    """The remote store could not be reached."""
