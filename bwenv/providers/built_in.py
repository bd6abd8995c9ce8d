"""Built-in provider loader for bwenv.

This module registers all built-in providers with a ProviderRegistry.
"""

from __future__ import annotations

from . import ProviderRegistry
from . import bitwarden, memory


def register_built_in_providers(registry: ProviderRegistry) -> None:
    """Register all built-in providers with the registry.

    This function is idempotent - it can be called multiple times safely.
    """
    for module in (bitwarden, memory):
        if not registry.is_registered(module.INFO.name):
            registry.register(module.INFO, module.create_provider)
