"""
In-memory secrets provider for bwenv.

Keeps projects and secrets in process memory. Used as the test double for
the sync engine and for trying the CLI without a remote account.

Configuration (.bwenv.yaml):
    provider:
      type: memory
      options:
        projects:
          my-app:
            DATABASE_URL: postgres://localhost/app
            API_KEY: dev-key
"""

from __future__ import annotations

import itertools
from typing import Any, Mapping

from . import (
    Project,
    ProviderInfo,
    ProviderNotFoundError,
    Secret,
    plan_sync,
    secrets_to_map,
)

INFO = ProviderInfo(
    name="memory",
    description="In-memory secret store (testing and offline use)",
)


class MemoryProvider:
    """
    In-memory implementation of the SecretsProvider capability.

    Secrets are stored per project in insertion order. Every call is
    appended to `calls` by method name so tests can assert which
    operations reached the store.
    """

    def __init__(self, projects: Mapping[str, Mapping[str, str]] | None = None) -> None:
        self._ids = itertools.count(1)
        self._projects: dict[str, Project] = {}
        self._secrets: dict[str, dict[str, Secret]] = {}
        self.calls: list[str] = []

        for name, secrets in (projects or {}).items():
            project = self.add_project(name)
            for key, value in secrets.items():
                self._store(project.id, key, str(value))

    def add_project(self, name: str, project_id: str | None = None) -> Project:
        """Create a project and return it."""
        project = Project(
            id=project_id or f"project-{next(self._ids)}",
            name=name,
            organization_id="memory",
        )
        self._projects[project.id] = project
        self._secrets[project.id] = {}
        return project

    def snapshot(self, project_id: str) -> dict[str, str]:
        """Return the stored secrets of a project without recording a call."""
        return secrets_to_map(self._require(project_id).values())

    async def list_projects(self) -> list[Project]:
        self.calls.append("list_projects")
        return list(self._projects.values())

    async def list_secrets(self, project_id: str) -> list[Secret]:
        self.calls.append("list_secrets")
        return list(self._require(project_id).values())

    async def get_secrets_map(self, project_id: str) -> dict[str, str]:
        self.calls.append("get_secrets_map")
        return secrets_to_map(self._require(project_id).values())

    async def sync_secrets(
        self, project_id: str, secrets: Mapping[str, str], overwrite: bool
    ) -> list[Secret]:
        self.calls.append("sync_secrets")
        stored = self._require(project_id)
        plan = plan_sync(secrets_to_map(stored.values()), secrets, overwrite)

        for key in plan.create + plan.update:
            self._store(project_id, key, secrets[key])

        return [stored[key] for key in secrets]

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "MemoryProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _require(self, project_id: str) -> dict[str, Secret]:
        if project_id not in self._secrets:
            raise ProviderNotFoundError(
                "Project not found", provider=INFO.name, project=project_id
            )
        return self._secrets[project_id]

    def _store(self, project_id: str, key: str, value: str) -> None:
        stored = self._secrets[project_id]
        existing = stored.get(key)
        stored[key] = Secret(
            id=existing.id if existing else f"secret-{next(self._ids)}",
            key=key,
            value=value,
            project_id=project_id,
            note=existing.note if existing else None,
        )


def create_provider(options: Mapping[str, Any]) -> MemoryProvider:
    """Factory function to create a MemoryProvider from config options."""
    return MemoryProvider(projects=options.get("projects") or {})
