"""
Bitwarden Secrets Manager provider (optional extra).

This module talks to Bitwarden Secrets Manager through the official
`bitwarden-sdk` package. The SDK is synchronous, so every call runs in a
worker thread and is awaited by the caller.

Configuration (.bwenv.yaml):
    provider:
      type: bitwarden
      options:
        organization_id: 00000000-0000-0000-0000-000000000000
        api_url: https://api.bitwarden.com
        identity_url: https://identity.bitwarden.com

The machine-account access token is read from BWS_ACCESS_TOKEN when the
configuration is loaded and never stored in the config file.

Install with: pip install bwenv[bitwarden]
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping, TypeVar

from ..log import get_logger
from . import (
    Project,
    ProviderAuthError,
    ProviderError,
    ProviderInfo,
    ProviderNetworkError,
    ProviderNotFoundError,
    Secret,
    plan_sync,
    secrets_to_map,
)

T = TypeVar("T")

INFO = ProviderInfo(
    name="bitwarden",
    description="Bitwarden Secrets Manager",
    requires="bitwarden-sdk",
)

DEFAULT_API_URL = "https://api.bitwarden.com"
DEFAULT_IDENTITY_URL = "https://identity.bitwarden.com"

_AUTH_MARKERS = ("401", "403", "unauthorized", "forbidden", "access token", "invalid_client")
_NOT_FOUND_MARKERS = ("404", "not found", "notfound")
_NETWORK_MARKERS = ("connect", "timed out", "timeout", "dns", "network", "unreachable")


class BitwardenProvider:
    """
    Bitwarden Secrets Manager implementation of the SecretsProvider capability.

    Configuration:
        access_token: Machine-account access token (required)
        organization_id: Organization that owns the projects (required)
        api_url: API base URL (default: https://api.bitwarden.com)
        identity_url: Identity base URL (default: https://identity.bitwarden.com)
        state_file: Optional SDK state file for token caching
    """

    def __init__(
        self,
        access_token: str,
        organization_id: str,
        api_url: str = DEFAULT_API_URL,
        identity_url: str = DEFAULT_IDENTITY_URL,
        state_file: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not access_token:
            raise ProviderAuthError(
                "Bitwarden access token not configured. Set BWS_ACCESS_TOKEN",
                provider=INFO.name,
            )
        if not organization_id:
            raise ProviderError(
                "Bitwarden organization id not configured. "
                "Set BWS_ORGANIZATION_ID or provider.options.organization_id",
                provider=INFO.name,
            )

        self._access_token = access_token
        self._organization_id = organization_id
        self._api_url = api_url
        self._identity_url = identity_url
        self._state_file = state_file
        self._client: Any | None = None
        self._log = logger or get_logger("providers.bitwarden")

    async def list_projects(self) -> list[Project]:
        response = await self._call("list projects", lambda c: c.projects().list(self._organization_id))
        return [
            Project(id=str(item.id), name=item.name, organization_id=str(item.organization_id))
            for item in _payload(response)
        ]

    async def list_secrets(self, project_id: str) -> list[Secret]:
        identifiers = _payload(
            await self._call("list secrets", lambda c: c.secrets().list(self._organization_id))
        )
        if not identifiers:
            return []

        ids = [str(item.id) for item in identifiers]
        response = await self._call("read secrets", lambda c: c.secrets().get_by_ids(ids))

        secrets = [
            _convert_secret(item)
            for item in _payload(response)
            if str(item.project_id) == project_id
        ]
        self._log.debug("Fetched %d secret(s) for project %s", len(secrets), project_id)
        return secrets

    async def get_secrets_map(self, project_id: str) -> dict[str, str]:
        await self._require_project(project_id)
        return secrets_to_map(await self.list_secrets(project_id))

    async def sync_secrets(
        self, project_id: str, secrets: Mapping[str, str], overwrite: bool
    ) -> list[Secret]:
        await self._require_project(project_id)
        existing = {secret.key: secret for secret in await self.list_secrets(project_id)}
        plan = plan_sync(secrets_to_map(existing.values()), secrets, overwrite)

        for key in plan.create:
            response = await self._call(
                f"create secret {key}",
                lambda c, key=key: c.secrets().create(
                    organization_id=self._organization_id,
                    key=key,
                    value=secrets[key],
                    note="",
                    project_ids=[project_id],
                ),
            )
            existing[key] = _convert_secret(_payload(response))

        for key in plan.update:
            current = existing[key]
            response = await self._call(
                f"update secret {key}",
                lambda c, key=key, current=current: c.secrets().update(
                    organization_id=self._organization_id,
                    id=current.id,
                    key=key,
                    value=secrets[key],
                    note=current.note or "",
                    project_ids=[project_id],
                ),
            )
            existing[key] = _convert_secret(_payload(response))

        self._log.info(
            "Synced project %s: %d created, %d updated, %d skipped",
            project_id,
            len(plan.create),
            len(plan.update),
            len(plan.skipped),
        )
        return [existing[key] for key in secrets]

    async def close(self) -> None:
        """Clean up resources."""
        self._client = None

    async def __aenter__(self) -> "BitwardenProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _require_project(self, project_id: str) -> None:
        projects = await self.list_projects()
        if not any(project.id == project_id for project in projects):
            raise ProviderNotFoundError("Project not found", provider=INFO.name, project=project_id)

    async def _call(self, action: str, operation: Callable[[Any], T]) -> T:
        """Run a blocking SDK operation in a worker thread and map its failures."""
        client = await self._get_client()
        try:
            response = await asyncio.to_thread(operation, client)
        except ProviderError:
            raise
        except Exception as exc:
            raise _translate_error(action, str(exc)) from exc

        if getattr(response, "success", True) is False:
            raise _translate_error(action, getattr(response, "error_message", "") or "unknown error")
        return response

    async def _get_client(self) -> Any:
        if self._client is not None:
            return self._client

        try:
            from bitwarden_sdk import BitwardenClient, DeviceType, client_settings_from_dict
        except ImportError as exc:
            raise ProviderError(
                "bitwarden-sdk is required for the bitwarden provider. "
                "Install it with: pip install bwenv[bitwarden]",
                provider=INFO.name,
            ) from exc

        def connect() -> Any:
            client = BitwardenClient(
                client_settings_from_dict(
                    {
                        "apiUrl": self._api_url,
                        "identityUrl": self._identity_url,
                        "deviceType": DeviceType.SDK,
                        "userAgent": "bwenv",
                    }
                )
            )
            client.auth().login_access_token(self._access_token, self._state_file)
            return client

        try:
            self._client = await asyncio.to_thread(connect)
        except Exception as exc:
            raise _translate_error("authenticate", str(exc), default=ProviderAuthError) from exc

        self._log.debug("Authenticated with Bitwarden at %s", self._api_url)
        return self._client


def _payload(response: Any) -> Any:
    data = getattr(response, "data", None)
    return getattr(data, "data", data)


def _convert_secret(item: Any) -> Secret:
    return Secret(
        id=str(item.id),
        key=item.key,
        value=item.value,
        project_id=str(item.project_id) if item.project_id else "",
        note=item.note or None,
    )


def _translate_error(
    action: str, detail: str, default: type[ProviderError] = ProviderError
) -> ProviderError:
    lowered = detail.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        error_type: type[ProviderError] = ProviderAuthError
    elif any(marker in lowered for marker in _NOT_FOUND_MARKERS):
        error_type = ProviderNotFoundError
    elif any(marker in lowered for marker in _NETWORK_MARKERS):
        error_type = ProviderNetworkError
    else:
        error_type = default
    return error_type(f"Failed to {action}: {detail}", provider=INFO.name)


def create_provider(options: Mapping[str, Any]) -> BitwardenProvider:
    """Factory function to create a BitwardenProvider from config options."""
    return BitwardenProvider(
        access_token=options.get("access_token", ""),
        organization_id=options.get("organization_id", ""),
        api_url=options.get("api_url", DEFAULT_API_URL),
        identity_url=options.get("identity_url", DEFAULT_IDENTITY_URL),
        state_file=options.get("state_file"),
    )
