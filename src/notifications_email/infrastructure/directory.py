"""
Email Notification Processor - Catalog Directory Client.

HTTP client for the software catalog that holds user entities. Every call is
authorised with a short-lived service token obtained from the auth backend on
the processor's own behalf.
"""
from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import DirectoryError

logger = structlog.get_logger(__name__)

DEFAULT_KIND = "user"
DEFAULT_NAMESPACE = "default"
EMAIL_FIELD = "spec.profile.email"


class DirectorySettings(BaseSettings):
    """Configuration for the catalog and auth backends."""
    catalog_url: str = Field(default="http://localhost:7007/api/catalog")
    auth_url: str = Field(default="http://localhost:7007/api/auth")
    service_name: str = Field(default="notifications")
    service_secret: SecretStr | None = Field(default=None)
    request_timeout: float = Field(default=10.0, ge=1.0, le=60.0)
    page_size: int = Field(default=500, ge=1, le=10000)

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_EMAIL_DIRECTORY_",
        env_file=".env",
        extra="ignore",
    )


def parse_entity_ref(ref: str) -> tuple[str, str, str]:
    """
    Split ``kind:namespace/name`` into its parts.

    Kind defaults to ``user`` and namespace to ``default`` when omitted.
    """
    kind, sep, rest = ref.partition(":")
    if not sep:
        kind, rest = DEFAULT_KIND, ref
    namespace, sep, name = rest.partition("/")
    if not sep:
        namespace, name = DEFAULT_NAMESPACE, rest
    if not kind or not namespace or not name:
        raise ValueError(f"Invalid entity ref: {ref!r}")
    return kind.lower(), namespace, name


class CatalogDirectoryClient:
    """Async catalog client resolving user entities and their profile emails."""
    def __init__(
        self,
        settings: DirectorySettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or DirectorySettings()
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._settings.request_timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise DirectoryError(f"HTTP {e.response.status_code} from {url}",
                                 status_code=e.response.status_code, cause=e) from e
        except httpx.HTTPError as e:
            raise DirectoryError(f"Request to {url} failed: {e}", cause=e) from e

    async def acquire_service_credential(self, target_service: str) -> str:
        """Obtain a service token for calling ``target_service``."""
        headers = {"X-Service-Name": self._settings.service_name}
        if self._settings.service_secret:
            headers["Authorization"] = f"Bearer {self._settings.service_secret.get_secret_value()}"
        response = await self._request(
            "POST",
            f"{self._settings.auth_url}/service-token",
            json={"subject": self._settings.service_name, "targetPluginId": target_service},
            headers=headers,
        )
        token = response.json().get("token")
        if not token:
            raise DirectoryError("Service token response did not contain a token")
        return token

    async def query_users_with_email(self, credential: str) -> list[dict[str, Any]]:
        """Fetch every user entity that has a profile email, following pagination."""
        entities: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"limit": self._settings.page_size}
            if cursor:
                params["cursor"] = cursor
            else:
                params["filter"] = f"kind={DEFAULT_KIND},{EMAIL_FIELD}"
                params["fields"] = EMAIL_FIELD
            response = await self._request(
                "GET",
                f"{self._settings.catalog_url}/entities/by-query",
                params=params,
                headers={"Authorization": f"Bearer {credential}"},
            )
            data = response.json()
            entities.extend(data.get("items", []))
            cursor = (data.get("pageInfo") or {}).get("nextCursor")
            if not cursor:
                break
        logger.debug("directory_users_fetched", count=len(entities))
        return entities

    async def get_entity_by_ref(self, ref: str, credential: str) -> dict[str, Any] | None:
        """Fetch one entity; ``None`` when the catalog does not know it."""
        try:
            kind, namespace, name = parse_entity_ref(ref)
        except ValueError as e:
            raise DirectoryError(str(e), cause=e) from e
        url = (f"{self._settings.catalog_url}/entities/by-name/"
               f"{quote(kind, safe='')}/{quote(namespace, safe='')}/{quote(name, safe='')}")
        try:
            response = await self._request("GET", url, headers={"Authorization": f"Bearer {credential}"})
        except DirectoryError as e:
            if e.status_code == 404:
                return None
            raise
        return response.json()
