"""Client for the compose config API."""

from __future__ import annotations

import logging

import httpx
import pydantic

from .errors import ConfigApiError, ProtocolError
from .models import ComposeConfig

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "user-agent": "validator-updater/0.1",
    "accept": "application/json",
}


class ConfigApiClient:
    """Fetches the desired compose config.

    Example:
        async with ConfigApiClient(url) as api:
            config = await api.fetch_compose_config()
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self._client = http_client or httpx.AsyncClient(timeout=timeout, headers=DEFAULT_HEADERS)

    async def fetch_compose_config(self) -> ComposeConfig:
        """GET the compose config.

        Raises:
            ConfigApiError: On transport failure or non-2xx status
            ProtocolError: If the body is not a valid compose config
        """
        try:
            response = await self._client.get(self.url)
        except httpx.HTTPError as e:
            raise ConfigApiError(f"Failed to fetch compose config: {e}") from e

        if not response.is_success:
            logger.error(f"API returned status {response.status_code}: {response.text}")
            raise ConfigApiError(
                f"API returned status {response.status_code}: {response.text}",
                status=response.status_code,
                body=response.text,
            )

        try:
            return ComposeConfig.model_validate_json(response.text)
        except pydantic.ValidationError as e:
            logger.error(f"Failed to parse compose config JSON. Response: {response.text}")
            raise ProtocolError(f"Failed to parse compose config: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
