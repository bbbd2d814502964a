"""Open VSX registry client over httpx.

Implements RegistryClientProtocol and ArchiveDownloaderProtocol against the
Open VSX REST API. Transport failures become RegistryError, 404 becomes
RegistryNotFoundError so callers can tell "unknown" from "unreachable".
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx

from .config import CatalogConfig
from .exceptions import RegistryError
from .exceptions import RegistryNotFoundError
from .schema import ExtensionData

logger = logging.getLogger(__name__)


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code == 404:
        raise RegistryNotFoundError(
            f"Not found: {response.request.url}",
            context={"url": str(response.request.url)},
        )
    if not response.is_success:
        raise RegistryError(
            f"Registry request failed with {response.status_code}: {response.request.url}",
            status_code=response.status_code,
            context={"url": str(response.request.url)},
        )


class VSXRegistryClient:
    """
    Registry client for Open VSX compatible registries.

    The httpx client can be injected (e.g. with a MockTransport in tests);
    otherwise one is created lazily and closed by ``aclose()``.

    Example:
        >>> async with VSXRegistryClient(CatalogConfig.from_env()) as registry:
        ...     results = await registry.search("python")
    """

    def __init__(self, config: CatalogConfig | None = None, client: httpx.AsyncClient | None = None):
        self.config = config or CatalogConfig()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "VSXRegistryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise RegistryError(f"Request to {url} failed: {e}", context={"url": url}) from e
        _raise_for_status(response)
        return response

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = await self._get(url, params)
        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"Invalid JSON from {url}: {e}", context={"url": url}) from e
        if not isinstance(data, dict):
            raise RegistryError(f"Expected a JSON object from {url}", context={"url": url})
        return data

    async def search(self, query: str) -> list[ExtensionData]:
        """Search extensions matching ``query``."""
        data = await self._get_json(
            f"{self.config.api_url}/-/search",
            params={"query": query, "size": self.config.search_size},
        )
        if data.get("error"):
            raise RegistryError(f"Search failed: {data['error']}", context={"query": query})
        return [ExtensionData.model_validate(entry) for entry in data.get("extensions", [])]

    async def get_extension(self, extension_id: str) -> ExtensionData:
        """Fetch the latest version of ``publisher.name``."""
        publisher, _, name = extension_id.partition(".")
        if not publisher or not name:
            raise RegistryNotFoundError(
                f"Invalid extension id: {extension_id}", context={"extension_id": extension_id}
            )
        data = await self._get_json(f"{self.config.api_url}/{publisher}/{name}")
        if data.get("error"):
            raise RegistryError(f"[{extension_id}]: {data['error']}", context={"extension_id": extension_id})
        return ExtensionData.model_validate(data)

    async def fetch_text(self, url: str) -> str:
        """Fetch a text resource by absolute URL."""
        response = await self._get(url)
        return response.text

    async def download(self, url: str, target_path: Path) -> bool:
        """
        Stream ``url`` into ``target_path``, retrying network errors and 5xx.

        Returns:
            False if the archive is 404, True once written

        Raises:
            RegistryError: If every attempt failed or the server rejected the request
        """
        attempts = self.config.download_attempts
        for attempt in range(1, attempts + 1):
            try:
                async with self.client.stream("GET", url) as response:
                    if response.status_code == 404:
                        return False
                    if response.status_code >= 500 and attempt < attempts:
                        logger.debug(f"Download of {url} got {response.status_code}, attempt {attempt}/{attempts}")
                        await asyncio.sleep(self.config.download_retry_delay)
                        continue
                    _raise_for_status(response)
                    with open(target_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
                return True
            except httpx.TransportError as e:
                if attempt >= attempts:
                    raise RegistryError(f"Download of {url} failed: {e}", context={"url": url}) from e
                logger.debug(f"Download of {url} failed ({e}), attempt {attempt}/{attempts}")
                await asyncio.sleep(self.config.download_retry_delay)
        return False
