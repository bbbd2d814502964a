"""Catalog configuration.

Per KERNEL_PHILOSOPHY: The library ships mechanism with sensible defaults,
apps inject policy by constructing CatalogConfig themselves.
"""

import os
from typing import Annotated

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

DEFAULT_REGISTRY_URL = "https://open-vsx.org"


class CatalogConfig(BaseModel):
    """Settings for the extension catalog engine and its default collaborators."""

    model_config = ConfigDict(frozen=True)

    # Registry
    registry_url: str = DEFAULT_REGISTRY_URL
    request_timeout: float = Field(default=30.0, gt=0)
    search_size: int = Field(default=50, gt=0)

    # Engine
    search_debounce: float = Field(default=0.15, ge=0)
    extension_engine_type: str = "vscode"
    progress_category: str = "extensions"
    max_concurrent_refreshes: Annotated[int, Field(gt=0)] | None = 16

    # Readme rendering
    readme_extra_tags: tuple[str, ...] = ("h1", "h2", "img")

    # Archive download
    download_attempts: int = Field(default=5, gt=0)
    download_retry_delay: float = Field(default=2.0, ge=0)

    @property
    def api_url(self) -> str:
        """Root of the registry REST API."""
        return self.registry_url.rstrip("/") + "/api"

    @classmethod
    def from_env(cls, **overrides) -> "CatalogConfig":
        """
        Build config from environment variables, explicit overrides win.

        Reads:
        - VSX_REGISTRY_URL: registry base URL
        - EXTENSION_CATALOG_SEARCH_DEBOUNCE: debounce window in seconds

        Example:
            >>> config = CatalogConfig.from_env(max_concurrent_refreshes=4)
        """
        values: dict = {}
        registry_url = os.environ.get("VSX_REGISTRY_URL")
        if registry_url:
            values["registry_url"] = registry_url
        debounce = os.environ.get("EXTENSION_CATALOG_SEARCH_DEBOUNCE")
        if debounce:
            values["search_debounce"] = debounce
        values.update(overrides)
        return cls.model_validate(values)
