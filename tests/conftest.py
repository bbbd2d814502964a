"""Shared in-memory collaborators for catalog tests."""

import asyncio
from collections import defaultdict

import pytest
from extension_catalog import CatalogConfig
from extension_catalog import ExtensionData
from extension_catalog import ExtensionsModel
from extension_catalog import HostPlugin
from extension_catalog import RegistryNotFoundError


class MockRegistry:
    """Registry serving canned payloads, with optional gates to hold responses back."""

    def __init__(self):
        self.search_results: dict[str, list[dict]] = {}
        self.details: dict[str, dict] = {}
        self.texts: dict[str, str] = {}
        self.errors: dict[str, Exception] = {}  # keyed by query, extension id or url
        self.search_gates: dict[str, asyncio.Event] = {}
        self.detail_gate: asyncio.Event | None = None
        self.search_started: dict[str, asyncio.Event] = defaultdict(asyncio.Event)
        self.search_calls: list[str] = []
        self.get_calls: list[str] = []

    async def search(self, query: str) -> list[ExtensionData]:
        self.search_calls.append(query)
        self.search_started[query].set()
        if query in self.search_gates:
            await self.search_gates[query].wait()
        if query in self.errors:
            raise self.errors[query]
        return [ExtensionData.model_validate(entry) for entry in self.search_results.get(query, [])]

    async def get_extension(self, extension_id: str) -> ExtensionData:
        self.get_calls.append(extension_id)
        if self.detail_gate is not None:
            await self.detail_gate.wait()
        if extension_id in self.errors:
            raise self.errors[extension_id]
        if extension_id not in self.details:
            raise RegistryNotFoundError(f"Not found: {extension_id}")
        return ExtensionData.model_validate(self.details[extension_id])

    async def fetch_text(self, url: str) -> str:
        if url in self.errors:
            raise self.errors[url]
        if url not in self.texts:
            raise RegistryNotFoundError(f"Not found: {url}")
        return self.texts[url]


class MockHost:
    """Host runtime with a settable plugin list."""

    def __init__(self, plugins: list[HostPlugin] | None = None):
        self._plugins = list(plugins or [])
        self._listeners = []

    @property
    def plugins(self) -> list[HostPlugin]:
        return list(self._plugins)

    def on_did_change_plugins(self, listener):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def set_plugins(self, plugins: list[HostPlugin]) -> None:
        self._plugins = list(plugins)
        for listener in list(self._listeners):
            listener()


class RecordingProgress:
    """Progress sink that records every operation it wraps."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.active = 0

    async def with_progress(self, label, category, operation):
        self.calls.append((label, category))
        self.active += 1
        try:
            return await operation()
        finally:
            self.active -= 1


@pytest.fixture
def registry():
    return MockRegistry()


@pytest.fixture
def host():
    return MockHost()


@pytest.fixture
def progress():
    return RecordingProgress()


@pytest.fixture
def config():
    return CatalogConfig(search_debounce=0.05)


@pytest.fixture
def model(registry, host, progress, config):
    return ExtensionsModel(registry=registry, host=host, progress=progress, config=config)
