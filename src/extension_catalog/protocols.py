"""Protocols for the catalog's external collaborators.

Per KERNEL_PHILOSOPHY: Protocol-based extensibility over configuration.
Per IMPLEMENTATION_PHILOSOPHY: Composition over inheritance.

The engine only depends on these interfaces. Apps provide the host runtime and
may swap the registry transport, progress UI or readme pipeline.
"""

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol
from typing import TypeVar
from typing import runtime_checkable

from .schema import ExtensionData
from .schema import HostPlugin

T = TypeVar("T")

# Unsubscribes a listener when called
Disposable = Callable[[], None]


@runtime_checkable
class RegistryClientProtocol(Protocol):
    """Protocol for the remote extension registry.

    Implementations raise RegistryNotFoundError for 404 and RegistryError for
    any other transport failure.
    """

    async def search(self, query: str) -> list[ExtensionData]:
        """Search the registry, returning one summary per matching extension."""
        ...

    async def get_extension(self, extension_id: str) -> ExtensionData:
        """Fetch full detail for one extension by ``publisher.name`` id."""
        ...

    async def fetch_text(self, url: str) -> str:
        """Fetch a text resource (e.g. a readme) by absolute URL."""
        ...


@runtime_checkable
class ArchiveDownloaderProtocol(Protocol):
    """Protocol for downloading extension archives to disk."""

    async def download(self, url: str, target_path: Path) -> bool:
        """Download ``url`` into ``target_path``.

        Returns:
            False if the archive does not exist (404), True once written

        Raises:
            RegistryError: If the download failed for any other reason
        """
        ...


@runtime_checkable
class HostRuntimeProtocol(Protocol):
    """Protocol for the host plugin runtime that reports installed plugins."""

    @property
    def plugins(self) -> Sequence[HostPlugin]:
        """Plugins currently loaded by the host."""
        ...

    def on_did_change_plugins(self, listener: Callable[[], None]) -> Disposable:
        """Register ``listener`` to run whenever the plugin list changes."""
        ...


@runtime_checkable
class ProgressSinkProtocol(Protocol):
    """Protocol for surfacing progress of long-running catalog operations.

    Purely a side channel: must return the operation's result and propagate
    its exceptions unchanged.
    """

    async def with_progress(self, label: str, category: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Show progress while awaiting ``operation()``."""
        ...


@runtime_checkable
class MarkdownConverterProtocol(Protocol):
    """Protocol for converting markdown text to HTML."""

    def convert(self, markdown_text: str) -> str: ...


@runtime_checkable
class HtmlSanitizerProtocol(Protocol):
    """Protocol for sanitizing HTML against a safe default allow-list."""

    def sanitize(self, html: str, extra_tags: Iterable[str] = ()) -> str:
        """Sanitize ``html``, additionally allowing ``extra_tags``."""
        ...
