"""Extensions model - keeps the catalog in sync with the registry and the host.

Two independent feeds update one ExtensionStore:

- Query changes -> debounced search cycle -> search result ids
- Host plugin changes -> installed reconciliation -> per-id registry refresh

Every mutating operation runs through ``_do_change``: it is wrapped in a
progress indicator and fires exactly one change event after its store
mutations are committed, and none if the operation was superseded.

Per KERNEL_PHILOSOPHY: Registry, host runtime, progress UI and readme pipeline
are injected collaborators (see protocols.py).
"""

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Coroutine
from typing import Any
from typing import TypeVar

from .cancellation import NONE_TOKEN
from .cancellation import CancellationToken
from .cancellation import CancellationTokenSource
from .config import CatalogConfig
from .debounce import Debouncer
from .events import Emitter
from .exceptions import ExtensionResolveError
from .exceptions import RegistryNotFoundError
from .progress import NullProgressSink
from .protocols import HostRuntimeProtocol
from .protocols import HtmlSanitizerProtocol
from .protocols import MarkdownConverterProtocol
from .protocols import ProgressSinkProtocol
from .protocols import RegistryClientProtocol
from .readme import HtmlSanitizer
from .readme import MarkdownConverter
from .readme import compile_readme
from .schema import ExtensionRecord
from .store import ExtensionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExtensionsModel:
    """
    Extension catalog synchronization engine.

    Observable surface:
    - ``query`` (read/write) and ``on_did_change_query``
    - ``installed`` and ``search_result`` id snapshots
    - ``get_extension(id)``, ``refresh(id)``, ``resolve(id)``
    - ``on_did_change``: fired once per committed operation

    Example:
        >>> model = ExtensionsModel(registry=VSXRegistryClient(), host=host_runtime)
        >>> model.on_did_change.subscribe(lambda _: redraw())
        >>> await model.start()
        >>> model.query = "python"
    """

    def __init__(
        self,
        registry: RegistryClientProtocol,
        host: HostRuntimeProtocol,
        progress: ProgressSinkProtocol | None = None,
        converter: MarkdownConverterProtocol | None = None,
        sanitizer: HtmlSanitizerProtocol | None = None,
        config: CatalogConfig | None = None,
    ):
        self.config = config or CatalogConfig()
        self.registry = registry
        self.host = host
        self.progress = progress or NullProgressSink()
        self.converter = converter or MarkdownConverter()
        self.sanitizer = sanitizer or HtmlSanitizer()

        # Single source of all extensions
        self.store = ExtensionStore()

        self.on_did_change: Emitter[None] = Emitter("change")
        self.on_did_change_query: Emitter[str] = Emitter("query")

        self._query = ""
        self._installed: frozenset[str] = frozenset()
        self._search_result: frozenset[str] = frozenset()

        self._search_cts = CancellationTokenSource()
        self._search_debouncer = Debouncer(self.config.search_debounce, self._run_search_cycle)

        limit = self.config.max_concurrent_refreshes
        self._refresh_limit = asyncio.Semaphore(limit) if limit else None

        self._tasks: set[asyncio.Task] = set()
        self._disposables: list[Callable[[], None]] = []

    async def start(self) -> None:
        """Subscribe to host and query changes, reconcile installed state, schedule the first search."""
        self._disposables.append(self.host.on_did_change_plugins(self._on_did_change_plugins))
        self._disposables.append(self.on_did_change_query.subscribe(lambda _query: self._search_debouncer.trigger()))
        self._search_debouncer.trigger()
        await self.update_installed()

    async def close(self) -> None:
        """Unsubscribe, drop pending searches and cancel background work."""
        for dispose in self._disposables:
            dispose()
        self._disposables.clear()
        self._search_cts.cancel()
        tasks = self._search_debouncer.cancel()
        for task in list(self._tasks):
            task.cancel()
            tasks.append(task)
        await asyncio.gather(*tasks, return_exceptions=True)

    async def settle(self) -> None:
        """Wait until no search is pending and no background operation is running."""
        while self._tasks or self._search_debouncer.pending:
            await self._search_debouncer.wait()
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def query(self) -> str:
        return self._query

    @query.setter
    def query(self, query: str) -> None:
        if self._query == query:
            return
        self._query = query
        self.on_did_change_query.fire(query)

    @property
    def installed(self) -> frozenset[str]:
        """Ids of extensions the host currently reports as installed."""
        return self._installed

    @property
    def search_result(self) -> frozenset[str]:
        """Ids matched by the last completed search."""
        return self._search_result

    def get_extension(self, extension_id: str) -> ExtensionRecord | None:
        return self.store.get(extension_id)

    # Change notification

    async def _do_change(
        self,
        task: Callable[[], Awaitable[T]],
        token: CancellationToken = NONE_TOKEN,
    ) -> T | None:
        async def operation() -> T | None:
            if token.is_cancellation_requested:
                return None
            result = await task()
            if token.is_cancellation_requested:
                return None
            self.on_did_change.fire(None)
            return result

        return await self.progress.with_progress("", self.config.progress_category, operation)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background catalog operation failed: {error}", exc_info=error)

    # Search

    async def _run_search_cycle(self) -> None:
        # A new cycle supersedes whatever is still in flight
        self._search_cts.cancel()
        self._search_cts = CancellationTokenSource()
        await self.update_search_result(self._query, self._search_cts.token)

    async def update_search_result(self, query: str, token: CancellationToken = NONE_TOKEN) -> None:
        """
        Search the registry and replace the search result ids.

        The result is committed only while ``token`` is not canceled. A failed
        search is logged and leaves the previous result in place.
        """
        try:
            await self._do_change(lambda: self._do_update_search_result(query, token), token)
        except Exception as e:
            logger.error(f"Failed to search extensions for '{query}', reason: {e}")

    async def _do_update_search_result(self, query: str, token: CancellationToken) -> None:
        results = await self.registry.search(query)
        if token.is_cancellation_requested:
            return

        search_result: set[str] = set()
        for data in results:
            extension_id = data.id
            if extension_id is None:
                logger.warning(f"Skipping search entry without publisher or name: {data}")
                continue
            self.store.upsert(extension_id, data)
            search_result.add(extension_id)
        self._search_result = frozenset(search_result)
        logger.debug(f"Search for '{query}' matched {len(search_result)} extensions")

    # Installed

    def _on_did_change_plugins(self) -> None:
        self._spawn(self.update_installed())

    async def update_installed(self) -> None:
        """
        Reconcile the installed set with the host runtime.

        Process:
        1. Collect ids of host plugins of this catalog's engine type
        2. Mark them installed, mark vanished ids uninstalled
        3. Replace the installed set
        4. Refresh current and vanished ids from the registry in the background
        """
        try:
            await self._do_change(self._do_update_installed)
        except Exception as e:
            logger.error(f"Failed to update installed extensions, reason: {e}")

    async def _do_update_installed(self) -> None:
        installed: set[str] = set()
        for plugin in self.host.plugins:
            if plugin.engine_type != self.config.extension_engine_type:
                continue
            extension_id = plugin.id.lower()
            self.store.upsert(extension_id, {"installed": True, "installed_version": plugin.version})
            installed.add(extension_id)

        # Vanished ids are refreshed too: the registry confirms what is left of them
        removed = self._installed - installed
        for extension_id in removed:
            self.store.upsert(extension_id, {"installed": False, "installed_version": None})

        self._installed = frozenset(installed)
        logger.debug(f"Installed extensions: {len(installed)} ({len(removed)} removed)")

        refreshing = sorted(installed | removed)
        if refreshing:
            self._spawn(self._do_change(lambda: self._refresh_all(refreshing)))

    async def _refresh_all(self, extension_ids: list[str]) -> None:
        await asyncio.gather(*(self._refresh_bounded(extension_id) for extension_id in extension_ids))

    async def _refresh_bounded(self, extension_id: str) -> ExtensionRecord | None:
        if self._refresh_limit is None:
            return await self._refresh(extension_id)
        async with self._refresh_limit:
            return await self._refresh(extension_id)

    # Refresh and resolve

    async def refresh(self, extension_id: str) -> ExtensionRecord | None:
        """
        Update one extension from the registry.

        Returns:
            The current record, the unchanged record if the registry does not
            know an installed extension, or None if it could not be resolved
        """
        return await self._do_change(lambda: self._refresh(extension_id))

    async def _refresh(self, extension_id: str) -> ExtensionRecord | None:
        try:
            data = await self.registry.get_extension(extension_id)
            return self.store.upsert(extension_id, data)
        except RegistryNotFoundError:
            # Registry indexing can lag behind what the host already installed
            record = self.store.get(extension_id)
            if record is not None and record.installed:
                return record
            return None
        except Exception as e:
            logger.error(f"[{extension_id}]: failed to refresh, reason: {e}")
            return None

    async def resolve(self, extension_id: str) -> ExtensionRecord:
        """
        Refresh one extension and render its readme, for a detail view.

        Readme failures never fail the call: 404 means "no readme", anything
        else is logged.

        Raises:
            ExtensionResolveError: If the extension could not be resolved
        """
        return await self._do_change(lambda: self._do_resolve(extension_id))

    async def _do_resolve(self, extension_id: str) -> ExtensionRecord:
        record = await self._refresh(extension_id)
        if record is None:
            raise ExtensionResolveError(
                f"Failed to resolve {extension_id} extension.",
                context={"extension_id": extension_id},
            )
        if record.readme_url:
            try:
                raw_readme = await self.registry.fetch_text(record.readme_url)
                readme = compile_readme(raw_readme, self.converter, self.sanitizer, self.config.readme_extra_tags)
                self.store.upsert(extension_id, {"readme": readme})
            except RegistryNotFoundError:
                logger.debug(f"[{extension_id}]: no readme at {record.readme_url}")
            except Exception as e:
                logger.error(f"[{extension_id}]: failed to compile readme, reason: {e}")
        return record
