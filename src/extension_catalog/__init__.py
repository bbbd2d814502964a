"""extension-catalog - Extension catalog synchronization engine.

Keeps one authoritative view of extension records fed by a remote registry
search and the host runtime's installed plugins.

Per KERNEL_PHILOSOPHY: This is library mechanism, apps inject policy (registry,
host runtime, progress UI, paths).
"""

from .cancellation import CancellationToken
from .cancellation import CancellationTokenSource
from .config import CatalogConfig
from .debounce import Debouncer
from .events import Emitter
from .exceptions import CatalogError
from .exceptions import ExtensionInstallError
from .exceptions import ExtensionResolveError
from .exceptions import RegistryError
from .exceptions import RegistryNotFoundError
from .installer import install_extension
from .installer import uninstall_extension
from .model import ExtensionsModel
from .progress import LoggingProgressSink
from .progress import NullProgressSink
from .protocols import ArchiveDownloaderProtocol
from .protocols import HostRuntimeProtocol
from .protocols import HtmlSanitizerProtocol
from .protocols import MarkdownConverterProtocol
from .protocols import ProgressSinkProtocol
from .protocols import RegistryClientProtocol
from .readme import HtmlSanitizer
from .readme import MarkdownConverter
from .readme import compile_readme
from .registry import VSXRegistryClient
from .schema import ExtensionData
from .schema import ExtensionRecord
from .schema import HostPlugin
from .schema import extension_id
from .store import ExtensionStore
from .utils import extension_id_from_uri
from .utils import extension_uri

__all__ = [
    # Engine
    "ExtensionsModel",
    "ExtensionStore",
    "CatalogConfig",
    # Data
    "ExtensionData",
    "ExtensionRecord",
    "HostPlugin",
    "extension_id",
    # Coordination
    "CancellationToken",
    "CancellationTokenSource",
    "Debouncer",
    "Emitter",
    # Collaborators
    "RegistryClientProtocol",
    "ArchiveDownloaderProtocol",
    "HostRuntimeProtocol",
    "ProgressSinkProtocol",
    "MarkdownConverterProtocol",
    "HtmlSanitizerProtocol",
    "VSXRegistryClient",
    "NullProgressSink",
    "LoggingProgressSink",
    "MarkdownConverter",
    "HtmlSanitizer",
    "compile_readme",
    # Installation
    "install_extension",
    "uninstall_extension",
    # Exceptions
    "CatalogError",
    "RegistryError",
    "RegistryNotFoundError",
    "ExtensionResolveError",
    "ExtensionInstallError",
    # Utilities
    "extension_uri",
    "extension_id_from_uri",
]

__version__ = "0.1.0"
