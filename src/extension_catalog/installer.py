"""Extension installation - resolve, download and unpack extension archives.

Per KERNEL_PHILOSOPHY: Mechanism not policy - apps decide WHERE extensions
live (extensions_dir) and which registry/downloader to use.

Process per extension:
1. Resolve latest version from the registry
2. Reuse an existing ``<id>-<version>`` directory if present
3. Download the archive next to it under a temporary name
4. Unpack the archive, always removing the temporary download
"""

import asyncio
import logging
import shutil
import uuid
import zipfile
from pathlib import Path

from .exceptions import ExtensionInstallError
from .protocols import ArchiveDownloaderProtocol
from .protocols import RegistryClientProtocol
from .utils import safe_filename

logger = logging.getLogger(__name__)


def _extract_archive(archive_path: Path, target_dir: Path) -> None:
    with zipfile.ZipFile(archive_path) as archive:
        archive.extractall(target_dir)


async def install_extension(
    registry: RegistryClientProtocol,
    extension_id: str,
    extensions_dir: Path,
    downloader: ArchiveDownloaderProtocol | None = None,
) -> Path | None:
    """
    Install the latest version of an extension into ``extensions_dir``.

    Args:
        registry: Registry used to resolve the latest version
        extension_id: Extension id (``publisher.name``)
        extensions_dir: Directory holding installed extensions (app policy)
        downloader: Archive downloader, defaults to ``registry`` if it can download

    Returns:
        Path of the unpacked extension, or None if the extension or its
        archive could not be found

    Raises:
        ExtensionInstallError: If download or extraction failed

    Example:
        >>> async with VSXRegistryClient() as registry:
        ...     path = await install_extension(registry, "redhat.java", Path("~/.theia/extensions"))
    """
    if downloader is None:
        if not isinstance(registry, ArchiveDownloaderProtocol):
            raise TypeError("install_extension needs a downloader when the registry cannot download archives")
        downloader = registry

    logger.info(f"[{extension_id}]: trying to resolve latest version...")
    try:
        data = await registry.get_extension(extension_id)
    except Exception as e:
        logger.error(f"[{extension_id}]: failed to resolve, reason: {e}")
        return None

    if not data.download_url:
        logger.error(f"[{extension_id}]: registry returned no download url")
        return None
    if not data.version:
        logger.error(f"[{extension_id}]: registry returned no version")
        return None

    full_name = f"{extension_id}-{data.version}"
    logger.info(f"[{extension_id}]: resolved to '{full_name}'")

    extensions_dir.mkdir(parents=True, exist_ok=True)
    extension_path = extensions_dir / safe_filename(full_name)
    if extension_path.exists():
        logger.info(f"[{full_name}]: already found in '{extension_path}'")
        return extension_path

    download_path = extensions_dir / uuid.uuid4().hex
    try:
        logger.info(f"[{full_name}]: trying to download from '{data.download_url}'...")
        try:
            found = await downloader.download(data.download_url, download_path)
        except Exception as e:
            raise ExtensionInstallError(
                f"[{full_name}]: failed to download, reason: {e}",
                context={"extension_id": extension_id, "url": data.download_url},
            ) from e
        if not found:
            logger.info(f"[{full_name}]: not found")
            return None
        logger.debug(f"[{full_name}]: downloaded to '{download_path}'")

        try:
            await asyncio.to_thread(_extract_archive, download_path, extension_path)
        except Exception as e:
            shutil.rmtree(extension_path, ignore_errors=True)
            raise ExtensionInstallError(
                f"[{full_name}]: failed to decompress, reason: {e}",
                context={"extension_id": extension_id, "path": str(extension_path)},
            ) from e
    finally:
        download_path.unlink(missing_ok=True)

    logger.info(f"[{full_name}]: decompressed to '{extension_path}'")
    return extension_path


async def uninstall_extension(extension_path: Path) -> None:
    """
    Remove an installed extension directory.

    Raises:
        ExtensionInstallError: If the directory does not exist or removal failed
    """
    if not extension_path.exists():
        raise ExtensionInstallError(
            f"Extension not found at {extension_path}",
            context={"path": str(extension_path)},
        )

    try:
        logger.info(f"Uninstalling extension at {extension_path}")
        shutil.rmtree(extension_path)
    except Exception as e:
        raise ExtensionInstallError(f"Failed to uninstall extension at {extension_path}: {e}") from e
