"""Extension id and URI utilities.

Per DRY: Central helpers eliminate duplicated id parsing across consumers.
"""

import re
from pathlib import PurePosixPath

EXTENSION_URI_SCHEME = "vscode"

# Characters not allowed in file names on common platforms
_RESERVED_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def extension_uri(extension_id: str) -> str:
    """Build the ``vscode:extension/<id>`` URI for an extension id."""
    return f"{EXTENSION_URI_SCHEME}:extension/{extension_id}"


def extension_id_from_uri(uri: str) -> str | None:
    """Extract the extension id from a ``vscode:extension/<publisher.name>`` URI.

    Args:
        uri: Plugin origin URI

    Returns:
        Lower-cased extension id, or None if the URI does not point to an extension

    Examples:
        >>> extension_id_from_uri("vscode:extension/ms-python.python")
        'ms-python.python'

        >>> extension_id_from_uri("local-dir:/plugins/foo")
        None
    """
    scheme, _, path = uri.partition(":")
    if scheme != EXTENSION_URI_SCHEME:
        return None

    parts = PurePosixPath(path.lstrip("/")).parts
    if len(parts) != 2 or parts[0] != "extension":
        return None

    publisher, _, name = parts[1].partition(".")
    if not publisher or not name:
        return None
    return parts[1].lower()


def safe_filename(name: str, replacement: str = "!") -> str:
    """Replace characters that are not valid in file names.

    Examples:
        >>> safe_filename("acme.foo-1.0.0")
        'acme.foo-1.0.0'

        >>> safe_filename("acme.foo-1.0.0/../x")
        'acme.foo-1.0.0!..!x'
    """
    cleaned = _RESERVED_FILENAME_CHARS.sub(replacement, name)
    if cleaned in {".", ".."}:
        return replacement
    return cleaned
