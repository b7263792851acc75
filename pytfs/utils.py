"""Utility functions for pytfs."""

import re
from typing import Optional
from urllib.parse import unquote, urlsplit

from .exceptions import TfsFilesystemError

# =============================================================================
# Constants for REST operations
# =============================================================================

# Status codes the server uses for a successful call
SUCCESS_STATUS_CODES: tuple[int, ...] = (200, 201)

# Page size used when fetching the changes of a changeset
CHANGES_TOP_COUNT: int = 2000

# File names the server refuses to serve by path segment (ASP.NET protection)
PROTECTED_FILE_NAMES: tuple[str, ...] = ("web.config",)

_VERSION_PARAM = re.compile(r"([?&]version=)[^&#]*")

# Names that would escape or alias the parent directory
_UNSAFE_NAMES = ("", ".", "..")


# =============================================================================
# Path utilities
# =============================================================================


def last_path_segment(path: str) -> str:
    """Return the part of a server path after the final '/'.

    Args:
        path: Server path (e.g., "$/Project/Src/main.cs")

    Returns:
        Last segment, or an empty string if the path contains no '/'

    Examples:
        >>> last_path_segment("$/Proj/Src/lib")
        'lib'
        >>> last_path_segment("$/Proj/Src/")
        ''
        >>> last_path_segment("main.cs")
        ''
    """
    _, sep, tail = path.rpartition("/")
    return tail if sep else ""


def safe_child_name(name: str) -> str:
    """Validate a remote folder or file name for use as a local path segment.

    Args:
        name: Last segment of a server path or download URL

    Returns:
        The unchanged name

    Raises:
        TfsFilesystemError: If the name is empty, "." or "..", or contains a
            path separator

    Examples:
        >>> safe_child_name("main.cs")
        'main.cs'
    """
    if name in _UNSAFE_NAMES or "/" in name or "\\" in name:
        raise TfsFilesystemError(name, "unsafe name")
    return name


def filename_from_url(url: str) -> str:
    """Derive a local file name from a download URL.

    The name is the last path segment, up to (but excluding) any query
    string, with percent-escapes decoded.

    Args:
        url: Download URL returned by the server

    Returns:
        File name, or an empty string if none can be derived

    Examples:
        >>> filename_from_url("https://tfs/_apis/tfvc/items/%24/P/main.cs?version=3")
        'main.cs'
        >>> filename_from_url("https://tfs/items/My%20File.txt")
        'My File.txt'
    """
    path = urlsplit(url).path
    return unquote(last_path_segment(path))


def is_protected_file(path: str) -> bool:
    """Check whether a server path names a file the server protects.

    Examples:
        >>> is_protected_file("$/Proj/Site/Web.config")
        True
        >>> is_protected_file("$/Proj/Site/default.aspx")
        False
    """
    return last_path_segment(path).lower() in PROTECTED_FILE_NAMES


def rewrite_version(url: str, version: str) -> str:
    """Replace the value of the ``version`` query parameter in a URL.

    URLs without a ``version`` parameter are returned unchanged.

    Examples:
        >>> rewrite_version("https://t/items/a.cs?versionType=Changeset&version=7", "42")
        'https://t/items/a.cs?versionType=Changeset&version=42'
        >>> rewrite_version("https://t/items/a.cs", "42")
        'https://t/items/a.cs'
    """
    return _VERSION_PARAM.sub(lambda m: m.group(1) + version, url, count=1)


# =============================================================================
# Formatting utilities
# =============================================================================


def format_elapsed(seconds: Optional[float]) -> str:
    """Format a transaction duration for log output.

    Examples:
        >>> format_elapsed(0.25)
        '250 ms'
        >>> format_elapsed(3.5)
        '3.50 s'
        >>> format_elapsed(None)
        '-'
    """
    if seconds is None:
        return "-"
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.2f} s"
