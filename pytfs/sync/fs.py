"""Local filesystem helpers for cloning."""

from pathlib import Path

from ..exceptions import TfsFilesystemError
from ..utils import safe_child_name

__all__ = ["ensure_directory", "safe_child_name"]


def ensure_directory(path: Path) -> Path:
    """Create a directory if it does not exist yet.

    Calling this again for an existing directory has no effect.

    Args:
        path: Directory to create

    Returns:
        The directory path

    Raises:
        TfsFilesystemError: If something other than a directory occupies the
            path or the directory cannot be created
    """
    if path.exists() and not path.is_dir():
        raise TfsFilesystemError(str(path), "a file with this name already exists")

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise TfsFilesystemError(str(path), e.strerror or str(e)) from e
    return path
