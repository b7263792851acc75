"""pytfs - CLI tool for cloning folders from Team Foundation Server."""

from .api import TfsClient
from .config import Config, load_config
from .exceptions import (
    TfsConfigError,
    TfsError,
    TfsFilesystemError,
    TfsTransportError,
)
from .http import HttpExecutor, HttpRequest, HttpResponse
from .models import Changeset, ChangesetChange, RemoteEntry

__version__ = "0.1.0"

__all__ = [
    "TfsClient",
    "Config",
    "load_config",
    "HttpExecutor",
    "HttpRequest",
    "HttpResponse",
    "RemoteEntry",
    "Changeset",
    "ChangesetChange",
    "TfsError",
    "TfsConfigError",
    "TfsFilesystemError",
    "TfsTransportError",
]
