"""Download operations used while cloning."""

from pathlib import Path

from ..api import TfsClient
from ..models import ChangesetChange, RemoteEntry
from .fs import ensure_directory, safe_child_name


class SyncOperations:
    """Local side effects of a clone, on top of the TFS client."""

    def __init__(self, client: TfsClient):
        """Initialize sync operations.

        Args:
            client: TFS API client
        """
        self.client = client

    def download_entry(self, entry: RemoteEntry, local_dir: Path) -> bool:
        """Download a remote file into a local directory.

        Args:
            entry: Remote file entry
            local_dir: Directory that receives the file

        Returns:
            True if the file was downloaded
        """
        return self.client.get_direct_file(entry.url, local_dir)

    def download_change(
        self, change: ChangesetChange, revision_id: int, local_dir: Path
    ) -> bool:
        """Download a changed file as of a changeset.

        Args:
            change: Changed item
            revision_id: Changeset id to download the file at
            local_dir: Directory that receives the file

        Returns:
            True if the file was downloaded
        """
        return self.client.get_file(change, revision_id, local_dir)

    def prepare_folder(self, entry: RemoteEntry, local_dir: Path) -> Path:
        """Create the local directory mirroring a remote folder.

        Args:
            entry: Remote folder entry
            local_dir: Parent directory

        Returns:
            The local directory for the folder

        Raises:
            TfsFilesystemError: If the directory cannot be created
        """
        return ensure_directory(local_dir / safe_child_name(entry.name))
