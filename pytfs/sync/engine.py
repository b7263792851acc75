"""Tree synchronizer that mirrors a remote TFVC path onto local disk."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..api import TfsClient
from ..exceptions import TfsFilesystemError
from ..models import Changeset, RemoteEntry
from ..output import OutputFormatter
from .fs import ensure_directory
from .operations import SyncOperations

logger = logging.getLogger(__name__)


@dataclass
class CloneStats:
    """Counters collected during a clone."""

    folders: int = 0
    files: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"folders": self.folders, "files": self.files, "errors": self.errors}


class TreeSynchronizer:
    """Depth-first, pre-order mirror of a remote folder.

    The local directory is passed down the recursion explicitly; the
    process working directory is never changed. A failed download or
    listing is logged and the walk continues with the next sibling.
    """

    def __init__(
        self,
        client: TfsClient,
        project: str,
        output: Optional[OutputFormatter] = None,
        progress_callback: Optional[Callable[[RemoteEntry, Path], None]] = None,
    ):
        """Initialize the synchronizer.

        Args:
            client: TFS API client
            project: Team project the remote paths belong to
            output: Output formatter for displaying progress/status
            progress_callback: Optional callback(entry, local_dir) invoked
                before each entry is processed
        """
        self.client = client
        self.project = project
        self.output = output or OutputFormatter(quiet=True)
        self.progress_callback = progress_callback
        self.operations = SyncOperations(client)

    def clone(self, remote_path: str, destination: Path) -> CloneStats:
        """Mirror ``remote_path`` into ``destination``.

        Args:
            remote_path: Server path of the folder to clone (e.g. "$/Proj/Src")
            destination: Local directory that receives the folder contents;
                created if missing

        Returns:
            Counters for created folders, downloaded files and failures

        Raises:
            TfsFilesystemError: If the destination itself cannot be created
        """
        destination = ensure_directory(Path(destination))
        stats = CloneStats()

        if self.output.quiet or self.output.json_output:
            self._sync_folder(remote_path, destination, stats)
            return stats

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            task = progress.add_task(f"Cloning {remote_path}", total=None)
            user_callback = self.progress_callback

            def show_entry(entry: RemoteEntry, local_dir: Path) -> None:
                progress.update(
                    task,
                    description=(
                        f"{entry.path} ({stats.files} files, "
                        f"{stats.folders} folders)"
                    ),
                )
                if user_callback:
                    user_callback(entry, local_dir)

            self.progress_callback = show_entry
            try:
                self._sync_folder(remote_path, destination, stats)
            finally:
                self.progress_callback = user_callback

        return stats

    def _sync_folder(
        self, remote_path: str, local_dir: Path, stats: CloneStats
    ) -> None:
        entries = self.client.list_path(self.project, remote_path)
        logger.debug(f"{remote_path}: {len(entries)} entries -> {local_dir}")

        for entry in entries:
            if self.progress_callback:
                self.progress_callback(entry, local_dir)

            if entry.is_folder:
                self._sync_subfolder(entry, local_dir, stats)
            elif self.operations.download_entry(entry, local_dir):
                stats.files += 1
            else:
                logger.debug(f"Failed to download {entry.path}")
                stats.errors += 1

    def _sync_subfolder(
        self, entry: RemoteEntry, local_dir: Path, stats: CloneStats
    ) -> None:
        try:
            child_dir = self.operations.prepare_folder(entry, local_dir)
        except TfsFilesystemError as e:
            # The whole subtree is skipped
            logger.error(f"Skipping {entry.path}: {e}")
            stats.errors += 1
            return

        stats.folders += 1
        self._sync_folder(entry.path, child_dir, stats)

    def fetch_changeset(
        self, changeset_id: int, destination: Path
    ) -> tuple[Optional[Changeset], CloneStats]:
        """Download every file a changeset added or edited, as of that changeset.

        Files are written flat into ``destination``, named by their last
        path segment. Deleted items are skipped.

        Args:
            changeset_id: Changeset to fetch
            destination: Local directory that receives the files

        Returns:
            The changeset (None if its changes could not be listed) and the
            download counters
        """
        destination = ensure_directory(Path(destination))
        stats = CloneStats()
        changeset = Changeset(changeset_id=changeset_id)

        if not self.client.get_changeset_changes(changeset):
            stats.errors += 1
            return None, stats

        for change in changeset.changes:
            if change.is_delete or change.is_folder or not change.name:
                continue
            if self.operations.download_change(change, changeset_id, destination):
                stats.files += 1
            else:
                logger.debug(f"Failed to download {change.path} at C{changeset_id}")
                stats.errors += 1

        return changeset, stats
