"""API client for the TFVC REST interface of Team Foundation Server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from .exceptions import TfsFilesystemError
from .http import HttpExecutor, HttpRequest
from .models import (
    Changeset,
    ChangesetChange,
    RemoteEntry,
    get_count,
    get_value_array,
)
from .utils import (
    CHANGES_TOP_COUNT,
    filename_from_url,
    is_protected_file,
    last_path_segment,
    rewrite_version,
    safe_child_name,
)

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


class TfsClient:
    """Client for the TFVC REST API.

    Failures never raise: every operation logs the problem and reports it
    through its return value (None, False or an empty list).
    """

    def __init__(
        self,
        base_url: str,
        branch: str = "",
        username: str = "",
        password: str = "",
        auth: str = "ntlm",
        verbose: bool = False,
        executor: HttpExecutor | None = None,
        verify: bool = True,
        timeout: float | None = None,
    ):
        """Initialize the TFS client.

        Args:
            base_url: Collection URL (e.g. https://tfs/tfs/DefaultCollection)
            branch: Server path that scopes changeset history
            username: Account name; requests are anonymous when empty
            password: Account password
            auth: Authentication scheme, "ntlm" or "basic"
            verbose: Stream a wire trace of every request to the log
            executor: Executor to run requests on. A private one is created
                (and owned) when omitted.
            verify: Verify TLS certificates of a private executor
            timeout: Network timeout of a private executor, in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.branch = branch
        self.username = username
        self.password = password
        self.auth = auth
        self.verbose = verbose

        self._owns_executor = executor is None
        self.executor = executor or HttpExecutor(verify=verify, timeout=timeout)

    @classmethod
    def from_config(
        cls,
        config: Config,
        verbose: bool = False,
        executor: HttpExecutor | None = None,
    ) -> TfsClient:
        """Create a client from loaded settings."""
        return cls(
            base_url=config.url,
            branch=config.branch,
            username=config.username,
            password=config.password,
            auth=config.auth,
            verbose=verbose,
            executor=executor,
            verify=not config.insecure,
            timeout=config.timeout,
        )

    @property
    def tfvc_url(self) -> str:
        """Root of the collection-level TFVC API."""
        return f"{self.base_url}/_apis/tfvc"

    def close(self) -> None:
        """Release the executor if this client created it."""
        if self._owns_executor:
            self.executor.close()

    def __enter__(self) -> TfsClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _new_request(self, url: str) -> HttpRequest:
        req = HttpRequest(url, self.verbose)
        if self.username:
            if self.auth == "basic":
                req.set_basic_auth(self.username, self.password)
            else:
                req.set_ntlm(self.username, self.password)
        return req

    def _send_request(self, method: str, url: str, body: str | None = None) -> Any:
        """Send a JSON request and decode the response.

        Args:
            method: HTTP method
            url: Full request URL
            body: Optional JSON body

        Returns:
            Decoded JSON, or None if the call failed
        """
        req = self._new_request(url)
        req.set_content("application/json")

        res = req.exec(method, body, self.executor)

        # Successful means 200 OK or 201 Created.
        if not res.ok:
            logger.error(
                f"Made request to {url}, and status code is {res.status_code}\n"
                f"{res.text}"
            )
            return None

        try:
            return res.json()
        except ValueError as e:
            logger.error(f"Invalid JSON response from {url}: {e}")
            return None

    # =========================
    # Item Operations
    # =========================

    def list_path(self, project: str, path: str) -> list[RemoteEntry]:
        """List the direct children of a server folder.

        Args:
            project: Team project name
            path: Server path (e.g. "$/Project/Src")

        Returns:
            Child entries, without the entry for ``path`` itself. Empty when
            the call fails.
        """
        url = (
            f"{self.base_url}/{project}/_apis/tfvc/items"
            f"?scopePath={quote(path, safe='')}&recursionLevel=OneLevel"
        )

        data = self._send_request("GET", url)
        if data is None:
            return []

        values = get_value_array(data)
        if values is None:
            logger.warning(f"Listing of {path} has no 'value' array")
            return []

        entries = []
        for item in values:
            entry = RemoteEntry.from_dict(item)
            # The listing includes the queried folder itself
            if entry.path == path:
                continue
            entries.append(entry)
        return entries

    def get_direct_file(
        self, url: str, destination: str | Path | None = None
    ) -> bool:
        """Download a URL into a directory.

        The file is named after the last segment of the URL path, without
        the query string.

        Args:
            url: Download URL (usually RemoteEntry.url)
            destination: Target directory (default: current directory)

        Returns:
            True if the file was downloaded
        """
        try:
            filename = safe_child_name(filename_from_url(url))
        except TfsFilesystemError as e:
            logger.error(f"Cannot derive a file name from {url}: {e}")
            return False

        target = Path(destination or ".") / filename
        req = self._new_request(url)
        return req.get_file(target, self.executor)

    # =========================
    # Changeset Operations
    # =========================

    def get_changes_after(self, changeset_id: int | str) -> list[Changeset] | None:
        """Get changesets on the configured branch starting at an id.

        Args:
            changeset_id: First changeset id to include

        Returns:
            Changesets in ascending order, or None if the call failed
        """
        url = (
            f"{self.tfvc_url}/changesets?searchCriteria.fromId={changeset_id}"
            f"&searchCriteria.itemPath={quote(self.branch, safe='')}"
            "&%24orderby=id%20asc"
        )

        data = self._send_request("GET", url)
        if data is None:
            return None

        count = get_count(data)
        if count is not None:
            logger.debug(f"Server reports {count} changesets after {changeset_id}")

        values = get_value_array(data)
        if values is None:
            logger.warning("Changeset response has no 'value' array")
            return None

        return [Changeset.from_dict(value) for value in values]

    def get_changeset_comment(self, changeset: Changeset) -> bool:
        """Fill in the comment of a changeset.

        Returns:
            True if the changeset was fetched
        """
        url = f"{self.tfvc_url}/changesets/{changeset.changeset_id}"

        data = self._send_request("GET", url)
        if data is None:
            return False

        comment = data.get("comment") if isinstance(data, dict) else None
        if isinstance(comment, str):
            changeset.comment = comment
        return True

    def get_changeset_changes(self, changeset: Changeset) -> bool:
        """Fill in the changed items of a changeset.

        Returns:
            True if the changes were fetched
        """
        url = (
            f"{self.tfvc_url}/changesets/{changeset.changeset_id}"
            f"/changes?%24top={CHANGES_TOP_COUNT}"
        )

        data = self._send_request("GET", url)
        if data is None:
            return False

        values = get_value_array(data)
        if values is None:
            logger.warning(
                f"Changes of changeset {changeset.changeset_id} have no 'value' array"
            )
            return False

        changeset.changes.extend(ChangesetChange.from_dict(value) for value in values)
        return True

    def get_file(
        self,
        change: ChangesetChange,
        revision_id: int | str,
        destination: str | Path | None = None,
    ) -> bool:
        """Download a file as of a specific changeset.

        Protected configuration files (web.config) are not served by path
        segment, so they are requested through the ``path`` query parameter
        instead of the item URL.

        Args:
            change: Changed item to download
            revision_id: Changeset id to download the file at
            destination: Target directory (default: current directory)

        Returns:
            True if the file was downloaded
        """
        if is_protected_file(change.path):
            url = (
                f"{self.tfvc_url}/items?path=%24{quote(change.path[1:], safe='/')}"
                f"&versionType=Changeset&version={revision_id}"
            )
        else:
            url = rewrite_version(change.url, str(revision_id))

        try:
            filename = safe_child_name(last_path_segment(change.path))
        except TfsFilesystemError as e:
            logger.error(f"Cannot derive a file name from {change.path}: {e}")
            return False

        target = Path(destination or ".") / filename
        req = self._new_request(url)
        return req.get_file(target, self.executor)
