"""Data models for TFVC REST API responses.

Every field is optional. A missing or mistyped field falls back
to its zero value and decoding carries on with the remaining fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .utils import last_path_segment


def _get_int(data: Any, key: str) -> int:
    """Read an integer field, 0 when missing or not a JSON number."""
    if not isinstance(data, dict):
        return 0
    value = data.get(key)
    # bool is a subclass of int, but JSON true/false is not a number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _get_str(data: Any, key: str) -> str:
    """Read a string field, "" when missing or not a JSON string."""
    if not isinstance(data, dict):
        return ""
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _get_true(data: Any, key: str) -> bool:
    """Read a flag that only counts when it is literally JSON true."""
    if not isinstance(data, dict):
        return False
    return data.get(key) is True


def _get_object(data: Any, key: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def get_value_array(data: Any) -> list[Any] | None:
    """Return the ``value`` array of a list response, or None if absent."""
    if not isinstance(data, dict):
        return None
    values = data.get("value")
    return values if isinstance(values, list) else None


def get_count(data: Any) -> int | None:
    """Return the ``count`` field of a list response, or None if absent."""
    if not isinstance(data, dict) or "count" not in data:
        return None
    return _get_int(data, "count")


@dataclass(frozen=True)
class RemoteEntry:
    """One child of a listed remote directory."""

    path: str = ""
    url: str = ""
    version: int = 0
    is_folder: bool = False

    @property
    def name(self) -> str:
        """Last segment of the server path."""
        return last_path_segment(self.path)

    @classmethod
    def from_dict(cls, data: Any) -> RemoteEntry:
        """Create a RemoteEntry from an item of the ``items`` listing."""
        return cls(
            path=_get_str(data, "path"),
            url=_get_str(data, "url"),
            version=_get_int(data, "version"),
            is_folder=_get_true(data, "isFolder"),
        )


@dataclass
class ChangesetChange:
    """A single item changed by a changeset."""

    change_type: str = ""
    version: int = 0
    path: str = ""
    url: str = ""
    is_folder: bool = False

    @property
    def name(self) -> str:
        return last_path_segment(self.path)

    @property
    def is_delete(self) -> bool:
        """Whether the change removed the item (e.g. "delete, source rename")."""
        return "delete" in self.change_type.lower()

    @classmethod
    def from_dict(cls, data: Any) -> ChangesetChange:
        """Create a change from an entry of the ``changes`` response.

        The item attributes live in a nested ``item`` object.
        """
        item = _get_object(data, "item")
        return cls(
            change_type=_get_str(data, "changeType"),
            version=_get_int(item, "version"),
            path=_get_str(item, "path"),
            url=_get_str(item, "url"),
            is_folder=_get_true(item, "isFolder"),
        )


@dataclass
class Changeset:
    """A numbered unit of committed changes.

    ``comment`` and ``changes`` are empty until filled by
    TfsClient.get_changeset_comment / TfsClient.get_changeset_changes.
    """

    changeset_id: int = 0
    author: str = ""
    comment: str = ""
    changes: list[ChangesetChange] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Changeset:
        """Create a changeset from an entry of the ``changesets`` response."""
        author = _get_object(data, "author")
        return cls(
            changeset_id=_get_int(data, "changesetId"),
            author=_get_str(author, "displayName"),
        )
