"""Logical name <-> physical path translation."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from unistore.errors import InvalidUsageError


def validate_base_location(location: str) -> None:
    """Reject base locations that end with a path separator.

    Raises:
        InvalidUsageError: If location ends with "/" (or the OS separator).
    """
    if location.endswith("/") or location.endswith("\\"):
        raise InvalidUsageError(
            "Store location must not end with a path separator", scope=location
        )


@dataclass(frozen=True)
class PathResolver:
    """Maps object names to physical keys under a base path, and back.

    Physical path is ``base_path + sep + name + "." + extension``; the base part
    is dropped when base_path is empty and the suffix when extension is empty.
    Names containing separators are kept verbatim, so nested names map to
    nested keys.
    """

    base_path: str = ""
    extension: str = ""
    sep: str = "/"

    @property
    def suffix(self) -> str:
        return f".{self.extension}" if self.extension else ""

    @property
    def root(self) -> str:
        """Physical prefix shared by every key of the store."""
        return f"{self.base_path}{self.sep}" if self.base_path else ""

    def object_path(self, name: str) -> str:
        return f"{self.root}{name}{self.suffix}"

    def to_base_name(self, path: str) -> str:
        """Inverse of object_path: strip the base path and the extension."""
        root = self.root
        if root and path.startswith(root):
            path = path[len(root) :]
        suffix = self.suffix
        if suffix and path.endswith(suffix):
            path = path[: -len(suffix)]
        return path

    def key_prefix(self, prefix: str) -> str:
        """Physical listing prefix for a logical name prefix."""
        return f"{self.root}{prefix}"

    def start_key(self, starting_point: str) -> str:
        """Physical key lower bound for a logical starting point.

        Every key of a name >= starting_point sorts at or after this key.
        """
        return f"{self.root}{starting_point}"

    def child(self, sub_folder: str) -> PathResolver:
        """Resolver scoped to a sub-folder of this one."""
        sub_folder = sub_folder.strip("/")
        if not sub_folder:
            return self
        base = f"{self.base_path}{self.sep}{sub_folder}" if self.base_path else sub_folder
        return PathResolver(base_path=base, extension=self.extension, sep=self.sep)

    def with_extension(self, extension: str) -> PathResolver:
        return PathResolver(base_path=self.base_path, extension=extension, sep=self.sep)


def join_url(base_url: str, tail: str) -> str:
    """Append a path tail to a location descriptor, keeping its query string."""
    tail = tail.lstrip("/")
    if not tail:
        return base_url
    parts = urlsplit(base_url)
    if not parts.scheme:
        return f"{base_url}/{tail}"
    return urlunsplit(parts._replace(path=f"{parts.path.rstrip('/')}/{tail}"))
