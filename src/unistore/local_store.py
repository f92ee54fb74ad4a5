"""Local filesystem store.

Objects are plain files under a base directory; nested names become nested
directories. Writes go through a temporary sibling renamed into place, so a
reader or walk never sees a partial file. Temporary files are hidden from
walks while in flight.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any, BinaryIO

from unistore.atomic import is_temp_file, write_file_atomically
from unistore.compression import ObjectReader
from unistore.config import StoreConfig
from unistore.errors import StoreError, UpstreamError
from unistore.models import ObjectAttributes
from unistore.paths import PathResolver
from unistore.store import Store, StoreCore, copy_through_stream
from unistore.tracing import traced_store_operation
from unistore.walk import WalkQuery

logger = logging.getLogger(__name__)


def _sorted_entries(directory: str) -> list[tuple[str, bool]]:
    """Directory entries as (name, is_dir), in full-path lexicographic order.

    Directories sort as "name/" so that depth-first traversal yields keys in
    the same order a flat sort of the full paths would.
    """
    try:
        with os.scandir(directory) as it:
            entries = [(entry.name, entry.is_dir()) for entry in it]
    except FileNotFoundError:
        return []
    entries.sort(key=lambda item: f"{item[0]}/" if item[1] else item[0])
    return entries


class LocalStore(Store):
    """Filesystem-backed store rooted at a base directory."""

    def __init__(
        self,
        base_dir: str | os.PathLike[str],
        config: StoreConfig | None = None,
        *,
        base_url: str | None = None,
        core: StoreCore | None = None,
    ) -> None:
        """Initialize a local store.

        Args:
            base_dir: Directory holding the objects; created lazily on write.
            config: Store configuration.
            base_url: Location descriptor to report (default: base_dir).
            core: Pre-built core, for derived handles.
        """
        base = os.fspath(base_dir)
        if core is None:
            config = config or StoreConfig()
            resolver = PathResolver(base_path=base, extension=config.extension, sep=os.sep)
            core = StoreCore(base_url or base, resolver, config, default_logger=logger)
        self._core = core
        self._base_dir = Path(core.resolver.base_path)
        self._core.logger.debug("LocalStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "local"

    @property
    def core(self) -> StoreCore:
        return self._core

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path(self, name: str) -> Path:
        return Path(self._core.object_path(name))

    @traced_store_operation("write_object")
    def write_object(
        self,
        name: str,
        source: BinaryIO | Any,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        dest = self._path(name)

        def fill(fh: BinaryIO) -> None:
            self._core.encode(fh, source, cancel)

        try:
            written = write_file_atomically(dest, fill, overwrite=self.overwrite)
        except StoreError:
            raise
        except OSError as e:
            raise self._core.upstream("Writing object", name, e) from e

        if written:
            self._core.logger.debug("Wrote object %s", dest)
        else:
            self._core.logger.debug("Object %s exists and overwrite is off, skipped", dest)

    @traced_store_operation("open_object")
    def open_object(self, name: str) -> ObjectReader:
        path = self._path(name)
        try:
            fh = open(path, "rb")  # noqa: SIM115 - owned by the returned reader
        except FileNotFoundError as e:
            raise self._core.not_found(name) from e
        except OSError as e:
            raise self._core.upstream("Opening object", name, e) from e
        self._core.logger.debug("Opened object %s", path)
        return self._core.decode(fh, name)

    def file_exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def object_attributes(self, name: str) -> ObjectAttributes:
        try:
            stat = self._path(name).stat()
        except FileNotFoundError as e:
            raise self._core.not_found(name) from e
        except OSError as e:
            raise self._core.upstream("Reading object attributes", name, e) from e
        return ObjectAttributes.from_timestamp(stat.st_size, stat.st_mtime)

    @traced_store_operation("delete_object")
    def delete_object(self, name: str) -> None:
        try:
            self._path(name).unlink()
        except FileNotFoundError as e:
            raise self._core.not_found(name) from e
        except OSError as e:
            raise self._core.upstream("Deleting object", name, e) from e

    @traced_store_operation("copy_object")
    def copy_object(
        self,
        src: str,
        dest: str,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        copy_through_stream(self, src, dest, cancel)

    def iter_names(
        self,
        prefix: str = "",
        starting_point: str = "",
        *,
        cancel: threading.Event | None = None,
    ) -> Iterator[str]:
        return self._core.iter_names(self._list_keys, prefix, starting_point, cancel)

    def _list_keys(self, query: WalkQuery) -> Iterator[str]:
        """Yield file paths under the query's key prefix in ascending order.

        A prefix that stops mid-name ("0000" for "0000a", "0000b") is handled
        by walking the directory that contains it and filtering by string
        prefix, rather than entering a directory called "0000".
        """
        sep = os.sep
        key_prefix = query.key_prefix
        start_dir = key_prefix.rpartition(sep)[0] if sep in key_prefix else "."
        if not start_dir:
            start_dir = sep

        def walk_dir(directory: str) -> Iterator[str]:
            for entry_name, is_dir in _sorted_entries(directory):
                path = entry_name if directory == "." else os.path.join(directory, entry_name)
                if is_dir:
                    dir_prefix = path + sep
                    if dir_prefix.startswith(key_prefix) or key_prefix.startswith(dir_prefix):
                        yield from walk_dir(path)
                    continue
                if is_temp_file(entry_name) or not path.startswith(key_prefix):
                    continue
                if query.start_key is not None and path < query.start_key:
                    continue
                yield path

        try:
            yield from walk_dir(start_dir)
        except OSError as e:
            raise UpstreamError(
                f"Listing files failed: {e}",
                scope=query.key_prefix,
                cause=e,
            ) from e

    def sub_store(self, sub_folder: str) -> LocalStore:
        return LocalStore(self._base_dir, core=self._core.derive(sub_folder))

    def clone(self, **changes: Any) -> LocalStore:
        return LocalStore(self._base_dir, core=self._core.derive(**changes))

    def close(self) -> None:
        pass
