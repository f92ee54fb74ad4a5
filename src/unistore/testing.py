"""Scriptable Store double for application tests.

MockStore keeps plain (unencoded) object bytes in a dictionary and lets a
test replace any operation with its own callable:

    store = MockStore()
    store.set_file("0000000100", b"payload")
    store.set_file("broken", b"err")          # open_object("broken") fails
    store.write_object_func = lambda name, source, cancel=None: None
"""

from __future__ import annotations

import io
import logging
import os
import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, BinaryIO, Final

from unistore.compression import ObjectReader
from unistore.config import StoreConfig
from unistore.errors import UpstreamError
from unistore.models import ObjectAttributes
from unistore.paths import PathResolver, join_url
from unistore.store import Store, StoreCore, copy_through_stream
from unistore.walk import Visit, WalkQuery

logger = logging.getLogger(__name__)

ERROR_CONTENT: Final[bytes] = b"err"
MOCK_URL: Final[str] = "mock://mock"


class MockStore(Store):
    """In-memory Store whose operations can be overridden one by one.

    Attributes:
        open_object_func: Replaces open_object(name).
        write_object_func: Replaces write_object(name, source, cancel=...).
        copy_object_func: Replaces copy_object(src, dest, cancel=...).
        delete_object_func: Replaces delete_object(name).
        file_exists_func: Replaces file_exists(name).
        list_files_func: Replaces list_files(prefix, max_results, cancel=...).
        walk_func: Replaces walk(prefix, visit, cancel=...).
        push_local_file_func: Replaces push_local_file(local_file, name, cancel=...).
    """

    def __init__(
        self,
        write_func: Callable[[str, BinaryIO], Any] | None = None,
        *,
        overwrite: bool = False,
        files: dict[str, bytes] | None = None,
        core: StoreCore | None = None,
    ) -> None:
        if core is None:
            core = StoreCore(
                MOCK_URL,
                PathResolver(),
                StoreConfig(overwrite=overwrite),
                default_logger=logger,
            )
        self._core = core
        self._files: dict[str, bytes] = files if files is not None else {}
        self._lock = threading.Lock()

        self.open_object_func: Callable[[str], ObjectReader] | None = None
        self.write_object_func: Callable[..., Any] | None = None
        self.copy_object_func: Callable[..., Any] | None = None
        self.delete_object_func: Callable[[str], Any] | None = None
        self.file_exists_func: Callable[[str], bool] | None = None
        self.list_files_func: Callable[..., list[str]] | None = None
        self.walk_func: Callable[..., Any] | None = None
        self.push_local_file_func: Callable[..., Any] | None = None

        if write_func is not None:
            self.write_object_func = lambda name, source, cancel=None: write_func(name, source)

    @property
    def backend_name(self) -> str:
        return "mock"

    @property
    def core(self) -> StoreCore:
        return self._core

    @property
    def files(self) -> dict[str, bytes]:
        """Snapshot of stored objects."""
        with self._lock:
            return dict(self._files)

    def set_file(self, name: str, content: bytes) -> None:
        """Set an object's content; content b"err" makes opening it fail."""
        logger.debug(
            "Adding mock file %s (%d bytes, error=%s)",
            name,
            len(content),
            content == ERROR_CONTENT,
        )
        with self._lock:
            self._files[name] = bytes(content)

    def write_files(self, to_directory: str | os.PathLike[str]) -> None:
        """Dump every stored object as a file under to_directory."""
        root = Path(to_directory)
        for name, content in self.files.items():
            target = root / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

    def write_object(
        self,
        name: str,
        source: BinaryIO | Any,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        if self.write_object_func is not None:
            self.write_object_func(name, source, cancel=cancel)
            return

        buffer = io.BytesIO()
        self._core.encode(buffer, source, cancel)
        with self._lock:
            if name in self._files and not self.overwrite:
                logger.debug("Mock file %s exists and overwrite is off, skipped", name)
                return
            self._files[name] = buffer.getvalue()

    def open_object(self, name: str) -> ObjectReader:
        if self.open_object_func is not None:
            return self.open_object_func(name)

        with self._lock:
            content = self._files.get(name)
        if content is None:
            raise self._core.not_found(name)
        if content == ERROR_CONTENT:
            raise UpstreamError(f"{name} errored", key=name, scope=self.base_url)
        return self._core.decode(io.BytesIO(content), name)

    def file_exists(self, name: str) -> bool:
        if self.file_exists_func is not None:
            return self.file_exists_func(name)
        with self._lock:
            return name in self._files

    def object_attributes(self, name: str) -> ObjectAttributes:
        with self._lock:
            content = self._files.get(name)
        if content is None:
            raise self._core.not_found(name)
        return ObjectAttributes.from_timestamp(len(content), 0.0)

    def delete_object(self, name: str) -> None:
        if self.delete_object_func is not None:
            self.delete_object_func(name)
            return
        with self._lock:
            if self._files.pop(name, None) is None:
                raise self._core.not_found(name)

    def copy_object(
        self,
        src: str,
        dest: str,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        if self.copy_object_func is not None:
            self.copy_object_func(src, dest, cancel=cancel)
            return
        copy_through_stream(self, src, dest, cancel)

    def iter_names(
        self,
        prefix: str = "",
        starting_point: str = "",
        *,
        cancel: threading.Event | None = None,
    ) -> Iterator[str]:
        return self._core.iter_names(self._list_keys, prefix, starting_point, cancel)

    def _list_keys(self, query: WalkQuery) -> list[str]:
        with self._lock:
            return sorted(name for name in self._files if name.startswith(query.key_prefix))

    def walk(
        self,
        prefix: str,
        visit: Visit,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        if self.walk_func is not None:
            self.walk_func(prefix, visit, cancel=cancel)
            return
        super().walk(prefix, visit, cancel=cancel)

    def list_files(
        self,
        prefix: str = "",
        max_results: int = -1,
        *,
        cancel: threading.Event | None = None,
    ) -> list[str]:
        if self.list_files_func is not None:
            return self.list_files_func(prefix, max_results, cancel=cancel)
        return super().list_files(prefix, max_results, cancel=cancel)

    def push_local_file(
        self,
        local_file: str | os.PathLike[str],
        name: str,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        if self.push_local_file_func is not None:
            self.push_local_file_func(local_file, name, cancel=cancel)
            return
        super().push_local_file(local_file, name, cancel=cancel)

    def _copy_overrides(self, other: MockStore) -> MockStore:
        other.open_object_func = self.open_object_func
        other.write_object_func = self.write_object_func
        other.copy_object_func = self.copy_object_func
        other.delete_object_func = self.delete_object_func
        other.file_exists_func = self.file_exists_func
        other.list_files_func = self.list_files_func
        other.walk_func = self.walk_func
        other.push_local_file_func = self.push_local_file_func
        return other

    def sub_store(self, sub_folder: str) -> MockStore:
        """Snapshot of the objects under sub_folder, with names relative to it."""
        folder = sub_folder.strip("/") + "/"
        files = {
            name[len(folder) :]: content
            for name, content in self.files.items()
            if name.startswith(folder)
        }
        core = StoreCore(
            join_url(self.base_url, folder.rstrip("/")),
            PathResolver(),
            self.config,
            default_logger=logger,
        )
        return self._copy_overrides(MockStore(files=files, core=core))

    def clone(self, **changes: Any) -> MockStore:
        """Handle over the same objects with config fields replaced."""
        clone = MockStore(files=self._files, core=self._core.derive(**changes))
        clone._lock = self._lock
        return self._copy_overrides(clone)

    def close(self) -> None:
        pass
