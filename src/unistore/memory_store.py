"""In-process store for tests.

Stores encoded object bytes in a dictionary keyed by physical key, so codecs,
extensions and metering behave exactly as on a real backend. Handles derived
with sub_store() or clone() share the same MemoryBucket.
"""

from __future__ import annotations

import io
import logging
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, BinaryIO

from unistore.compression import ObjectReader
from unistore.config import StoreConfig
from unistore.models import ObjectAttributes
from unistore.paths import PathResolver
from unistore.store import Store, StoreCore, copy_through_stream
from unistore.tracing import traced_store_operation
from unistore.walk import WalkQuery

logger = logging.getLogger(__name__)


@dataclass
class MemoryBucket:
    """Thread-safe key -> (content, mtime) map shared by memory stores."""

    objects: dict[str, tuple[bytes, float]] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def put(self, key: str, content: bytes, *, overwrite: bool) -> bool:
        with self.lock:
            if not overwrite and key in self.objects:
                return False
            self.objects[key] = (content, time.time())
            return True

    def get(self, key: str) -> tuple[bytes, float] | None:
        with self.lock:
            return self.objects.get(key)

    def remove(self, key: str) -> bool:
        with self.lock:
            return self.objects.pop(key, None) is not None

    def keys_from(self, key_prefix: str, start_key: str | None) -> list[str]:
        with self.lock:
            keys = [k for k in self.objects if k.startswith(key_prefix)]
        if start_key is not None:
            keys = [k for k in keys if k >= start_key]
        return sorted(keys)


class MemoryStore(Store):
    """Dictionary-backed store, for tests and local experiments."""

    def __init__(
        self,
        base_path: str = "",
        config: StoreConfig | None = None,
        *,
        bucket: MemoryBucket | None = None,
        base_url: str | None = None,
        core: StoreCore | None = None,
    ) -> None:
        if core is None:
            config = config or StoreConfig()
            resolver = PathResolver(base_path=base_path.strip("/"), extension=config.extension)
            location = base_url or f"memory://{base_path}"
            core = StoreCore(location, resolver, config, default_logger=logger)
        self._core = core
        self._bucket = bucket if bucket is not None else MemoryBucket()

    @property
    def backend_name(self) -> str:
        return "memory"

    @property
    def core(self) -> StoreCore:
        return self._core

    @property
    def bucket(self) -> MemoryBucket:
        return self._bucket

    @traced_store_operation("write_object")
    def write_object(
        self,
        name: str,
        source: BinaryIO | Any,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        buffer = io.BytesIO()
        self._core.encode(buffer, source, cancel)
        key = self._core.object_path(name)
        if not self._bucket.put(key, buffer.getvalue(), overwrite=self.overwrite):
            self._core.logger.debug("Object %s exists and overwrite is off, skipped", key)

    @traced_store_operation("open_object")
    def open_object(self, name: str) -> ObjectReader:
        entry = self._bucket.get(self._core.object_path(name))
        if entry is None:
            raise self._core.not_found(name)
        return self._core.decode(io.BytesIO(entry[0]), name)

    def file_exists(self, name: str) -> bool:
        return self._bucket.get(self._core.object_path(name)) is not None

    def object_attributes(self, name: str) -> ObjectAttributes:
        entry = self._bucket.get(self._core.object_path(name))
        if entry is None:
            raise self._core.not_found(name)
        return ObjectAttributes.from_timestamp(len(entry[0]), entry[1])

    @traced_store_operation("delete_object")
    def delete_object(self, name: str) -> None:
        if not self._bucket.remove(self._core.object_path(name)):
            raise self._core.not_found(name)

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
        yield from self._bucket.keys_from(query.key_prefix, query.start_key)

    def sub_store(self, sub_folder: str) -> MemoryStore:
        return MemoryStore(bucket=self._bucket, core=self._core.derive(sub_folder))

    def clone(self, **changes: Any) -> MemoryStore:
        return MemoryStore(bucket=self._bucket, core=self._core.derive(**changes))

    def close(self) -> None:
        pass
