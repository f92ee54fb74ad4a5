"""Store interface and the shared per-handle core.

Store is the contract every backend implements. Backend classes own the I/O
primitives (write, open, stat, delete, list); everything that is the same for
all of them (name translation, codecs, walk bounds and gating, list-over-walk,
push-and-verify) lives in a StoreCore instance each handle holds.
"""

from __future__ import annotations

import io
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from types import TracebackType
from typing import Any, BinaryIO

from unistore.compression import ObjectReader, decode, encode
from unistore.config import StoreConfig
from unistore.errors import ObjectNotFoundError, UpstreamError
from unistore.models import ObjectAttributes
from unistore.paths import PathResolver, join_url, validate_base_location
from unistore.retry import push_and_remove
from unistore.tracing import traced_store_operation
from unistore.walk import Visit, WalkQuery, collect_names, iter_base_names, plan_walk, run_walk

logger = logging.getLogger(__name__)


class StoreCore:
    """Configuration snapshot plus the backend-independent store logic.

    A core is immutable once built. Derived handles (sub_store, clone) get a
    new core via derive(), which shares nothing mutable with this one.
    """

    def __init__(
        self,
        base_url: str,
        resolver: PathResolver,
        config: StoreConfig,
        *,
        default_logger: logging.Logger | None = None,
    ) -> None:
        validate_base_location(base_url)
        if config.extension != resolver.extension:
            resolver = resolver.with_extension(config.extension)
        self._base_url = base_url
        self._resolver = resolver
        self._config = config
        self._logger = config.logger or default_logger or logger

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def derive(self, sub_folder: str | None = None, **changes: Any) -> StoreCore:
        """Core for a derived handle: optionally scoped deeper and/or reconfigured."""
        config = self._config.with_changes(**changes) if changes else self._config
        resolver = self._resolver
        base_url = self._base_url
        if sub_folder:
            resolver = resolver.child(sub_folder)
            base_url = join_url(base_url, sub_folder.strip("/"))
        return StoreCore(base_url, resolver, config, default_logger=self._logger)

    # Names

    def object_path(self, name: str) -> str:
        return self._resolver.object_path(name)

    def to_base_name(self, path: str) -> str:
        return self._resolver.to_base_name(path)

    def object_url(self, name: str) -> str:
        return join_url(self._base_url, f"{name}{self._resolver.suffix}")

    # Content

    def encode(
        self,
        destination: Any,
        source: BinaryIO | Any,
        cancel: threading.Event | None = None,
    ) -> int:
        return encode(
            destination,
            source,
            self._config.compression,
            self._config.hooks,
            cancel=cancel,
        )

    def decode(self, source: Any, name: str) -> ObjectReader:
        return decode(
            source,
            self._config.compression,
            self._config.hooks,
            key=name,
            scope=self._base_url,
        )

    # Errors

    def not_found(self, name: str) -> ObjectNotFoundError:
        return ObjectNotFoundError(key=name, scope=self._base_url)

    def upstream(self, action: str, name: str | None, cause: BaseException) -> UpstreamError:
        return UpstreamError(
            f"{action} failed: {cause}",
            key=name,
            scope=self._base_url,
            cause=cause,
        )

    # Walking

    def iter_names(
        self,
        list_keys: Callable[[WalkQuery], Iterable[str]],
        prefix: str,
        starting_point: str,
        cancel: threading.Event | None = None,
    ) -> Iterator[str]:
        """Validate the request now, then lazily list and filter names.

        Raises:
            InvalidUsageError: If starting_point does not start with prefix,
                before list_keys is called.
        """
        query = plan_walk(self._resolver, prefix, starting_point)
        self._logger.debug(
            "Walking %s: prefix=%r starting_point=%r start_after=%r",
            self._base_url,
            prefix,
            starting_point,
            query.start_after,
        )
        return iter_base_names(list_keys(query), self._resolver, query, cancel=cancel)


class Store(ABC):
    """Abstract base class for object stores.

    Objects are named byte sequences relative to the store's base location.
    Content is encoded with the configured codec on write and decoded on read;
    the configured extension is appended to names to form physical keys.

    Implementations:
    - LocalStore: local filesystem
    - S3Store: Amazon S3 and S3-compatible services
    - GCSStore: Google Cloud Storage
    - AzureStore: Azure Blob Storage
    - MemoryStore: in-process dictionary (tests)
    - MockStore: scriptable test double
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @property
    @abstractmethod
    def core(self) -> StoreCore:
        """Return the handle's configuration and shared logic."""
        ...

    @abstractmethod
    def write_object(
        self,
        name: str,
        source: BinaryIO | Any,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Store the content read from source under name.

        The object becomes visible all at once or not at all. With overwrite
        disabled an existing object is left untouched and the call succeeds.

        Raises:
            OperationCancelledError: If cancel fires.
            UpstreamError: If the backend fails.
        """
        ...

    @abstractmethod
    def open_object(self, name: str) -> ObjectReader:
        """Open an object for reading its decoded content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            UpstreamError: If the backend fails.
        """
        ...

    @abstractmethod
    def file_exists(self, name: str) -> bool:
        """Check whether an object exists."""
        ...

    @abstractmethod
    def object_attributes(self, name: str) -> ObjectAttributes:
        """Return size and modification time of the stored object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        ...

    @abstractmethod
    def delete_object(self, name: str) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        ...

    @abstractmethod
    def copy_object(
        self,
        src: str,
        dest: str,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Copy object src to dest within this store, honoring the overwrite policy.

        Raises:
            ObjectNotFoundError: If src does not exist.
        """
        ...

    @abstractmethod
    def iter_names(
        self,
        prefix: str = "",
        starting_point: str = "",
        *,
        cancel: threading.Event | None = None,
    ) -> Iterator[str]:
        """Return the ascending names starting with prefix and >= starting_point.

        The iterator is lazy and single-use.

        Raises:
            InvalidUsageError: Immediately, if a non-empty starting_point does
                not start with prefix.
        """
        ...

    @abstractmethod
    def sub_store(self, sub_folder: str) -> Store:
        """Return a handle scoped to sub_folder, sharing this handle's client."""
        ...

    @abstractmethod
    def clone(self, **changes: Any) -> Store:
        """Return a handle with config fields replaced, sharing this handle's client."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the backend client if this handle created it."""
        ...

    # Shared behaviour, delegated to the core

    @property
    def base_url(self) -> str:
        return self.core.base_url

    @property
    def config(self) -> StoreConfig:
        return self.core.config

    @property
    def overwrite(self) -> bool:
        return self.core.config.overwrite

    def object_path(self, name: str) -> str:
        return self.core.object_path(name)

    def to_base_name(self, path: str) -> str:
        return self.core.to_base_name(path)

    def object_url(self, name: str) -> str:
        return self.core.object_url(name)

    def walk(
        self,
        prefix: str,
        visit: Visit,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Call visit with each name under prefix, in ascending order.

        visit may raise StopWalk to end the walk early; any other exception
        ends the walk and propagates.
        """
        self.walk_from(prefix, "", visit, cancel=cancel)

    @traced_store_operation("walk_from")
    def walk_from(
        self,
        prefix: str,
        starting_point: str,
        visit: Visit,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Like walk, skipping names lower than starting_point.

        Raises:
            InvalidUsageError: If a non-empty starting_point does not start
                with prefix. Raised before any listing I/O.
        """
        names = self.iter_names(prefix, starting_point, cancel=cancel)
        run_walk(names, visit, cancel=cancel)

    def list_files(
        self,
        prefix: str = "",
        max_results: int = -1,
        *,
        cancel: threading.Event | None = None,
    ) -> list[str]:
        """Return up to max_results names under prefix (negative: all)."""
        return collect_names(lambda visit: self.walk(prefix, visit, cancel=cancel), max_results)

    @traced_store_operation("push_local_file")
    def push_local_file(
        self,
        local_file: str | os.PathLike[str],
        name: str,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Upload local_file as name, then delete local_file.

        With config.push_verify_delay set, the object's visibility is checked
        after that delay and the upload is repeated once if it is missing.
        """
        push_and_remove(
            self.write_object,
            self.file_exists,
            local_file,
            name,
            verify_delay=self.config.push_verify_delay,
            cancel=cancel,
            log=self.core.logger,
        )

    def write_bytes(
        self,
        name: str,
        data: bytes,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        self.write_object(name, io.BytesIO(data), cancel=cancel)

    def read_bytes(self, name: str) -> bytes:
        with self.open_object(name) as reader:
            return reader.read()

    def __enter__(self) -> Store:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def copy_through_stream(
    store: Store,
    src: str,
    dest: str,
    cancel: threading.Event | None = None,
) -> None:
    """Copy by reading src decoded and writing it back encoded."""
    with store.open_object(src) as reader:
        store.write_object(dest, reader, cancel=cancel)
