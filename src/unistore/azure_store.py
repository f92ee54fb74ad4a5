"""Azure Blob Storage store.

Uploads stream through a pipe into upload_blob. Overwrite-off writes pass
overwrite=False, which the service enforces atomically; ResourceExistsError
then means the blob already exists and is treated as success. The list API
has no start-after marker, so walks rely on the client-side gate.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Any, BinaryIO, Final

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from unistore.atomic import piped_upload
from unistore.compression import ObjectReader
from unistore.config import StoreConfig
from unistore.errors import StoreError, UpstreamError
from unistore.models import ObjectAttributes
from unistore.paths import PathResolver
from unistore.store import Store, StoreCore, copy_through_stream
from unistore.tracing import traced_store_operation
from unistore.walk import WalkQuery

logger = logging.getLogger(__name__)

CONTENT_TYPE: Final[str] = "application/octet-stream"
CACHE_CONTROL: Final[str] = "public, max-age=86400"


def create_azure_client(account: str, account_key: str) -> BlobServiceClient:
    """Create a blob service client authenticated with a shared account key."""
    client = BlobServiceClient(
        account_url=f"https://{account}.blob.core.windows.net",
        credential={"account_name": account, "account_key": account_key},
    )
    logger.info("Created Azure blob client: account=%s", account)
    return client


class _ChunkReader:
    """File-like view over the chunk iterator of a blob download."""

    def __init__(self, chunks: Iterator[bytes]) -> None:
        self._chunks = chunks
        self._pending = b""

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            data = self._pending + b"".join(self._chunks)
            self._pending = b""
            return data
        while len(self._pending) < size:
            chunk = next(self._chunks, None)
            if chunk is None:
                break
            self._pending += chunk
        data, self._pending = self._pending[:size], self._pending[size:]
        return data

    def close(self) -> None:
        self._pending = b""


class AzureStore(Store):
    """Store over an Azure container and blob prefix."""

    def __init__(
        self,
        container: str,
        path: str = "",
        config: StoreConfig | None = None,
        *,
        client: Any,
        base_url: str | None = None,
        core: StoreCore | None = None,
        owns_client: bool = True,
    ) -> None:
        """Initialize an Azure store.

        Args:
            container: Container name.
            path: Blob prefix (no leading or trailing "/").
            config: Store configuration.
            client: azure.storage.blob.BlobServiceClient.
            base_url: Location descriptor to report.
            core: Pre-built core, for derived handles.
            owns_client: Whether close() should close the client.
        """
        if core is None:
            config = config or StoreConfig()
            resolver = PathResolver(base_path=path.strip("/"), extension=config.extension)
            location = base_url or f"az://{container}/{path}".rstrip("/")
            core = StoreCore(location, resolver, config, default_logger=logger)
        self._core = core
        self._client = client
        self._container_name = container
        self._container = client.get_container_client(container)
        self._owns_client = owns_client

    @property
    def backend_name(self) -> str:
        return "az"

    @property
    def core(self) -> StoreCore:
        return self._core

    def _blob_client(self, name: str) -> Any:
        return self._container.get_blob_client(self._core.object_path(name))

    @traced_store_operation("write_object")
    def write_object(
        self,
        name: str,
        source: BinaryIO | Any,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        key = self._core.object_path(name)
        settings = ContentSettings(content_type=CONTENT_TYPE, cache_control=CACHE_CONTROL)

        def produce(pipe: Any) -> None:
            self._core.encode(pipe, source, cancel)

        def consume(pipe: Any) -> None:
            self._container.upload_blob(
                name=key,
                data=pipe,
                overwrite=self.overwrite,
                content_settings=settings,
            )

        try:
            piped_upload(produce, consume, cancel=cancel)
        except ResourceExistsError:
            self._core.logger.debug("Blob %s exists and overwrite is off, skipped", key)
            return
        except StoreError:
            raise
        except AzureError as e:
            raise self._core.upstream("Uploading object", name, e) from e
        self._core.logger.debug("Uploaded az://%s/%s", self._container_name, key)

    @traced_store_operation("open_object")
    def open_object(self, name: str) -> ObjectReader:
        try:
            downloader = self._blob_client(name).download_blob()
        except ResourceNotFoundError as e:
            raise self._core.not_found(name) from e
        except AzureError as e:
            raise self._core.upstream("Opening object", name, e) from e
        return self._core.decode(_ChunkReader(iter(downloader.chunks())), name)

    def file_exists(self, name: str) -> bool:
        try:
            return bool(self._blob_client(name).exists())
        except AzureError as e:
            raise self._core.upstream("Checking object", name, e) from e

    def object_attributes(self, name: str) -> ObjectAttributes:
        try:
            props = self._blob_client(name).get_blob_properties()
        except ResourceNotFoundError as e:
            raise self._core.not_found(name) from e
        except AzureError as e:
            raise self._core.upstream("Reading object attributes", name, e) from e
        return ObjectAttributes.from_datetime(int(props.size), props.last_modified)

    @traced_store_operation("delete_object")
    def delete_object(self, name: str) -> None:
        try:
            self._blob_client(name).delete_blob()
        except ResourceNotFoundError as e:
            raise self._core.not_found(name) from e
        except AzureError as e:
            raise self._core.upstream("Deleting object", name, e) from e

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
        try:
            for props in self._container.list_blobs(name_starts_with=query.key_prefix):
                yield props.name
        except AzureError as e:
            raise UpstreamError(
                f"Listing blobs failed: {e}",
                scope=f"az://{self._container_name}/{query.key_prefix}",
                cause=e,
            ) from e

    def _derived(self, core: StoreCore) -> AzureStore:
        return AzureStore(
            self._container_name,
            client=self._client,
            core=core,
            owns_client=False,
        )

    def sub_store(self, sub_folder: str) -> AzureStore:
        return self._derived(self._core.derive(sub_folder))

    def clone(self, **changes: Any) -> AzureStore:
        return self._derived(self._core.derive(**changes))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
