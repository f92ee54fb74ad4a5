"""Google Cloud Storage store.

Writes encode into a spooled temporary file and upload it in one request, so
a failed or cancelled write never commits a partial object. Overwrite-off
writes use the native create-if-absent precondition (if_generation_match=0);
a failed precondition means the object already exists and is treated as
success. Walks pass the starting point as an inclusive start_offset.
"""

from __future__ import annotations

import logging
import tempfile
import threading
from collections.abc import Iterator
from typing import Any, BinaryIO, Final

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from unistore.compression import ObjectReader
from unistore.config import StoreConfig
from unistore.errors import UpstreamError
from unistore.models import ObjectAttributes
from unistore.paths import PathResolver
from unistore.store import Store, StoreCore
from unistore.tracing import traced_store_operation
from unistore.walk import WalkQuery

logger = logging.getLogger(__name__)

CONTENT_TYPE: Final[str] = "application/octet-stream"
CACHE_CONTROL: Final[str] = "public, max-age=86400"
SPOOL_MAX_MEMORY: Final[int] = 16 * 1024 * 1024


def create_gcs_client(project: str | None = None) -> Any:
    """Create a Cloud Storage client using application default credentials."""
    client = storage.Client(project=project) if project else storage.Client()
    logger.info("Created GCS client: project=%s", project or "default")
    return client


class GCSStore(Store):
    """Store over a Cloud Storage bucket and object prefix."""

    def __init__(
        self,
        bucket: str,
        path: str = "",
        config: StoreConfig | None = None,
        *,
        client: Any,
        user_project: str | None = None,
        base_url: str | None = None,
        core: StoreCore | None = None,
        owns_client: bool = True,
    ) -> None:
        """Initialize a GCS store.

        Args:
            bucket: Bucket name.
            path: Object prefix (no leading or trailing "/").
            config: Store configuration.
            client: google.cloud.storage.Client.
            user_project: Project billed for requester-pays buckets.
            base_url: Location descriptor to report.
            core: Pre-built core, for derived handles.
            owns_client: Whether close() should close the client.
        """
        if core is None:
            config = config or StoreConfig()
            resolver = PathResolver(base_path=path.strip("/"), extension=config.extension)
            location = base_url or f"gs://{bucket}/{path}".rstrip("/")
            core = StoreCore(location, resolver, config, default_logger=logger)
        self._core = core
        self._client = client
        self._bucket_name = bucket
        self._user_project = user_project
        self._bucket = client.bucket(bucket, user_project=user_project)
        self._owns_client = owns_client

    @property
    def backend_name(self) -> str:
        return "gs"

    @property
    def core(self) -> StoreCore:
        return self._core

    def _blob(self, name: str) -> Any:
        return self._bucket.blob(self._core.object_path(name))

    def _create_condition(self) -> int | None:
        return None if self.overwrite else 0

    @traced_store_operation("write_object")
    def write_object(
        self,
        name: str,
        source: BinaryIO | Any,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        blob = self._blob(name)
        blob.cache_control = CACHE_CONTROL

        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY) as spool:
            self._core.encode(spool, source, cancel)
            spool.seek(0)
            try:
                blob.upload_from_file(
                    spool,
                    content_type=CONTENT_TYPE,
                    if_generation_match=self._create_condition(),
                )
            except gcs_exceptions.PreconditionFailed:
                self._core.logger.debug(
                    "Object %s exists and overwrite is off, skipped", blob.name
                )
                return
            except gcs_exceptions.GoogleAPIError as e:
                raise self._core.upstream("Uploading object", name, e) from e
        self._core.logger.debug("Uploaded gs://%s/%s", self._bucket_name, blob.name)

    @traced_store_operation("open_object")
    def open_object(self, name: str) -> ObjectReader:
        key = self._core.object_path(name)
        try:
            blob = self._bucket.get_blob(key)
        except gcs_exceptions.GoogleAPIError as e:
            raise self._core.upstream("Opening object", name, e) from e
        if blob is None:
            raise self._core.not_found(name)
        return self._core.decode(blob.open("rb"), name)

    def file_exists(self, name: str) -> bool:
        try:
            return bool(self._blob(name).exists())
        except gcs_exceptions.GoogleAPIError as e:
            raise self._core.upstream("Checking object", name, e) from e

    def object_attributes(self, name: str) -> ObjectAttributes:
        try:
            blob = self._bucket.get_blob(self._core.object_path(name))
        except gcs_exceptions.GoogleAPIError as e:
            raise self._core.upstream("Reading object attributes", name, e) from e
        if blob is None:
            raise self._core.not_found(name)
        return ObjectAttributes.from_datetime(int(blob.size or 0), blob.updated)

    @traced_store_operation("delete_object")
    def delete_object(self, name: str) -> None:
        try:
            self._blob(name).delete()
        except gcs_exceptions.NotFound as e:
            raise self._core.not_found(name) from e
        except gcs_exceptions.GoogleAPIError as e:
            raise self._core.upstream("Deleting object", name, e) from e

    @traced_store_operation("copy_object")
    def copy_object(
        self,
        src: str,
        dest: str,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        try:
            self._bucket.copy_blob(
                self._blob(src),
                self._bucket,
                new_name=self._core.object_path(dest),
                if_generation_match=self._create_condition(),
            )
        except gcs_exceptions.PreconditionFailed:
            return
        except gcs_exceptions.NotFound as e:
            raise self._core.not_found(src) from e
        except gcs_exceptions.GoogleAPIError as e:
            raise self._core.upstream("Copying object", src, e) from e

    def iter_names(
        self,
        prefix: str = "",
        starting_point: str = "",
        *,
        cancel: threading.Event | None = None,
    ) -> Iterator[str]:
        return self._core.iter_names(self._list_keys, prefix, starting_point, cancel)

    def _list_keys(self, query: WalkQuery) -> Iterator[str]:
        params: dict[str, Any] = {"prefix": query.key_prefix}
        if query.start_key is not None:
            params["start_offset"] = query.start_key
        try:
            for blob in self._bucket.list_blobs(**params):
                yield blob.name
        except gcs_exceptions.GoogleAPIError as e:
            raise UpstreamError(
                f"Listing objects failed: {e}",
                scope=f"gs://{self._bucket_name}/{query.key_prefix}",
                cause=e,
            ) from e

    def _derived(self, core: StoreCore) -> GCSStore:
        return GCSStore(
            self._bucket_name,
            client=self._client,
            user_project=self._user_project,
            core=core,
            owns_client=False,
        )

    def sub_store(self, sub_folder: str) -> GCSStore:
        return self._derived(self._core.derive(sub_folder))

    def clone(self, **changes: Any) -> GCSStore:
        return self._derived(self._core.derive(**changes))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

