"""Amazon S3 (and S3-compatible) store.

Uploads stream through a pipe: a worker thread encodes the caller's source
while boto3's managed upload reads from the other end. S3 has no
create-if-absent precondition here, so with overwrite disabled a HEAD check
runs before the upload. That check is best-effort: two writers racing on
the same absent name can both pass it, and the later upload wins.
"""

from __future__ import annotations

import io
import logging
import threading
import time
from collections.abc import Iterator
from typing import Any, BinaryIO, Final

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from unistore.atomic import piped_upload
from unistore.compression import ObjectReader
from unistore.config import StoreConfig
from unistore.errors import ObjectNotFoundError, StoreError, UpstreamError
from unistore.models import ObjectAttributes
from unistore.paths import PathResolver
from unistore.store import Store, StoreCore
from unistore.tracing import traced_store_operation
from unistore.walk import WalkQuery

logger = logging.getLogger(__name__)

NOT_FOUND_CODES: Final = frozenset({"NoSuchKey", "NotFound", "404"})
NO_SUCH_BUCKET: Final[str] = "NoSuchBucket"

_SDK_ERRORS: Final = (ClientError, BotoCoreError, S3UploadFailedError)


def error_code(exc: ClientError) -> str:
    """Return the S3 error code of a ClientError ("" when absent)."""
    return str(exc.response.get("Error", {}).get("Code", ""))


def create_s3_client(
    region: str,
    *,
    endpoint_url: str | None = None,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    path_style: bool = False,
) -> Any:
    """Create a boto3 S3 client.

    Credentials default to boto3's usual chain (environment, profile, role)
    unless a static key pair is given.
    """
    kwargs: dict[str, Any] = {}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    if access_key_id and secret_access_key:
        kwargs["aws_access_key_id"] = access_key_id
        kwargs["aws_secret_access_key"] = secret_access_key
    if path_style:
        kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})

    session = boto3.session.Session(region_name=region)
    client = session.client("s3", **kwargs)
    logger.info(
        "Created S3 client: region=%s, endpoint=%s, path_style=%s",
        region,
        endpoint_url or "default",
        path_style,
    )
    return client


class S3Store(Store):
    """Store over an S3 bucket and key prefix."""

    def __init__(
        self,
        bucket: str,
        path: str = "",
        config: StoreConfig | None = None,
        *,
        client: Any,
        base_url: str | None = None,
        core: StoreCore | None = None,
        owns_client: bool = True,
    ) -> None:
        """Initialize an S3 store.

        Args:
            bucket: Bucket name.
            path: Key prefix (no leading or trailing "/").
            config: Store configuration.
            client: boto3 S3 client, safe to share between threads.
            base_url: Location descriptor to report.
            core: Pre-built core, for derived handles.
            owns_client: Whether close() should close the client.
        """
        if core is None:
            config = config or StoreConfig()
            resolver = PathResolver(base_path=path.strip("/"), extension=config.extension)
            location = base_url or f"s3://{bucket}/{path}".rstrip("/")
            core = StoreCore(location, resolver, config, default_logger=logger)
        self._core = core
        self._bucket = bucket
        self._client = client
        self._owns_client = owns_client

    @property
    def backend_name(self) -> str:
        return "s3"

    @property
    def core(self) -> StoreCore:
        return self._core

    @property
    def bucket(self) -> str:
        return self._bucket

    def _wrap(self, action: str, name: str | None, exc: Exception) -> StoreError:
        if isinstance(exc, ClientError):
            code = error_code(exc)
            if code in NOT_FOUND_CODES and name is not None:
                return self._core.not_found(name)
            if code == NO_SUCH_BUCKET:
                return UpstreamError(
                    f"s3 bucket {self._bucket} does not exist",
                    key=name,
                    scope=self._core.base_url,
                    cause=exc,
                )
        return self._core.upstream(action, name, exc)

    @traced_store_operation("write_object")
    def write_object(
        self,
        name: str,
        source: BinaryIO | Any,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        key = self._core.object_path(name)
        if not self.overwrite and self.file_exists(name):
            self._core.logger.debug("Object %s exists and overwrite is off, skipped", key)
            return

        def produce(pipe: Any) -> None:
            self._core.encode(pipe, source, cancel)

        def consume(pipe: Any) -> None:
            self._client.upload_fileobj(pipe, self._bucket, key)

        try:
            piped_upload(produce, consume, cancel=cancel)
        except StoreError:
            raise
        except _SDK_ERRORS as e:
            raise self._wrap("Uploading object", name, e) from e
        self._core.logger.debug("Uploaded s3://%s/%s", self._bucket, key)

    @traced_store_operation("open_object")
    def open_object(self, name: str) -> ObjectReader:
        key = self._core.object_path(name)
        config = self._core.config
        failure: tuple[StoreError, Exception] | None = None

        for attempt in range(config.read_attempts):
            if attempt > 0:
                self._core.logger.debug(
                    "Retrying S3 open of %s (attempt %d of %d) after: %s",
                    key,
                    attempt + 1,
                    config.read_attempts,
                    failure[0] if failure else None,
                )
                time.sleep(config.read_retry_delay)

            try:
                response = self._client.get_object(Bucket=self._bucket, Key=key)
            except _SDK_ERRORS as e:
                error = self._wrap("Opening object", name, e)
                if isinstance(error, ObjectNotFoundError):
                    raise error from e
                failure = (error, e)
                continue

            body = response["Body"]
            if not config.buffered_read:
                return self._core.decode(body, name)
            try:
                data = body.read()
            except _SDK_ERRORS as e:
                failure = (self._wrap("Reading object", name, e), e)
                continue
            finally:
                body.close()
            return self._core.decode(io.BytesIO(data), name)

        assert failure is not None
        error, cause = failure
        raise error from cause

    def _head(self, name: str) -> dict[str, Any]:
        return self._client.head_object(Bucket=self._bucket, Key=self._core.object_path(name))

    def file_exists(self, name: str) -> bool:
        try:
            self._head(name)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return False
            raise self._wrap("Checking object", None, e) from e
        except BotoCoreError as e:
            raise self._wrap("Checking object", name, e) from e
        return True

    def object_attributes(self, name: str) -> ObjectAttributes:
        try:
            head = self._head(name)
        except _SDK_ERRORS as e:
            raise self._wrap("Reading object attributes", name, e) from e
        return ObjectAttributes.from_datetime(int(head["ContentLength"]), head["LastModified"])

    @traced_store_operation("delete_object")
    def delete_object(self, name: str) -> None:
        # S3 deletes succeed on missing keys, so existence is checked first.
        if not self.file_exists(name):
            raise self._core.not_found(name)
        try:
            self._client.delete_object(Bucket=self._bucket, Key=self._core.object_path(name))
        except _SDK_ERRORS as e:
            raise self._wrap("Deleting object", name, e) from e

    @traced_store_operation("copy_object")
    def copy_object(
        self,
        src: str,
        dest: str,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        if not self.overwrite and self.file_exists(dest):
            return
        source_ref = {"Bucket": self._bucket, "Key": self._core.object_path(src)}
        try:
            self._client.copy_object(
                Bucket=self._bucket,
                Key=self._core.object_path(dest),
                CopySource=source_ref,
            )
        except _SDK_ERRORS as e:
            raise self._wrap("Copying object", src, e) from e

    def iter_names(
        self,
        prefix: str = "",
        starting_point: str = "",
        *,
        cancel: threading.Event | None = None,
    ) -> Iterator[str]:
        return self._core.iter_names(self._list_keys, prefix, starting_point, cancel)

    def _list_keys(self, query: WalkQuery) -> Iterator[str]:
        params: dict[str, Any] = {"Bucket": self._bucket, "Prefix": query.key_prefix}
        if query.start_after is not None:
            # StartAfter is exclusive; the gate drops keys between it and the start.
            params["StartAfter"] = query.start_after

        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(**params):
                for item in page.get("Contents", []):
                    yield item["Key"]
        except _SDK_ERRORS as e:
            raise UpstreamError(
                f"Listing objects failed: {e}",
                scope=f"s3://{self._bucket}/{query.key_prefix}",
                cause=e,
            ) from e

    def sub_store(self, sub_folder: str) -> S3Store:
        return S3Store(
            self._bucket,
            client=self._client,
            core=self._core.derive(sub_folder),
            owns_client=False,
        )

    def clone(self, **changes: Any) -> S3Store:
        return S3Store(
            self._bucket,
            client=self._client,
            core=self._core.derive(**changes),
            owns_client=False,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
