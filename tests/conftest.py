"""Pytest configuration and fixtures for unistore tests.

Cloud backends run against small in-process fakes of the SDK clients they
use, so the shared contract suite needs no network or credentials. The fakes
only model what the stores call: put/get/head/list/delete/copy plus the
SDKs' not-found and precondition signals.
"""

from __future__ import annotations

import io
import threading
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from botocore.exceptions import ClientError
from google.api_core import exceptions as gcs_exceptions

from unistore.config import StoreConfig
from unistore.store import Store

BACKENDS = ["local", "memory", "s3", "gs", "az"]


class FakeObjects:
    """Thread-safe key -> bytes map with call counters, shared by the fakes."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.modified: dict[str, datetime] = {}
        self.lock = threading.Lock()
        self.list_calls = 0
        self.list_params: list[dict[str, Any]] = []

    def put(self, key: str, content: bytes) -> None:
        with self.lock:
            self.data[key] = content
            self.modified[key] = datetime.now(UTC)

    def get(self, key: str) -> bytes | None:
        with self.lock:
            return self.data.get(key)

    def remove(self, key: str) -> bool:
        with self.lock:
            return self.data.pop(key, None) is not None

    def sorted_keys(self, prefix: str = "") -> list[str]:
        with self.lock:
            return sorted(k for k in self.data if k.startswith(prefix))


def _read_all(fileobj: Any) -> bytes:
    chunks = []
    while True:
        chunk = fileobj.read(8 * 1024)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


# S3 (boto3 client surface)


def _s3_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Paginator:
    """list_objects_v2 paginator returning two keys per page."""

    page_size = 2

    def __init__(self, client: FakeS3Client) -> None:
        self._client = client

    def paginate(self, **params: Any) -> Iterator[dict[str, Any]]:
        objects = self._client.objects
        objects.list_calls += 1
        objects.list_params.append(dict(params))
        keys = objects.sorted_keys(params.get("Prefix", ""))
        start_after = params.get("StartAfter")
        if start_after is not None:
            keys = [k for k in keys if k > start_after]
        for i in range(0, len(keys), self.page_size):
            yield {"Contents": [{"Key": k} for k in keys[i : i + self.page_size]]}


class FakeS3Client:
    """Subset of the boto3 S3 client used by S3Store."""

    def __init__(self, bucket: str = "bucket") -> None:
        self.bucket = bucket
        self.objects = FakeObjects()
        self.closed = False

    def _check_bucket(self, bucket: str, operation: str) -> None:
        if bucket != self.bucket:
            raise _s3_error("NoSuchBucket", operation)

    def upload_fileobj(self, fileobj: Any, bucket: str, key: str) -> None:
        content = _read_all(fileobj)
        self._check_bucket(bucket, "PutObject")
        self.objects.put(key, content)

    def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:  # noqa: N803
        self._check_bucket(Bucket, "GetObject")
        content = self.objects.get(Key)
        if content is None:
            raise _s3_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(content), "ContentLength": len(content)}

    def head_object(self, Bucket: str, Key: str) -> dict[str, Any]:  # noqa: N803
        self._check_bucket(Bucket, "HeadObject")
        content = self.objects.get(Key)
        if content is None:
            raise _s3_error("404", "HeadObject")
        return {"ContentLength": len(content), "LastModified": self.objects.modified[Key]}

    def delete_object(self, Bucket: str, Key: str) -> dict[str, Any]:  # noqa: N803
        self._check_bucket(Bucket, "DeleteObject")
        self.objects.remove(Key)
        return {}

    def copy_object(
        self, Bucket: str, Key: str, CopySource: dict[str, str]  # noqa: N803
    ) -> dict[str, Any]:
        self._check_bucket(Bucket, "CopyObject")
        content = self.objects.get(CopySource["Key"])
        if content is None:
            raise _s3_error("NoSuchKey", "CopyObject")
        self.objects.put(Key, content)
        return {}

    def get_paginator(self, operation: str) -> FakeS3Paginator:
        assert operation == "list_objects_v2"
        return FakeS3Paginator(self)

    def close(self) -> None:
        self.closed = True


# Google Cloud Storage (google.cloud.storage surface)


class FakeGCSBlob:
    def __init__(self, bucket: FakeGCSBucket, name: str) -> None:
        self._bucket = bucket
        self.name = name
        self.cache_control: str | None = None
        self.content_type: str | None = None

    @property
    def size(self) -> int | None:
        content = self._bucket.objects.get(self.name)
        return None if content is None else len(content)

    @property
    def updated(self) -> datetime | None:
        return self._bucket.objects.modified.get(self.name)

    def upload_from_file(
        self,
        file_obj: Any,
        content_type: str | None = None,
        if_generation_match: int | None = None,
    ) -> None:
        content = _read_all(file_obj)
        with self._bucket.objects.lock:
            if if_generation_match == 0 and self.name in self._bucket.objects.data:
                raise gcs_exceptions.PreconditionFailed("generation precondition failed")
        self.content_type = content_type
        self._bucket.objects.put(self.name, content)

    def open(self, mode: str = "rb") -> io.BytesIO:
        assert mode == "rb"
        content = self._bucket.objects.get(self.name)
        if content is None:
            raise gcs_exceptions.NotFound(f"No such object: {self.name}")
        return io.BytesIO(content)

    def exists(self) -> bool:
        return self._bucket.objects.get(self.name) is not None

    def delete(self) -> None:
        if not self._bucket.objects.remove(self.name):
            raise gcs_exceptions.NotFound(f"No such object: {self.name}")


class FakeGCSBucket:
    def __init__(self, name: str, objects: FakeObjects, user_project: str | None) -> None:
        self.name = name
        self.objects = objects
        self.user_project = user_project

    def blob(self, name: str) -> FakeGCSBlob:
        return FakeGCSBlob(self, name)

    def get_blob(self, name: str) -> FakeGCSBlob | None:
        if self.objects.get(name) is None:
            return None
        return FakeGCSBlob(self, name)

    def copy_blob(
        self,
        blob: FakeGCSBlob,
        destination_bucket: FakeGCSBucket,
        new_name: str,
        if_generation_match: int | None = None,
    ) -> FakeGCSBlob:
        content = self.objects.get(blob.name)
        if content is None:
            raise gcs_exceptions.NotFound(f"No such object: {blob.name}")
        if if_generation_match == 0 and destination_bucket.objects.get(new_name) is not None:
            raise gcs_exceptions.PreconditionFailed("generation precondition failed")
        destination_bucket.objects.put(new_name, content)
        return FakeGCSBlob(destination_bucket, new_name)

    def list_blobs(
        self,
        prefix: str = "",
        start_offset: str | None = None,
    ) -> Iterator[FakeGCSBlob]:
        self.objects.list_calls += 1
        self.objects.list_params.append({"prefix": prefix, "start_offset": start_offset})
        for key in self.objects.sorted_keys(prefix):
            if start_offset is not None and key < start_offset:
                continue
            yield FakeGCSBlob(self, key)


class FakeGCSClient:
    """Subset of google.cloud.storage.Client used by GCSStore."""

    def __init__(self) -> None:
        self.objects = FakeObjects()
        self.closed = False
        self.user_projects: list[str | None] = []

    def bucket(self, bucket_name: str, user_project: str | None = None) -> FakeGCSBucket:
        self.user_projects.append(user_project)
        return FakeGCSBucket(bucket_name, self.objects, user_project)

    def close(self) -> None:
        self.closed = True


# Azure Blob Storage (azure.storage.blob surface)


class FakeBlobProperties:
    def __init__(self, name: str, size: int = 0, last_modified: datetime | None = None) -> None:
        self.name = name
        self.size = size
        self.last_modified = last_modified


class FakeDownloader:
    chunk_size = 5

    def __init__(self, content: bytes) -> None:
        self._content = content

    def chunks(self) -> Iterator[bytes]:
        for i in range(0, len(self._content), self.chunk_size):
            yield self._content[i : i + self.chunk_size]


class FakeAzureBlobClient:
    def __init__(self, objects: FakeObjects, name: str) -> None:
        self._objects = objects
        self.name = name

    def download_blob(self) -> FakeDownloader:
        content = self._objects.get(self.name)
        if content is None:
            raise ResourceNotFoundError("The specified blob does not exist.")
        return FakeDownloader(content)

    def exists(self) -> bool:
        return self._objects.get(self.name) is not None

    def get_blob_properties(self) -> FakeBlobProperties:
        content = self._objects.get(self.name)
        if content is None:
            raise ResourceNotFoundError("The specified blob does not exist.")
        return FakeBlobProperties(self.name, len(content), self._objects.modified[self.name])

    def delete_blob(self) -> None:
        if not self._objects.remove(self.name):
            raise ResourceNotFoundError("The specified blob does not exist.")


class FakeAzureContainer:
    def __init__(self, objects: FakeObjects) -> None:
        self.objects = objects
        self.content_settings: dict[str, Any] = {}

    def upload_blob(
        self,
        name: str,
        data: Any,
        overwrite: bool = False,
        content_settings: Any = None,
    ) -> None:
        content = _read_all(data)
        with self.objects.lock:
            if not overwrite and name in self.objects.data:
                raise ResourceExistsError("The specified blob already exists.")
        self.content_settings[name] = content_settings
        self.objects.put(name, content)

    def get_blob_client(self, blob: str) -> FakeAzureBlobClient:
        return FakeAzureBlobClient(self.objects, blob)

    def list_blobs(self, name_starts_with: str | None = None) -> Iterator[FakeBlobProperties]:
        self.objects.list_calls += 1
        self.objects.list_params.append({"name_starts_with": name_starts_with})
        for key in self.objects.sorted_keys(name_starts_with or ""):
            yield FakeBlobProperties(key)


class FakeBlobServiceClient:
    """Subset of azure.storage.blob.BlobServiceClient used by AzureStore."""

    def __init__(self) -> None:
        self.objects = FakeObjects()
        self.container = FakeAzureContainer(self.objects)
        self.closed = False

    def get_container_client(self, container: str) -> FakeAzureContainer:
        return self.container

    def close(self) -> None:
        self.closed = True


# Fixtures


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def fake_gcs() -> FakeGCSClient:
    return FakeGCSClient()


@pytest.fixture
def fake_azure() -> FakeBlobServiceClient:
    return FakeBlobServiceClient()


@pytest.fixture(params=BACKENDS)
def backend(request: pytest.FixtureRequest) -> str:
    """Name of the backend under test; contract tests run once per backend."""
    return request.param


@pytest.fixture
def make_store(
    backend: str,
    tmp_path: Path,
    fake_s3: FakeS3Client,
    fake_gcs: FakeGCSClient,
    fake_azure: FakeBlobServiceClient,
) -> Callable[..., Store]:
    """Build stores of the backend under test over one shared data set.

    Every store built in the same test sees the same objects, so a test can
    write through one configuration and read through another.
    """
    from unistore.azure_store import AzureStore
    from unistore.gcs_store import GCSStore
    from unistore.local_store import LocalStore
    from unistore.memory_store import MemoryBucket, MemoryStore
    from unistore.s3_store import S3Store

    bucket = MemoryBucket()

    def build(path: str = "data", **config_fields: Any) -> Store:
        config = StoreConfig(**config_fields)
        if backend == "local":
            return LocalStore(tmp_path / path, config)
        if backend == "memory":
            return MemoryStore(path, config, bucket=bucket)
        if backend == "s3":
            return S3Store("bucket", path, config, client=fake_s3, owns_client=False)
        if backend == "gs":
            return GCSStore("bucket", path, config, client=fake_gcs, owns_client=False)
        return AzureStore("container", path, config, client=fake_azure, owns_client=False)

    return build


@pytest.fixture
def store(make_store: Callable[..., Store]) -> Store:
    """Plain store (no extension, no codec, overwrite off) of the backend under test."""
    return make_store()
