"""Store construction from location descriptors.

new_store() parses a descriptor, builds the backend client and returns the
matching Store. The handle owns the client it built and releases it on
close(); a client passed in by the caller stays the caller's to close.

Environment Variables:
    AZURE_STORAGE_KEY: Account key for az:// locations when no credential
        argument is given.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Final

from unistore.compression import Codec
from unistore.config import StoreConfig
from unistore.errors import InvalidUsageError
from unistore.location import (
    LOCAL,
    Location,
    parse_azure_account,
    parse_location,
    parse_s3_location,
)
from unistore.store import Store

logger = logging.getLogger(__name__)

AZURE_STORAGE_KEY_ENV: Final[str] = "AZURE_STORAGE_KEY"


def new_store(
    url: str,
    extension: str | None = None,
    compression: str | Codec | None = None,
    overwrite: bool | None = None,
    *,
    config: StoreConfig | None = None,
    client: Any = None,
    credential: str | None = None,
) -> Store:
    """Create a store for a location descriptor.

    Args:
        url: Location descriptor (see unistore.location), no trailing "/".
        extension: Object name suffix; overrides config.extension when given.
        compression: Codec name; overrides config.compression when given.
        overwrite: Overwrite policy; overrides config.overwrite when given.
        config: Base configuration (default: StoreConfig()).
        client: Pre-built backend client (boto3 S3 client, storage.Client,
            BlobServiceClient or MemoryBucket) to use instead of building one.
        credential: Azure account key.

    Returns:
        The backend's Store.

    Raises:
        InvalidUsageError: If the descriptor or configuration is invalid.
    """
    location = parse_location(url)

    changes: dict[str, Any] = {}
    if extension is not None:
        changes["extension"] = extension
    if compression is not None:
        changes["compression"] = compression
    if overwrite is not None:
        changes["overwrite"] = overwrite
    config = (config or StoreConfig()).with_changes(**changes)

    builder = _BUILDERS.get(location.scheme)
    if builder is None:
        raise InvalidUsageError(f"Unsupported store scheme {location.scheme!r}", scope=url)
    store = builder(location, config, client, credential)
    logger.debug(
        "Created %s store for %s (extension=%r, compression=%s, overwrite=%s)",
        store.backend_name,
        url,
        config.extension,
        config.compression.value,
        config.overwrite,
    )
    return store


def _build_local(location: Location, config: StoreConfig, client: Any, credential: Any) -> Store:
    from unistore.local_store import LocalStore

    return LocalStore(location.path, config, base_url=location.url)


def _build_memory(location: Location, config: StoreConfig, client: Any, credential: Any) -> Store:
    from unistore.memory_store import MemoryStore

    base_path = "/".join(part for part in (location.host, location.path) if part)
    return MemoryStore(base_path, config, bucket=client, base_url=location.url)


def _build_s3(location: Location, config: StoreConfig, client: Any, credential: Any) -> Store:
    from unistore.s3_store import S3Store, create_s3_client

    s3 = parse_s3_location(location)
    owns_client = client is None
    if client is None:
        client = create_s3_client(
            s3.region,
            endpoint_url=s3.endpoint_url,
            access_key_id=s3.access_key_id,
            secret_access_key=s3.secret_access_key,
            path_style=s3.path_style,
        )
    return S3Store(
        s3.bucket,
        s3.path,
        config,
        client=client,
        base_url=location.url,
        owns_client=owns_client,
    )


def _build_gcs(location: Location, config: StoreConfig, client: Any, credential: Any) -> Store:
    from unistore.gcs_store import GCSStore, create_gcs_client

    if not location.host:
        raise InvalidUsageError("gs location has no bucket", scope=location.url)
    project = location.query.get("project") or None
    owns_client = client is None
    if client is None:
        client = create_gcs_client(project)
    return GCSStore(
        location.host,
        location.path,
        config,
        client=client,
        user_project=project,
        base_url=location.url,
        owns_client=owns_client,
    )


def _build_azure(location: Location, config: StoreConfig, client: Any, credential: Any) -> Store:
    from unistore.azure_store import AzureStore, create_azure_client

    account, container = parse_azure_account(location)
    owns_client = client is None
    if client is None:
        account_key = credential or os.environ.get(AZURE_STORAGE_KEY_ENV, "")
        if not account_key:
            raise InvalidUsageError(
                f"Azure account key missing: pass credential or set {AZURE_STORAGE_KEY_ENV}",
                scope=location.url,
            )
        client = create_azure_client(account, account_key)
    return AzureStore(
        container,
        location.path,
        config,
        client=client,
        base_url=location.url,
        owns_client=owns_client,
    )


_BUILDERS: Final = {
    LOCAL: _build_local,
    "memory": _build_memory,
    "s3": _build_s3,
    "gs": _build_gcs,
    "az": _build_azure,
}


def new_dbin_store(url: str, **kwargs: Any) -> Store:
    """Store of zstd-compressed ".dbin.zst" objects, overwrite off."""
    return new_store(url, "dbin.zst", Codec.ZSTD, False, **kwargs)


def new_jsonl_store(url: str, **kwargs: Any) -> Store:
    """Store of gzip-compressed ".jsonl.gz" objects, overwrite off."""
    return new_store(url, "jsonl.gz", Codec.GZIP, False, **kwargs)


def new_simple_store(url: str, **kwargs: Any) -> Store:
    """Store of plain objects with no extension or codec, overwrite on."""
    return new_store(url, "", Codec.NONE, True, **kwargs)
