"""unistore - one storage contract over several object store backends.

Write, read, enumerate and delete named byte sequences without depending on
the backend holding them.

Backends:
- LocalStore: local filesystem
- S3Store: Amazon S3 and S3-compatible services
- GCSStore: Google Cloud Storage
- AzureStore: Azure Blob Storage
- MemoryStore / MockStore: in-process test doubles

Stores are created from location descriptors with new_store() or one of the
preset constructors.
"""

from unistore.compression import Codec, ObjectReader
from unistore.config import StoreConfig
from unistore.errors import (
    InvalidUsageError,
    ObjectDecodeError,
    ObjectNotFoundError,
    OperationCancelledError,
    StopWalk,
    StoreError,
    UpstreamError,
)
from unistore.factory import new_dbin_store, new_jsonl_store, new_simple_store, new_store
from unistore.metering import MeteringHooks
from unistore.models import ObjectAttributes
from unistore.store import Store

__all__ = [
    "Codec",
    "InvalidUsageError",
    "MeteringHooks",
    "ObjectAttributes",
    "ObjectDecodeError",
    "ObjectNotFoundError",
    "ObjectReader",
    "OperationCancelledError",
    "StopWalk",
    "Store",
    "StoreConfig",
    "StoreError",
    "UpstreamError",
    "new_dbin_store",
    "new_jsonl_store",
    "new_simple_store",
    "new_store",
]
