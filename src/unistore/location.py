"""Location descriptor parsing.

A location descriptor is a URI-like string naming a store's base scope:

    /var/data/blocks              local path (no scheme)
    file:///var/data/blocks       local path
    s3://bucket/path?region=R     Amazon S3
    s3://host:port/bucket/path?region=R&insecure=true
                                  S3-compatible endpoint (path-style addressing)
    gs://bucket/path?project=P    Google Cloud Storage, P billed (requester pays)
    az://account.container/path   Azure Blob Storage
    memory://bucket/path          in-process store (tests)

Descriptors never end with "/".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final
from urllib.parse import parse_qs, unquote, urlsplit

from unistore.errors import InvalidUsageError
from unistore.paths import validate_base_location

LOCAL: Final[str] = "local"
SUPPORTED_SCHEMES: Final = frozenset({"file", "s3", "gs", "az", "memory"})


@dataclass(frozen=True)
class Location:
    """A parsed location descriptor.

    Attributes:
        url: The descriptor as given.
        scheme: "local", "s3", "gs", "az" or "memory".
        netloc: Authority part (host[:port]), case preserved.
        path: For local stores the filesystem path; otherwise the path part
            without leading or trailing "/".
        query: Query parameters, last value wins.
    """

    url: str
    scheme: str
    netloc: str = ""
    path: str = ""
    query: dict[str, str] = field(default_factory=dict)

    @property
    def host(self) -> str:
        return self.netloc.rpartition("@")[2].partition(":")[0]

    @property
    def port(self) -> str:
        return self.netloc.rpartition("@")[2].partition(":")[2]


def _is_drive_letter(scheme: str) -> bool:
    return len(scheme) == 1 and scheme.isalpha()


def parse_location(url: str) -> Location:
    """Parse a location descriptor.

    Raises:
        InvalidUsageError: If the descriptor is empty, ends with "/", or uses
            an unsupported scheme.
    """
    if not url:
        raise InvalidUsageError("Store location must not be empty")
    validate_base_location(url)

    parts = urlsplit(url)
    scheme = parts.scheme.lower()

    if not scheme or _is_drive_letter(scheme):
        return Location(url=url, scheme=LOCAL, path=url)
    if scheme not in SUPPORTED_SCHEMES:
        raise InvalidUsageError(
            f"Unsupported store scheme {parts.scheme!r}, expected a local path, "
            "file://, s3://, gs://, az:// or memory://",
            scope=url,
        )

    parsed_query = parse_qs(parts.query, keep_blank_values=True)
    query = {key: values[-1] for key, values in parsed_query.items()}
    if scheme == "file":
        path = unquote(parts.netloc + parts.path)
        if not path:
            raise InvalidUsageError("file:// location needs a path", scope=url)
        return Location(url=url, scheme=LOCAL, path=path, query=query)

    return Location(
        url=url,
        scheme=scheme,
        netloc=parts.netloc,
        path=unquote(parts.path).strip("/"),
        query=query,
    )


@dataclass(frozen=True)
class S3Location:
    """Connection settings and scope of an S3 location."""

    bucket: str
    path: str
    region: str
    endpoint_url: str | None = None
    path_style: bool = False
    access_key_id: str | None = field(default=None, repr=False)
    secret_access_key: str | None = field(default=None, repr=False)


def query_flag(location: Location, key: str) -> bool:
    """Read a boolean query parameter ("1", "true", "yes"; anything else is off)."""
    return location.query.get(key, "").strip().lower() in ("1", "true", "yes")


def has_custom_endpoint(location: Location) -> bool:
    """Decide whether an s3:// host is an endpoint rather than a bucket.

    A port always means an endpoint. A host without dots is a bucket. A dotted
    host is an endpoint unless infer_aws_endpoint is set, which marks it as a
    bucket whose name contains dots.
    """
    if location.port:
        return True
    if "." not in location.host:
        return False
    return not query_flag(location, "infer_aws_endpoint")


def parse_s3_location(location: Location) -> S3Location:
    """Extract S3 settings from a parsed s3:// location.

    Raises:
        InvalidUsageError: If region or bucket is missing.
    """
    region = location.query.get("region", "")
    if not region:
        raise InvalidUsageError(
            "specify s3 bucket like: s3://bucket/path?region=us-east-1",
            scope=location.url,
        )

    endpoint_url = None
    path_style = False
    if has_custom_endpoint(location):
        scheme = "http" if query_flag(location, "insecure") else "https"
        endpoint_url = f"{scheme}://{location.netloc}"
        path_style = True
        bucket, _, path = location.path.partition("/")
    else:
        bucket, path = location.host, location.path

    if not bucket:
        raise InvalidUsageError("s3 location has no bucket", scope=location.url)

    access_key_id = location.query.get("access_key_id") or None
    secret_access_key = location.query.get("secret_access_key") or None
    return S3Location(
        bucket=bucket,
        path=path.strip("/"),
        region=region,
        endpoint_url=endpoint_url,
        path_style=path_style,
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
    )


def parse_azure_account(location: Location) -> tuple[str, str]:
    """Split an az:// host into (account, container).

    Raises:
        InvalidUsageError: If the host is not "account.container".
    """
    account, _, container = location.host.partition(".")
    if not account or not container:
        raise InvalidUsageError(
            "specify azure location like: az://account.container/path",
            scope=location.url,
        )
    return account, container
