"""Store configuration.

A StoreConfig is the immutable settings snapshot every store handle carries.
Changing a setting means deriving a new handle (Store.clone), never mutating
one that may have operations in flight.

Environment Variables (read only by StoreConfig.from_env):
    UNISTORE_PUSH_VERIFY_DELAY: Seconds to wait before verifying a pushed file
        (default: 0, verification disabled)
    UNISTORE_READ_ATTEMPTS: Open attempts on backends with flaky reads (default: 1)
    UNISTORE_BUFFERED_READ: "1" to read whole S3 bodies before decoding (default: off)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Final

from unistore.compression import Codec
from unistore.errors import InvalidUsageError
from unistore.metering import MeteringHooks

ENV_PUSH_VERIFY_DELAY: Final[str] = "UNISTORE_PUSH_VERIFY_DELAY"
ENV_READ_ATTEMPTS: Final[str] = "UNISTORE_READ_ATTEMPTS"
ENV_BUFFERED_READ: Final[str] = "UNISTORE_BUFFERED_READ"

DEFAULT_READ_RETRY_DELAY: Final[float] = 0.5


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _get_env_float(key: str, default: float) -> float:
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise InvalidUsageError(f"{key} must be a number, got {raw!r}") from e


def _get_env_int(key: str, default: int) -> int:
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidUsageError(f"{key} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class StoreConfig:
    """Immutable per-handle store settings.

    Attributes:
        extension: Suffix appended to object names as ".<extension>" (no leading dot).
        compression: Codec applied to content; names are accepted and normalized.
        overwrite: Whether writes replace an existing object.
        hooks: Byte metering callbacks.
        push_verify_delay: Seconds to wait before checking a pushed file landed;
            0 disables the check.
        read_attempts: Open attempts on backends with flaky reads.
        read_retry_delay: Pause between read attempts, in seconds.
        buffered_read: Read whole object bodies before decoding (S3).
        logger: Logger for this handle's messages; module loggers when None.
    """

    extension: str = ""
    compression: Codec = Codec.NONE
    overwrite: bool = False
    hooks: MeteringHooks = field(default_factory=MeteringHooks)
    push_verify_delay: float = 0.0
    read_attempts: int = 1
    read_retry_delay: float = DEFAULT_READ_RETRY_DELAY
    buffered_read: bool = False
    logger: logging.Logger | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "compression", Codec.parse(self.compression))
        object.__setattr__(self, "extension", (self.extension or "").lstrip("."))

        if self.push_verify_delay < 0:
            raise InvalidUsageError(
                f"push_verify_delay must be >= 0, got {self.push_verify_delay}"
            )
        if self.read_attempts < 1:
            raise InvalidUsageError(f"read_attempts must be >= 1, got {self.read_attempts}")
        if self.read_retry_delay < 0:
            raise InvalidUsageError(
                f"read_retry_delay must be >= 0, got {self.read_retry_delay}"
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> StoreConfig:
        """Build a config from UNISTORE_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        values: dict[str, Any] = {
            "push_verify_delay": _get_env_float(ENV_PUSH_VERIFY_DELAY, 0.0),
            "read_attempts": _get_env_int(ENV_READ_ATTEMPTS, 1),
            "buffered_read": _get_env_bool(ENV_BUFFERED_READ, False),
        }
        values.update(overrides)
        return cls(**values)

    def with_changes(self, **changes: Any) -> StoreConfig:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
