"""unistore error types.

Every backend normalizes its own failure signals into this hierarchy so callers
can handle "not found", "bad usage" and "backend broke" the same way whatever
the store is. The one exception is StopWalk, which is a control signal raised
by walk callbacks and never a failure.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for store operations.

    Attributes:
        message: Human-readable error message.
        key: Object name associated with the operation (if applicable).
        scope: Store location or listing prefix the operation ran against.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        scope: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.key = key
        self.scope = scope

    def __str__(self) -> str:
        parts = [self.message]
        if self.key:
            parts.append(f"key={self.key}")
        if self.scope:
            parts.append(f"scope={self.scope}")
        return " ".join(parts)


class ObjectNotFoundError(StoreError):
    """Raised when the named object does not exist in the store."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        key: str | None = None,
        scope: str | None = None,
    ) -> None:
        super().__init__(message, key=key, scope=scope)


class InvalidUsageError(StoreError):
    """Raised for caller mistakes detected before any I/O.

    Malformed location descriptors, invalid configuration values and a walk
    starting point that does not begin with the walk prefix all land here.
    """


class UpstreamError(StoreError):
    """Raised when the backend reports a failure other than "not found".

    The original exception is kept in ``cause`` and chained with ``from``.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        key: str | None = None,
        scope: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, key=key, scope=scope)
        self.cause = cause


class ObjectDecodeError(StoreError):
    """Raised on read when stored content cannot be decoded with the store's codec."""

    def __init__(
        self,
        message: str = "Unable to decode object content",
        *,
        key: str | None = None,
        scope: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, key=key, scope=scope)
        self.cause = cause


class OperationCancelledError(StoreError):
    """Raised when the caller's cancel signal fires during an operation."""

    def __init__(
        self,
        message: str = "Operation cancelled",
        *,
        key: str | None = None,
        scope: str | None = None,
    ) -> None:
        super().__init__(message, key=key, scope=scope)


class StopWalk(Exception):  # noqa: N818
    """Raised by a walk callback to end enumeration early without error."""
