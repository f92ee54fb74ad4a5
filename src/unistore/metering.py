"""Byte metering hooks.

A MeteringHooks value carries up to four callbacks that receive incremental
byte counts while objects are written and read:

- compressed_write: bytes handed to the backend (after encoding)
- uncompressed_write: bytes taken from the caller's source (before encoding)
- compressed_read: bytes received from the backend (before decoding)
- uncompressed_read: bytes returned to the caller (after decoding)

Callbacks are called synchronously once per chunk with that chunk's size.
The core keeps no counters of its own, so aggregating (thread-safely, when
several operations run at once) is up to the callback.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, BinaryIO

ByteCallback = Callable[[int], None]


@dataclass(frozen=True)
class MeteringHooks:
    """The four optional byte-count callbacks of a store."""

    compressed_write: ByteCallback | None = None
    uncompressed_write: ByteCallback | None = None
    compressed_read: ByteCallback | None = None
    uncompressed_read: ByteCallback | None = None


class MeteredWriter:
    """Write-side wrapper reporting every chunk written to the wrapped stream."""

    def __init__(self, target: Any, callback: ByteCallback) -> None:
        self._target = target
        self._callback = callback

    def write(self, data: bytes) -> int:
        written = self._target.write(data)
        # Raw streams may report a short write; buffered ones return None.
        count = len(data) if written is None else written
        if count:
            self._callback(count)
        return count

    def flush(self) -> None:
        flush = getattr(self._target, "flush", None)
        if flush is not None:
            flush()

    def writable(self) -> bool:
        return True


class MeteredReader:
    """Read-side wrapper reporting every chunk read from the wrapped stream."""

    def __init__(self, source: BinaryIO | Any, callback: ByteCallback) -> None:
        self._source = source
        self._callback = callback

    def read(self, size: int = -1) -> bytes:
        data = self._source.read(size)
        if data:
            self._callback(len(data))
        return data

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        self._source.close()


def meter_writer(target: Any, callback: ByteCallback | None) -> Any:
    """Wrap target with a MeteredWriter, or return it untouched when no callback is set."""
    if callback is None:
        return target
    return MeteredWriter(target, callback)


def meter_reader(source: Any, callback: ByteCallback | None) -> Any:
    """Wrap source with a MeteredReader, or return it untouched when no callback is set."""
    if callback is None:
        return source
    return MeteredReader(source, callback)
