"""Streaming compression for stored objects.

encode() copies a caller's byte stream through the store's codec into a
destination; decode() wraps a stored byte stream so reads return the original
content. Both report per-chunk byte counts through MeteringHooks.

Decoding is lazy: a corrupt or codec-mismatched object opens fine and fails
with ObjectDecodeError on the first read that reaches the bad bytes.
"""

from __future__ import annotations

import gzip
import io
import threading
import zlib
from enum import StrEnum
from typing import Any, BinaryIO, Final

import zstandard

from unistore.errors import (
    InvalidUsageError,
    ObjectDecodeError,
    OperationCancelledError,
    StoreError,
    UpstreamError,
)
from unistore.metering import MeteringHooks, meter_reader, meter_writer

DEFAULT_CHUNK_SIZE: Final[int] = 64 * 1024
ZSTD_LEVEL: Final[int] = 3

_NO_HOOKS: Final = MeteringHooks()

_DECODE_ERRORS: Final = (OSError, EOFError, zlib.error, zstandard.ZstdError)


class Codec(StrEnum):
    """Compression codec applied to object content."""

    NONE = "none"
    GZIP = "gzip"
    ZSTD = "zstd"

    @classmethod
    def parse(cls, value: str | Codec | None) -> Codec:
        """Resolve a codec from its name.

        Empty string and None mean no compression; "gz" is accepted for gzip.

        Raises:
            InvalidUsageError: If the name is not a known codec.
        """
        if isinstance(value, Codec):
            return value
        normalized = (value or "").strip().lower()
        if normalized in ("", "none"):
            return cls.NONE
        if normalized in ("gzip", "gz"):
            return cls.GZIP
        if normalized == "zstd":
            return cls.ZSTD
        raise InvalidUsageError(f"Unsupported compression type: {value!r}")


def _open_encoder(sink: Any, codec: Codec) -> Any:
    if codec is Codec.GZIP:
        return gzip.GzipFile(fileobj=sink, mode="wb")
    if codec is Codec.ZSTD:
        return zstandard.ZstdCompressor(level=ZSTD_LEVEL).stream_writer(sink, closefd=False)
    return sink


def encode(
    destination: Any,
    source: BinaryIO | Any,
    codec: Codec,
    hooks: MeteringHooks | None = None,
    *,
    cancel: threading.Event | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Copy source through the codec's encoder into destination.

    The encoder is finalized before returning so the destination holds a
    complete stream (gzip trailer, zstd frame end). The destination itself is
    left open; committing it is the caller's job.

    Args:
        destination: Writable binary stream receiving encoded bytes.
        source: Readable binary stream with the content to store.
        codec: Codec to encode with.
        hooks: Metering callbacks.
        cancel: Optional signal checked between chunks.
        chunk_size: Read size for the copy loop.

    Returns:
        Number of uncompressed bytes taken from source.

    Raises:
        OperationCancelledError: If cancel fires mid-copy.
    """
    hooks = hooks or _NO_HOOKS
    sink = meter_writer(destination, hooks.compressed_write)
    encoder = _open_encoder(sink, codec)
    on_chunk = hooks.uncompressed_write

    total = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError()
        chunk = source.read(chunk_size)
        if not chunk:
            break
        encoder.write(chunk)
        total += len(chunk)
        if on_chunk is not None:
            on_chunk(len(chunk))

    if encoder is not sink:
        encoder.close()
    return total


class _GuardedSource:
    """Tags failures of the stored byte stream as UpstreamError.

    Keeps backend I/O failures apart from codec failures, which the decoder
    raises as plain OSError/EOFError and ObjectReader turns into ObjectDecodeError.
    """

    def __init__(self, source: Any, key: str | None, scope: str | None) -> None:
        self._source = source
        self._key = key
        self._scope = scope
        self._closed = False

    def read(self, size: int = -1) -> bytes:
        try:
            return self._source.read(size)
        except StoreError:
            raise
        except Exception as e:
            raise UpstreamError(
                f"Reading object content failed: {e}",
                key=self._key,
                scope=self._scope,
                cause=e,
            ) from e

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._source.close()


class _ZstdReader:
    """Incremental zstd decoder over a stored byte stream.

    A stream that runs out before its frame is complete raises EOFError, the
    way gzip reports a missing trailer. The source is left open.
    """

    def __init__(self, source: Any, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._source = source
        self._chunk_size = chunk_size
        self._decompressor = zstandard.ZstdDecompressor().decompressobj()
        self._buffer = bytearray()
        self._finished = False

    def read(self, size: int | None = -1) -> bytes:
        if size is None:
            size = -1
        while not self._finished and (size < 0 or len(self._buffer) < size):
            chunk = self._source.read(self._chunk_size)
            if not chunk:
                raise EOFError("zstd stream ended before the end of the frame")
            self._buffer += self._decompressor.decompress(chunk)
            self._finished = self._decompressor.eof
        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        return data

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        self._buffer.clear()


class ObjectReader(io.RawIOBase):
    """Readable stream of an object's decoded content.

    Closing the reader releases the decoder and the underlying stored stream.
    """

    def __init__(
        self,
        stream: Any,
        source: Any,
        *,
        key: str | None = None,
        scope: str | None = None,
    ) -> None:
        super().__init__()
        self._stream = stream
        self._source = source
        self.key = key
        self.scope = scope

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        data = self._read_decoded(len(buffer))
        count = len(data)
        buffer[:count] = data
        return count

    def _read_decoded(self, size: int) -> bytes:
        try:
            return self._stream.read(size)
        except StoreError:
            raise
        except _DECODE_ERRORS as e:
            raise ObjectDecodeError(
                f"Decoding object content failed: {e}",
                key=self.key,
                scope=self.scope,
                cause=e,
            ) from e

    def close(self) -> None:
        if self.closed:
            return
        try:
            if self._stream is not self._source:
                close_stream = getattr(self._stream, "close", None)
                if close_stream is not None:
                    close_stream()
        finally:
            try:
                self._source.close()
            finally:
                super().close()


def decode(
    source: Any,
    codec: Codec,
    hooks: MeteringHooks | None = None,
    *,
    key: str | None = None,
    scope: str | None = None,
) -> ObjectReader:
    """Wrap a stored byte stream in the codec's decoder.

    No bytes are read here; header parsing happens on the first read.

    Args:
        source: Readable binary stream of the stored (encoded) content.
        codec: Codec the content was encoded with.
        hooks: Metering callbacks.
        key: Object name, for error context.
        scope: Store location, for error context.

    Returns:
        ObjectReader over the decoded content.
    """
    hooks = hooks or _NO_HOOKS
    guarded = _GuardedSource(source, key, scope)
    raw = meter_reader(guarded, hooks.compressed_read)

    if codec is Codec.GZIP:
        decoded: Any = gzip.GzipFile(fileobj=raw, mode="rb")
    elif codec is Codec.ZSTD:
        decoded = _ZstdReader(raw)
    else:
        decoded = raw

    stream = meter_reader(decoded, hooks.uncompressed_read)
    return ObjectReader(stream, guarded, key=key, scope=scope)
