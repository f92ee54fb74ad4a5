"""All-or-nothing writes.

Two commit strategies live here:

- write_file_atomically: local files are streamed into a uniquely named
  temporary sibling and renamed into place. The rename is the commit, so
  readers and walks never see partial content.
- piped_upload: cloud SDK uploads read from a bounded in-process pipe while a
  worker thread encodes into it. Either side failing unblocks the other, and
  the call only returns once both have stopped.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import uuid
from collections import deque
from collections.abc import Callable
from pathlib import Path
from typing import Any, BinaryIO, Final

from unistore.errors import OperationCancelledError

logger = logging.getLogger(__name__)

TEMP_SUFFIX: Final[str] = ".tmp"
DEFAULT_PIPE_CAPACITY: Final[int] = 4 * 1024 * 1024

_TEMP_PATTERN = re.compile(r"^\..+\.[0-9a-f]{12}\.tmp$")
_WAIT_SLICE: Final[float] = 0.1


def temp_sibling(dest: Path) -> Path:
    """Return a unique hidden temporary path next to dest."""
    return dest.with_name(f".{dest.name}.{uuid.uuid4().hex[:12]}{TEMP_SUFFIX}")


def is_temp_file(name: str) -> bool:
    """Check if a file name is an in-progress temporary file.

    Temporary names are ".<name>.<12 hex digits>.tmp"; an object name of that
    shape is reserved.
    """
    return bool(_TEMP_PATTERN.search(name))


def write_file_atomically(
    dest: Path,
    fill: Callable[[BinaryIO], Any],
    *,
    overwrite: bool,
) -> bool:
    """Write dest through a temporary sibling, committing with a rename.

    With overwrite disabled the commit is a hard link, which fails if dest
    already exists; losing that race leaves the existing file untouched.

    Args:
        dest: Final file path.
        fill: Callable writing the complete content into the open temp file.
        overwrite: Whether to replace an existing dest.

    Returns:
        True if dest was written, False if it already existed and overwrite is off.

    Raises:
        OSError: If the filesystem operations fail. The temp file is removed.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    if not overwrite and dest.exists():
        return False

    tmp_file = temp_sibling(dest)
    try:
        with open(tmp_file, "wb") as fh:
            fill(fh)
        if overwrite:
            os.replace(tmp_file, dest)
            return True
        try:
            os.link(tmp_file, dest)
        except FileExistsError:
            logger.debug("Skipped write, %s appeared concurrently", dest)
            return False
        return True
    finally:
        tmp_file.unlink(missing_ok=True)


class StreamPipe:
    """Bounded in-memory pipe between one writer thread and one reader.

    The writer side is write()/finish()/abort(); the reader side is
    read()/close(). Closing the reader makes pending and later writes raise
    BrokenPipeError. Aborting the writer makes the reader raise the given
    exception instead of returning buffered data. A fired cancel event makes
    both sides raise OperationCancelledError.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_PIPE_CAPACITY,
        cancel: threading.Event | None = None,
    ) -> None:
        self._capacity = capacity
        self._cancel = cancel
        self._cond = threading.Condition()
        self._chunks: deque[bytes] = deque()
        self._buffered = 0
        self._finished = False
        self._error: BaseException | None = None
        self._closed = False

    def _check_cancel(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise OperationCancelledError()

    def _wait(self) -> None:
        self._cond.wait(_WAIT_SLICE)
        self._check_cancel()

    # Writer side

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        chunk = bytes(data)
        if not chunk:
            return 0
        with self._cond:
            self._check_cancel()
            while self._buffered >= self._capacity and not self._closed:
                self._wait()
            if self._closed:
                raise BrokenPipeError("pipe reader is closed")
            if self._finished:
                raise ValueError("write to a finished pipe")
            self._chunks.append(chunk)
            self._buffered += len(chunk)
            self._cond.notify_all()
        return len(chunk)

    def flush(self) -> None:
        pass

    def finish(self) -> None:
        with self._cond:
            self._finished = True
            self._cond.notify_all()

    def abort(self, error: BaseException) -> None:
        with self._cond:
            self._error = error
            self._finished = True
            self._cond.notify_all()

    # Reader side

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            parts = []
            while True:
                part = self.read(DEFAULT_PIPE_CAPACITY)
                if not part:
                    return b"".join(parts)
                parts.append(part)
        if size == 0:
            return b""

        with self._cond:
            self._check_cancel()
            while not self._chunks and not self._finished and not self._closed:
                self._wait()
            if self._error is not None:
                raise self._error
            if self._closed:
                raise ValueError("read from a closed pipe")

            out = bytearray()
            while self._chunks and len(out) < size:
                chunk = self._chunks.popleft()
                take = size - len(out)
                if len(chunk) > take:
                    self._chunks.appendleft(chunk[take:])
                    chunk = chunk[:take]
                out += chunk
                self._buffered -= len(chunk)
            self._cond.notify_all()
            return bytes(out)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._chunks.clear()
            self._buffered = 0
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed


def piped_upload(
    produce: Callable[[StreamPipe], Any],
    consume: Callable[[StreamPipe], Any],
    *,
    cancel: threading.Event | None = None,
    capacity: int = DEFAULT_PIPE_CAPACITY,
) -> None:
    """Run produce on a worker thread feeding consume through a StreamPipe.

    produce writes the encoded object into the pipe; consume (the SDK upload
    call) reads it to the end. A producer failure aborts the pipe so the upload
    fails instead of committing partial content. A consumer failure closes the
    pipe so the producer stops writing. The worker is always joined before
    this returns or raises.

    Raises:
        The producer's exception when it failed for its own reasons, otherwise
        the consumer's exception.
    """
    pipe = StreamPipe(capacity=capacity, cancel=cancel)
    failures: list[BaseException] = []

    def run_producer() -> None:
        try:
            produce(pipe)
        except BaseException as e:  # noqa: BLE001 - handed to the caller's thread
            failures.append(e)
            pipe.abort(e)
        else:
            pipe.finish()

    worker = threading.Thread(target=run_producer, name="unistore-encoder", daemon=True)
    worker.start()

    try:
        consume(pipe)
    except BaseException:
        pipe.close()
        worker.join()
        producer_error = _own_failure(failures)
        if producer_error is not None:
            raise producer_error  # noqa: B904 - the consumer error is kept as __context__
        raise

    pipe.close()
    worker.join()
    producer_error = _own_failure(failures)
    if producer_error is not None:
        raise producer_error


def _own_failure(failures: list[BaseException]) -> BaseException | None:
    """Producer error, ignoring the BrokenPipeError caused by the reader closing."""
    if not failures or isinstance(failures[0], BrokenPipeError):
        return None
    return failures[0]
