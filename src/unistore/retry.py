"""Push-and-remove with an optional visibility check.

Some backends can briefly hide a just-written object from reads and listings.
push_and_remove uploads a local file, optionally waits and checks the object
is visible, uploads once more if it is not, and only then deletes the local
file. The check applies to this composite operation alone: deleting the
source cannot be undone, plain writes have nothing to lose.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable
from typing import Any, BinaryIO

from unistore.errors import OperationCancelledError

logger = logging.getLogger(__name__)

WriteFn = Callable[..., Any]
ExistsFn = Callable[[str], bool]


def _upload(
    write: WriteFn,
    local_file: str | os.PathLike[str],
    name: str,
    cancel: threading.Event | None,
) -> None:
    with open(local_file, "rb") as fh:
        source: BinaryIO = fh
        write(name, source, cancel=cancel)


def _pause(delay: float, cancel: threading.Event | None) -> None:
    if cancel is None:
        time.sleep(delay)
        return
    if cancel.wait(delay):
        raise OperationCancelledError()


def push_and_remove(
    write: WriteFn,
    exists: ExistsFn,
    local_file: str | os.PathLike[str],
    name: str,
    *,
    verify_delay: float = 0.0,
    cancel: threading.Event | None = None,
    log: logging.Logger | None = None,
) -> None:
    """Upload local_file as name, then delete local_file.

    Args:
        write: Store write operation, called as write(name, source, cancel=...).
        exists: Store existence check.
        local_file: Path of the file to push.
        name: Destination object name.
        verify_delay: Seconds to wait before checking the object is visible;
            0 skips the check.
        cancel: Optional cancel signal, also interrupts the wait.
        log: Logger for the re-push warning.

    Raises:
        OSError: If local_file cannot be opened or removed.
        StoreError: If the upload or the existence check fails. The local
            file is kept in that case.
    """
    log = log or logger
    _upload(write, local_file, name, cancel)

    if verify_delay > 0:
        _pause(verify_delay, cancel)
        if not exists(name):
            log.warning(
                "Pushed object %s is not visible after %.3fs, pushing it again",
                name,
                verify_delay,
            )
            _upload(write, local_file, name, cancel)

    os.remove(local_file)
    log.debug("Pushed %s as %s and removed the local copy", local_file, name)
