"""Ordered, resumable enumeration of object names.

A walk visits every object name under a prefix in ascending order, optionally
starting at an inclusive lower bound. Backends supply physical keys in
ascending key order; this module turns them into base names, applies the
prefix and starting-point filters and drives the caller's visit callback.

Backends with server-side pagination receive the starting point translated
into their native bound (WalkQuery.start_key for inclusive offsets,
WalkQuery.start_after for exclusive markers). The client-side gate runs in
every case, so a backend that ignores both bounds is still correct, just slower.
"""

from __future__ import annotations

import heapq
import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from unistore.errors import InvalidUsageError, OperationCancelledError, StopWalk
from unistore.paths import PathResolver

logger = logging.getLogger(__name__)

Visit = Callable[[str], Any]


@dataclass(frozen=True)
class WalkQuery:
    """Listing bounds for one walk.

    Attributes:
        prefix: Logical name prefix.
        starting_point: Inclusive logical lower bound ("" for none).
        key_prefix: Physical key prefix to list.
        start_key: Inclusive physical lower bound, or None.
        start_after: Exclusive physical marker strictly below start_key, or None
            when no shorter marker exists (one-character relative starting points).
    """

    prefix: str
    starting_point: str
    key_prefix: str
    start_key: str | None = None
    start_after: str | None = None


def check_starting_point(prefix: str, starting_point: str) -> None:
    """Validate that a non-empty starting point lies inside the prefix.

    Raises:
        InvalidUsageError: If starting_point does not start with prefix.
    """
    if starting_point and not starting_point.startswith(prefix):
        raise InvalidUsageError(
            f'starting point "{starting_point}" must start with prefix "{prefix}"'
        )


def plan_walk(resolver: PathResolver, prefix: str, starting_point: str = "") -> WalkQuery:
    """Validate a walk request and compute its physical listing bounds.

    The start-after marker is the physical starting key minus its last
    character. A strict prefix of a string sorts before it, so the marker is
    always below the target whatever characters the name uses. A one-character
    relative starting point has no shorter marker inside the listing prefix,
    so none is produced and the client-side gate does the skipping.
    """
    check_starting_point(prefix, starting_point)
    key_prefix = resolver.key_prefix(prefix)
    if not starting_point:
        return WalkQuery(prefix=prefix, starting_point="", key_prefix=key_prefix)

    start_key = resolver.start_key(starting_point)
    relative = starting_point[len(prefix) :]
    start_after = start_key[:-1] if len(relative) > 1 else None
    return WalkQuery(
        prefix=prefix,
        starting_point=starting_point,
        key_prefix=key_prefix,
        start_key=start_key,
        start_after=start_after,
    )


def _prefix_may_follow(name: str, bound: str, suffix: str, min_len: int) -> bool:
    """Whether a proper prefix of name could still be listed after bound."""
    return any(f"{name[:end]}{suffix}" > bound for end in range(min_len, len(name)))


def iter_base_names(
    keys: Iterable[str],
    resolver: PathResolver,
    query: WalkQuery,
    *,
    cancel: threading.Event | None = None,
) -> Iterator[str]:
    """Map physical keys to base names, filtered by prefix and starting point.

    Names come out in ascending order even though keys are listed in physical
    order. With an extension, a name's key sorts after the keys of longer
    names continuing with a character below the suffix ("a-b.ext" lists
    before "a.ext"). Only a proper prefix of a name can arrive late that way,
    so each name is held back until no such prefix can still be listed.
    """
    suffix = resolver.suffix
    min_len = max(len(query.prefix), 1)
    pending: list[str] = []
    for key in keys:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(scope=query.key_prefix)
        name = resolver.to_base_name(key)
        if not name:
            logger.debug("Ignoring empty object name for key %s", key)
            continue
        if not name.startswith(query.prefix) or name < query.starting_point:
            continue
        if not suffix:
            yield name
            continue
        heapq.heappush(pending, name)
        bound = f"{name}{suffix}"
        while pending and not _prefix_may_follow(pending[0], bound, suffix, min_len):
            yield heapq.heappop(pending)
    while pending:
        yield heapq.heappop(pending)


def run_walk(
    names: Iterator[str],
    visit: Visit,
    *,
    cancel: threading.Event | None = None,
) -> None:
    """Call visit for each name until exhaustion or StopWalk.

    Any other exception from visit or from the listing propagates.
    """
    try:
        for name in names:
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError()
            try:
                visit(name)
            except StopWalk:
                return
    finally:
        close = getattr(names, "close", None)
        if close is not None:
            close()


def collect_names(
    walk: Callable[[Visit], None],
    max_results: int = -1,
) -> list[str]:
    """Collect names from a walk, stopping after max_results (negative: unbounded)."""
    found: list[str] = []

    def visit(name: str) -> None:
        found.append(name)
        if len(found) == max_results:
            raise StopWalk

    if max_results == 0:
        return found
    walk(visit)
    return found
