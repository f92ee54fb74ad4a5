"""OpenTelemetry spans for store operations.

Span attributes never carry raw object names or absolute paths: names are
reported as their SHA256 so spans can be correlated without exposing content.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

ENV_OTEL_ENABLED = "UNISTORE_OTEL_ENABLED"


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool(ENV_OTEL_ENABLED, False)


def key_digest(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def traced_store_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace store operations with OpenTelemetry.

    The first positional argument, when it is a string (object name or walk
    prefix), is recorded as unistore.object_key_sha256.

    Args:
        operation: Operation name (e.g., "write_object", "walk_from").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, *args, **kwargs)

            from opentelemetry import trace

            tracer = trace.get_tracer("unistore.store")
            with tracer.start_as_current_span(f"unistore.store.{operation}") as span:
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                if args and isinstance(args[0], str):
                    span.set_attribute("unistore.object_key_sha256", key_digest(args[0]))
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

        return cast(F, wrapper)

    return decorator
