"""Tracing setup helpers for applications and tests."""

from unistore.observability.tracing import (
    TracingConfigError,
    clear_test_spans,
    configure_tracing,
    get_test_spans,
    reset_tracing,
)

__all__ = [
    "TracingConfigError",
    "clear_test_spans",
    "configure_tracing",
    "get_test_spans",
    "reset_tracing",
]
