"""Observability infrastructure for structured logging."""

from grabarr.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    media_context,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "media_context",
    "set_correlation_id",
]
