"""Tasks for tracking internal errors."""

import typing as t

import structlog
from celery import shared_task

logger = structlog.get_logger(__name__)


@shared_task
def track_internal_error(
    path: str,
    traceback_str: str,
    encoded_payload: str | None = None,
    json_payload: t.Any = None,
    metadata: dict[str, t.Any] | None = None,
) -> None:
    """Record an unhandled API error out of the request path."""
    logger.error(
        "internal_error_tracked",
        path=path,
        traceback=traceback_str,
        has_encoded_payload=encoded_payload is not None,
        json_payload=json_payload,
        metadata=metadata or {},
    )
