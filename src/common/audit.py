"""Best-effort audit trail for organizer and system actions."""

import typing as t
from uuid import UUID

import structlog
from django.db import DatabaseError, transaction
from django.http import HttpRequest

from accounts.models import ClubUser

from .models import AuditLog

logger = structlog.get_logger(__name__)


def _get_client_ip(request: HttpRequest) -> str | None:
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return str(x_forwarded_for.split(",")[0].strip())
    return request.META.get("REMOTE_ADDR")


def log_audit_event(
    *,
    actor: ClubUser | None,
    action: str,
    target_type: str,
    target_id: UUID | str | None = None,
    metadata: dict[str, t.Any] | None = None,
    request: HttpRequest | None = None,
) -> AuditLog | None:
    """Append an audit entry.

    The write runs in its own savepoint: a failure is logged and never undoes or fails the
    action being audited.
    """
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                actor=actor,
                action=action,
                target_type=target_type,
                target_id=str(target_id) if target_id is not None else None,
                metadata=metadata or {},
                ip_address=_get_client_ip(request) if request is not None else None,
                user_agent=request.META.get("HTTP_USER_AGENT") if request is not None else None,
            )
    except DatabaseError:
        logger.exception("audit_log_write_failed", action=action, target_type=target_type, target_id=str(target_id))
        return None
