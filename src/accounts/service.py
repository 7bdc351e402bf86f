"""Just-in-time provisioning of users from identity provider claims."""

import typing as t

import structlog
from django.db import IntegrityError, transaction

from accounts.models import ClubUser

logger = structlog.get_logger(__name__)


def provision_user(external_id: str, claims: t.Mapping[str, t.Any] | None = None) -> ClubUser:
    """Return the user for an identity provider subject, creating it on first sight.

    Concurrent first requests for the same subject converge on a single row: the losing
    insert hits the unique constraint and re-reads the winner.
    """
    claims = claims or {}
    user = ClubUser.objects.filter(external_id=external_id).first()
    if user is not None:
        return user

    email = str(claims.get("email") or "")
    name = str(claims.get("name") or "")
    try:
        with transaction.atomic():
            user = ClubUser.objects.create_user(
                username=external_id[:150],
                email=email,
                external_id=external_id,
                name=name,
            )
    except IntegrityError:
        user = ClubUser.objects.filter(external_id=external_id).first()
        if user is None:
            raise
        return user

    logger.info("user_provisioned", user_id=str(user.id), external_id=external_id)
    return user
