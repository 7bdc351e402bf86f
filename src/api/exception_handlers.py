"""Exception handlers for the API."""

import base64
import traceback
import typing as t
from copy import deepcopy

import orjson
import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja.responses import Response

from clubs.exceptions import (
    AlreadyMemberError,
    InvalidRSVPTransitionError,
    PaymentNotConfiguredError,
    PaymentProviderError,
    RegistrationConflictError,
    RegistrationNotAllowedError,
    StaleRegistrationError,
)

from .tasks import track_internal_error

logger = structlog.get_logger(__name__)


def handle_general_exception(request: HttpRequest, exc: Exception | t.Type[Exception]) -> Response:
    """Handle a general exception.

    Args:
        request: The incoming HTTP request.
        exc: The exception.

    Returns:
        The response.
    """
    logger.exception("INTERNAL_SERVER_ERROR", exc_info=True, stack_info=True)
    data = {"detail": "Internal Server Error."}
    tb_str = traceback.format_exc()
    is_staff = getattr(request, "user", None) and request.user.is_staff
    encoded_payload = base64.b64encode(request.body).decode("utf-8") if request.body else None
    metadata = {
        "headers": obfuscate(dict(request.headers)),
        "method": request.method,
        "path": request.path,
        "GET": obfuscate(request.GET.dict()),
        "user": str(request.user) if getattr(request, "user", None) else None,
    }
    json_payload = None
    if request.method in ("POST", "PUT", "PATCH") and request.headers.get("Content-Type") == "application/json":
        try:
            json_payload = obfuscate(orjson.loads(request.body))
            encoded_payload = None
        except orjson.JSONDecodeError:  # pragma: no cover
            json_payload = None
    if settings.DEBUG or is_staff:  # pragma: no cover
        data["traceback"] = tb_str
    track_internal_error.delay(
        path=f"{request.method} {request.path}",
        traceback_str=tb_str,
        encoded_payload=encoded_payload,
        json_payload=json_payload,
        metadata=metadata,
    )
    return Response(status=500, data=data)


def handle_django_validation_error(request: HttpRequest, exc: ValidationError | t.Type[ValidationError]) -> Response:
    """Handle a validation error.

    Args:
        request: The incoming HTTP request.
        exc: The exception.
    """
    logger.warning("VALIDATION_ERROR", errors=getattr(exc, "messages", None))
    if hasattr(exc, "error_dict"):
        error_dict = {k: [ee for e in v for ee in e] for k, v in exc.error_dict.items()}
    else:
        error_dict = {"__all__": list(exc.messages)}  # type: ignore[union-attr]
    return Response(status=400, data={"errors": error_dict})


def handle_registration_conflict_error(
    request: HttpRequest, exc: RegistrationConflictError | t.Type[RegistrationConflictError]
) -> Response:
    """Handle a state conflict on a registration, event or price."""
    return Response(status=409, data={"detail": str(exc), "code": exc.code})


def handle_stale_registration_error(
    request: HttpRequest, exc: StaleRegistrationError | t.Type[StaleRegistrationError]
) -> Response:
    """Handle a decision on a request that is gone or already decided."""
    return Response(status=404, data={"detail": str(exc), "code": exc.code})


def handle_invalid_rsvp_transition_error(
    request: HttpRequest, exc: InvalidRSVPTransitionError | t.Type[InvalidRSVPTransitionError]
) -> Response:
    """Handle a status change that is not allowed from the current status."""
    return Response(status=400, data={"detail": str(exc), "code": exc.code})


def handle_registration_not_allowed_error(
    request: HttpRequest, exc: RegistrationNotAllowedError | t.Type[RegistrationNotAllowedError]
) -> Response:
    """Handle a registration the user is not entitled to."""
    return Response(status=403, data={"detail": str(exc), "code": exc.code})


def handle_payment_not_configured_error(
    request: HttpRequest, exc: PaymentNotConfiguredError | t.Type[PaymentNotConfiguredError]
) -> Response:
    """Handle a payment attempt against an organizer without a usable payment account."""
    return Response(status=400, data={"detail": str(exc), "code": exc.code})


def handle_payment_provider_error(
    request: HttpRequest, exc: PaymentProviderError | t.Type[PaymentProviderError]
) -> Response:
    """Handle a payment provider failure. Details were logged where it was raised."""
    return Response(status=502, data={"detail": str(exc), "code": exc.code})


def handle_already_member_error(request: HttpRequest, exc: AlreadyMemberError | t.Type[AlreadyMemberError]) -> Response:
    """Handle an already member error."""
    return Response(status=400, data={"detail": str(exc), "code": exc.code})


SENSITIVE_KEYS = {"password", "token", "x-api-key", "authorization", "authentication", "stripe-signature", "cookie"}


def obfuscate(data: dict[str, t.Any]) -> dict[str, t.Any]:
    """Obfuscate sensitive data in payloads and headers."""
    new_data = deepcopy(data)
    for key in data.keys():
        if key.lower() in SENSITIVE_KEYS:
            new_data[key] = "********"
    return new_data
