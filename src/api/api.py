from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja_extra import NinjaExtraAPI

from clubs.controllers import CLUB_CONTROLLERS
from clubs.exceptions import (
    AlreadyMemberError,
    InvalidRSVPTransitionError,
    PaymentNotConfiguredError,
    PaymentProviderError,
    RegistrationConflictError,
    RegistrationNotAllowedError,
    StaleRegistrationError,
)
from common.schema import ResponseOk, VersionResponse
from common.throttling import AnonDefaultThrottle, UserDefaultThrottle

from .exception_handlers import (
    handle_already_member_error,
    handle_django_validation_error,
    handle_general_exception,
    handle_invalid_rsvp_transition_error,
    handle_payment_not_configured_error,
    handle_payment_provider_error,
    handle_registration_conflict_error,
    handle_registration_not_allowed_error,
    handle_stale_registration_error,
)

api = NinjaExtraAPI(
    title="Clubhouse API",
    docs_url="/docs",
    version=settings.VERSION,
    description=f"Clubhouse API {settings.VERSION}",
    app_name=f"clubhouse-api-{settings.VERSION}",
    urls_namespace="api",
    servers=[
        {"url": settings.SERVICE_URL, "description": settings.SITE_NAME},
    ],
    throttle=[AnonDefaultThrottle(), UserDefaultThrottle()],
)


@api.get("/version", tags=["Version"], response={200: VersionResponse})
def version(request: HttpRequest) -> tuple[int, VersionResponse]:
    """Get the API version."""
    return 200, VersionResponse(version=settings.VERSION)


@api.get("/healthcheck", tags=["Healthcheck"], response={200: ResponseOk})
def healthcheck(request: HttpRequest) -> tuple[int, ResponseOk]:
    """Check the health of the API."""
    return 200, ResponseOk()


api.register_controllers(*CLUB_CONTROLLERS)

EXCEPTION_HANDLERS = {
    Exception: handle_general_exception,
    ValidationError: handle_django_validation_error,
    RegistrationConflictError: handle_registration_conflict_error,
    StaleRegistrationError: handle_stale_registration_error,
    InvalidRSVPTransitionError: handle_invalid_rsvp_transition_error,
    RegistrationNotAllowedError: handle_registration_not_allowed_error,
    PaymentNotConfiguredError: handle_payment_not_configured_error,
    PaymentProviderError: handle_payment_provider_error,
    AlreadyMemberError: handle_already_member_error,
}

for exc, handler in EXCEPTION_HANDLERS.items():
    api.add_exception_handler(exc, handler)
