"""Request context for structured logs."""

import typing as t
import uuid

import structlog
from django.conf import settings
from django.http import HttpRequest, HttpResponse

# URL kwarg -> log key. The user in a URL is the member acted on, never the caller.
URL_CONTEXT_KEYS = {
    "club_id": "club_id",
    "event_id": "event_id",
    "user_id": "target_user_id",
}


class StructlogContextMiddleware:
    """Binds request metadata to structlog for the lifetime of a request.

    The request id comes from ``X-Request-ID`` when the client sends one and is echoed on the
    response. Club, event and member ids from the URL are bound once the route resolves, so
    every log line of a club-scoped call carries them. The caller's id is bound by the
    authentication class, since bearer tokens are checked after middleware runs.
    """

    def __init__(self, get_response: t.Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if not settings.ENABLE_OBSERVABILITY:
            return self.get_response(request)

        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.path)
        try:
            response = self.get_response(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response["X-Request-ID"] = request_id
        return response

    def process_view(
        self,
        request: HttpRequest,
        view_func: t.Callable[..., HttpResponse],
        view_args: tuple[t.Any, ...],
        view_kwargs: dict[str, t.Any],
    ) -> None:
        if not settings.ENABLE_OBSERVABILITY:
            return None
        context = {key: str(view_kwargs[kwarg]) for kwarg, key in URL_CONTEXT_KEYS.items() if kwarg in view_kwargs}
        if context:
            structlog.contextvars.bind_contextvars(**context)
        return None
