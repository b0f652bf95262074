"""Map domain exceptions to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from wahub.exceptions import (
    GatewayNotConfigured,
    GatewayRequestError,
    GatewayUnavailable,
    InvalidMediaPath,
    InvalidMemberChange,
    InvitationError,
    MalformedEvent,
    MemberNotFound,
    NoMembership,
    OrganizationNotFound,
    PermissionDenied,
    SessionNameTaken,
    Unauthenticated,
    WahubError,
)


def _error(status_code: int, error: str, code: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "code": code, **extra},
    )


async def unauthenticated_handler(request: Request, exc: Unauthenticated) -> JSONResponse:
    response = _error(401, exc.message, "unauthenticated")
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


async def no_membership_handler(request: Request, exc: NoMembership) -> JSONResponse:
    if exc.has_pending_invitation:
        suggestion = "You have a pending invitation. Accept it to join the organization."
    else:
        suggestion = "Ask an administrator to add you to an organization."
    return _error(
        404,
        exc.message,
        "no_membership",
        has_pending_invitation=exc.has_pending_invitation,
        suggestion=suggestion,
    )


async def gateway_not_configured_handler(
    request: Request,
    exc: GatewayNotConfigured,
) -> JSONResponse:
    return _error(
        409,
        exc.message,
        "integration_not_configured",
        suggestion="Configure the WhatsApp gateway URL in the organization settings.",
    )


async def gateway_unavailable_handler(request: Request, exc: GatewayUnavailable) -> JSONResponse:
    return _error(503, exc.message, "gateway_unavailable", retryable=True)


async def gateway_request_error_handler(
    request: Request,
    exc: GatewayRequestError,
) -> JSONResponse:
    return _error(502, exc.message, "gateway_error", gateway_status=exc.status_code)


async def invitation_error_handler(request: Request, exc: InvitationError) -> JSONResponse:
    return _error(410 if exc.expired else 400, exc.message, "invitation_invalid")


async def malformed_event_handler(request: Request, exc: MalformedEvent) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.message})


_HANDLERS = [
    (Unauthenticated, unauthenticated_handler),
    (NoMembership, no_membership_handler),
    (GatewayNotConfigured, gateway_not_configured_handler),
    (GatewayUnavailable, gateway_unavailable_handler),
    (GatewayRequestError, gateway_request_error_handler),
    (InvitationError, invitation_error_handler),
    (MalformedEvent, malformed_event_handler),
]

_STATUS_CODES = {
    PermissionDenied: (403, "permission_denied"),
    OrganizationNotFound: (404, "organization_not_found"),
    SessionNameTaken: (409, "session_name_taken"),
    MemberNotFound: (404, "member_not_found"),
    InvalidMemberChange: (400, "invalid_member_change"),
    InvalidMediaPath: (400, "invalid_media_path"),
}


async def wahub_error_handler(request: Request, exc: WahubError) -> JSONResponse:
    status_code, code = _STATUS_CODES.get(type(exc), (500, "internal_error"))
    return _error(status_code, exc.message, code)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for every domain exception."""
    for exc_class, handler in _HANDLERS:
        app.add_exception_handler(exc_class, handler)
    app.add_exception_handler(WahubError, wahub_error_handler)
