"""
Domain exceptions for wahub.

Every component raises these typed errors; the API layer maps them to
user-facing responses in ``wahub.api.errors``.
"""


class WahubError(Exception):
    """Base exception for wahub"""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class Unauthenticated(WahubError):
    """No verified identity on the request"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NoMembership(WahubError):
    """Authenticated user without an active organization link"""

    def __init__(self, has_pending_invitation: bool = False):
        self.has_pending_invitation = has_pending_invitation
        super().__init__("No organization membership found")


class PermissionDenied(WahubError):
    """Membership role does not allow the action"""

    def __init__(self, message: str = "You don't have permission to perform this action"):
        super().__init__(message)


class OrganizationNotFound(WahubError):
    """Organization does not exist"""

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization with id '{organization_id}' not found")


class GatewayNotConfigured(WahubError):
    """Organization has no gateway base URL"""

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__("WhatsApp gateway is not configured for this organization")


class GatewayUnavailable(WahubError):
    """Gateway unreachable, timed out, or reports the resource missing"""

    def __init__(self, message: str = "WhatsApp gateway is not available"):
        super().__init__(message)


class GatewayRequestError(WahubError):
    """Gateway answered with an error status other than 404"""

    def __init__(self, status_code: int, message: str | None = None):
        self.status_code = status_code
        msg = f"Gateway request failed with status {status_code}"
        if message:
            msg = f"{msg}: {message}"
        super().__init__(msg)


class SessionNameTaken(WahubError):
    """Gateway session name already bound to another organization"""

    def __init__(self, session_name: str):
        self.session_name = session_name
        super().__init__(f"Session name '{session_name}' is already in use")


class MalformedEvent(WahubError):
    """Webhook payload missing required fields"""

    def __init__(self, message: str = "Invalid webhook payload"):
        super().__init__(message)


class InvitationError(WahubError):
    """Invitation cannot be used"""

    def __init__(self, message: str, expired: bool = False):
        self.expired = expired
        super().__init__(message)


class MemberNotFound(WahubError):
    """No active membership with this id in the caller's organization"""

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member with id '{member_id}' not found")


class InvalidMemberChange(WahubError):
    """Membership change that is never allowed, such as changing your own role"""

    def __init__(self, message: str):
        super().__init__(message)


class InvalidMediaPath(WahubError):
    """Media path that is empty or escapes the gateway file store"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Invalid media path: '{path}'")
