"""API middleware."""

from wahub.api.middleware.auth import get_identity, get_membership_context
from wahub.api.middleware.rate_limit import RateLimitMiddleware

__all__ = ["get_identity", "get_membership_context", "RateLimitMiddleware"]
