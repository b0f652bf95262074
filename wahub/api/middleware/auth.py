"""Authentication dependencies."""

from typing import Optional

import jwt
import structlog
from fastapi import Depends, Header, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.config import settings
from wahub.database import get_session
from wahub.exceptions import Unauthenticated
from wahub.services.directory import MembershipContext, UserIdentity, resolve_membership

logger = structlog.get_logger()

# Bearer token issued by the identity provider
api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def decode_identity(token: str) -> UserIdentity:
    """
    Verify an identity provider JWT.

    Raises:
        Unauthenticated: Invalid, expired, or subject-less token
    """
    try:
        claims = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
            options={"verify_aud": settings.auth_jwt_audience is not None},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Session expired")
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_bearer_token", error=str(e))
        raise Unauthenticated("Invalid token")

    subject = claims.get("sub")
    if not subject:
        raise Unauthenticated("Invalid token")
    return UserIdentity(id=str(subject), email=claims.get("email"))


async def get_identity(
    authorization: Optional[str] = Security(api_key_header),
) -> UserIdentity:
    """
    Verify the bearer token and return the caller's identity.

    Tokens are expected as: Bearer <jwt>
    """
    if not authorization:
        raise Unauthenticated()

    token = authorization[7:] if authorization.startswith("Bearer ") else authorization
    return decode_identity(token)


async def get_membership_context(
    identity: UserIdentity = Depends(get_identity),
    x_organization_id: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> MembershipContext:
    """Resolve the organization the request acts on."""
    return await resolve_membership(session, identity, x_organization_id)
