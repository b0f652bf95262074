#!/usr/bin/env python3
"""Create an organization with its owner and gateway settings."""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from wahub.database import dispose_engine, get_session_context
from wahub.models import Membership, Organization
from wahub.models.base import utcnow
from wahub.models.organization import DEFAULT_SESSION_NAME, MemberRole


async def create_organization(
    name: str,
    slug: str,
    owner_user_id: str,
    gateway_base_url: str | None = None,
    gateway_api_key: str | None = None,
    session_name: str | None = None,
) -> dict:
    """Create the organization and its owner membership."""
    if session_name is None and gateway_base_url:
        session_name = DEFAULT_SESSION_NAME

    async with get_session_context() as session:
        organization = Organization(
            name=name,
            slug=slug,
            gateway_base_url=gateway_base_url,
            gateway_api_key=gateway_api_key,
            gateway_session_name=session_name,
        )
        session.add(organization)
        await session.flush()

        session.add(
            Membership(
                organization_id=organization.id,
                user_id=owner_user_id,
                role=MemberRole.OWNER.value,
                joined_at=utcnow(),
            )
        )

        result = {
            "organization_id": organization.id,
            "session_name": organization.session_name,
        }

    await dispose_engine()
    return result


def main():
    parser = argparse.ArgumentParser(description="Create a new organization")
    parser.add_argument("--name", required=True, help="Organization name")
    parser.add_argument("--slug", required=True, help="Unique URL slug")
    parser.add_argument("--owner", required=True, help="Identity provider user id of the owner")
    parser.add_argument("--gateway-url", help="WAHA base URL")
    parser.add_argument("--gateway-api-key", help="WAHA API key")
    parser.add_argument("--session-name", help="WAHA session name")

    args = parser.parse_args()

    result = asyncio.run(create_organization(
        name=args.name,
        slug=args.slug,
        owner_user_id=args.owner,
        gateway_base_url=args.gateway_url,
        gateway_api_key=args.gateway_api_key,
        session_name=args.session_name,
    ))

    print(f"\n✅ Organization created successfully!\n")
    print(f"Organization ID: {result['organization_id']}")
    print(f"Session name:    {result['session_name']}")


if __name__ == "__main__":
    main()
