"""Generates sample entities through an AdapterFacade."""

import logging
import random
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from authstudio.adapters.facade import AdapterFacade
from authstudio.adapters.mock import avatar_url

logger = logging.getLogger(__name__)

OAUTH_PROVIDERS = (
    "github", "google", "discord", "facebook", "twitter", "linkedin", "apple", "microsoft",
    "gitlab", "bitbucket", "spotify", "twitch", "reddit", "slack", "notion", "tiktok", "zoom",
)
# First octets of address blocks allocated across several regions
_IP_FIRST_OCTETS = (8, 24, 2, 5, 46, 62, 37, 126, 210, 1, 27, 177, 201, 103, 117)
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _suffix() -> str:
    return secrets.token_hex(3)


def random_ip() -> str:
    first = random.choice(_IP_FIRST_OCTETS)
    return f"{first}.{random.randint(0, 255)}.{random.randint(0, 255)}.{random.randint(1, 255)}"


async def _target_user(facade: AdapterFacade, user_id: str | None) -> str:
    if user_id:
        return user_id
    users = await facade.get_users()
    if users and users[0].get("id"):
        return users[0]["id"]
    user = await seed_user(facade, 1)
    return user["id"]


async def seed_user(facade: AdapterFacade, index: int, role: str | None = None) -> dict[str, Any]:
    data = {
        "email": f"user{_suffix()}@example.com",
        "name": f"User {index}",
        "emailVerified": True,
        "image": avatar_url(f"user{index}"),
    }
    if role:
        data["role"] = role
    return await facade.create_user(data)


async def seed_users(facade: AdapterFacade, count: int, role: str | None = None, **_) -> list[dict[str, Any]]:
    return [await seed_user(facade, index, role) for index in range(1, count + 1)]


async def seed_sessions(facade: AdapterFacade, count: int, user_id: str | None = None, **_) -> list[dict[str, Any]]:
    user_id = await _target_user(facade, user_id)
    sessions = []
    for index in range(1, count + 1):
        sessions.append(
            await facade.create_session(
                {
                    "userId": user_id,
                    "expiresAt": datetime.now(timezone.utc) + timedelta(days=7),
                    "token": f"session_token_{index}_{int(time.time() * 1000)}_{_suffix()}",
                    "ipAddress": random_ip(),
                    "userAgent": USER_AGENT,
                }
            )
        )
    return sessions


async def seed_accounts(
    facade: AdapterFacade,
    count: int,
    user_id: str | None = None,
    provider_id: str | None = None,
    **_,
) -> list[dict[str, Any]]:
    user_id = await _target_user(facade, user_id)
    accounts = []
    for index in range(1, count + 1):
        provider = provider_id if provider_id and provider_id != "random" else random.choice(OAUTH_PROVIDERS)
        stamp = int(time.time() * 1000)
        accounts.append(
            await facade.create_account(
                {
                    "userId": user_id,
                    "type": "oauth",
                    "providerId": provider,
                    "accountId": f"{provider}_{index}_{stamp}",
                    "accessToken": f"access_token_{index}_{stamp}",
                    "refreshToken": f"refresh_token_{index}_{stamp}",
                    "accessTokenExpiresAt": datetime.now(timezone.utc) + timedelta(hours=1),
                    "scope": "read:user",
                    "idToken": f"id_token_{index}_{stamp}",
                }
            )
        )
    return accounts


async def seed_verifications(facade: AdapterFacade, count: int, **_) -> list[dict[str, Any]]:
    return [
        await facade.create_verification(
            {
                "identifier": f"user{index}@example.com",
                "value": f"verification_token_{index}_{int(time.time() * 1000)}",
                "expiresAt": datetime.now(timezone.utc) + timedelta(days=1),
            }
        )
        for index in range(1, count + 1)
    ]


async def seed_organizations(facade: AdapterFacade, count: int, **_) -> list[dict[str, Any]]:
    organizations = []
    for index in range(1, count + 1):
        suffix = _suffix()
        organizations.append(
            await facade.create_organization(
                {
                    "name": f"Organization {index}",
                    "slug": f"organization-{index}-{suffix}",
                    "logo": avatar_url(f"org{index}{suffix}"),
                }
            )
        )
    return organizations


SEEDERS = {
    "users": seed_users,
    "sessions": seed_sessions,
    "accounts": seed_accounts,
    "verifications": seed_verifications,
    "organizations": seed_organizations,
}


async def seed(facade: AdapterFacade, kind: str, count: int = 1, **options) -> list[dict[str, Any]]:
    """Create ``count`` sample entities of ``kind``.

    Raises:
        KeyError: If ``kind`` is not one of ``SEEDERS``
    """
    seeder = SEEDERS[kind]
    logger.info(f"Seeding {count} {kind}")
    return await seeder(facade, count, **options)
