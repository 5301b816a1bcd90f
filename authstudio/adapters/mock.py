"""Synthetic stand-in for a persistence adapter.

Nothing is stored: every call builds its answer from its arguments, a fresh
identifier and the current time. Reads return small fixed example payloads.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

DICEBEAR_URL = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"

ID_PREFIXES = {
    "user": "user",
    "session": "session",
    "account": "account",
    "verification": "verification",
    "organization": "org",
    "member": "member",
    "invitation": "invitation",
    "team": "team",
}


def generate_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


def avatar_url(seed: str) -> str:
    return DICEBEAR_URL.format(seed=seed)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def example_users() -> list[dict[str, Any]]:
    now = _now()
    return [
        {
            "id": f"user_{index}",
            "name": f"User {index}",
            "email": f"user{index}@example.com",
            "emailVerified": True,
            "image": avatar_url(f"user{index}"),
            "role": "user",
            "status": "active",
            "provider": provider,
            "createdAt": now,
            "updatedAt": now,
            "lastSignIn": now,
        }
        for index, provider in ((1, "email"), (2, "github"))
    ]


def example_sessions() -> list[dict[str, Any]]:
    now = _now()
    expires = now + timedelta(days=7)
    return [
        {
            "id": "session_1",
            "userId": "user_1",
            "token": "session_token_1",
            "sessionToken": "session_token_1",
            "expiresAt": expires,
            "expires": expires,
            "createdAt": now,
            "updatedAt": now,
        }
    ]


class MockAdapter:
    """Stateless generator of plausible entities."""

    is_mock = True

    def create(self, model: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        now = _now()
        record = {"id": generate_id(ID_PREFIXES.get(model, model)), "createdAt": now, "updatedAt": now}
        record.update(data or {})
        return record

    def create_user(self, data: dict[str, Any]) -> dict[str, Any]:
        email = data.get("email")
        user = self.create("user", {"emailVerified": False, "image": avatar_url(str(email)), **data})
        if isinstance(email, str):
            user["email"] = email.lower()
        user.pop("password", None)
        return user

    def create_session(self, data: dict[str, Any]) -> dict[str, Any]:
        return self.create("session", data)

    def create_account(self, data: dict[str, Any]) -> dict[str, Any]:
        return self.create("account", data)

    def create_verification(self, data: dict[str, Any]) -> dict[str, Any]:
        return self.create("verification", data)

    def create_organization(self, data: dict[str, Any]) -> dict[str, Any]:
        return self.create("organization", data)

    def update(self, model: str, where: list[dict[str, Any]] | None = None, update: dict[str, Any] | None = None) -> dict[str, Any]:
        record = dict(update or {})
        for clause in where or []:
            if clause.get("field") == "id":
                record.setdefault("id", clause.get("value"))
        record["updatedAt"] = _now()
        return record

    def delete(self, model: str, where: list[dict[str, Any]] | None = None) -> None:
        return None

    def find_many(self, model: str, **_options) -> list[dict[str, Any]]:
        if model == "user":
            return example_users()[:1]
        return []

    def get_users(self) -> list[dict[str, Any]]:
        return example_users()

    def get_sessions(self) -> list[dict[str, Any]]:
        return example_sessions()
