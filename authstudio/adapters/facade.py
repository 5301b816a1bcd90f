"""Uniform data access over whatever adapter the host project provides.

Every operation is routed to the raw adapter when it implements the matching
capability and to the MockAdapter otherwise. A raw call that raises is logged
as an ``OperationDegraded`` event and answered by the mock: writes return a
synthesized record and reads return empty results.
"""

import inspect
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from authstudio.adapters.capability import AdapterCapability, method_for, probe
from authstudio.adapters.mock import MockAdapter, avatar_url
from authstudio.exceptions import OperationDegraded

logger = logging.getLogger(__name__)

type Where = list[dict[str, Any]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AdapterFacade:
    def __init__(self, raw: Any = None, mock: MockAdapter | None = None):
        self.raw = raw
        self.mock = mock or MockAdapter()
        self.capabilities = probe(raw)
        self.degradations: Counter[str] = Counter()

    @property
    def is_mock(self) -> bool:
        return self.raw is None

    def supports(self, capability: AdapterCapability) -> bool:
        return capability in self.capabilities

    def status(self) -> dict[str, Any]:
        return {
            "mock": self.is_mock,
            "capabilities": [c.name.lower() for c in AdapterCapability if c and c in self.capabilities],
            "degradations": dict(self.degradations),
        }

    async def _invoke(self, capability: AdapterCapability, *args) -> Any:
        result = method_for(self.raw, capability)(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _degrade(self, operation: str, model: str | None, cause: BaseException) -> OperationDegraded:
        event = OperationDegraded(operation, model, cause)
        self.degradations[operation] += 1
        logger.warning(event.message)
        return event

    async def create(self, model: str, data: dict[str, Any]) -> dict[str, Any]:
        if not self.supports(AdapterCapability.CREATE):
            return self.mock.create(model, data)
        try:
            return await self._invoke(AdapterCapability.CREATE, {"model": model, "data": data})
        except Exception as exc:
            self._degrade("create", model, exc)
            return self.mock.create(model, data)

    async def update(self, model: str, where: Where, update: dict[str, Any]) -> dict[str, Any]:
        if not self.supports(AdapterCapability.UPDATE):
            return self.mock.update(model, where, update)
        try:
            options = {"model": model, "where": where, "update": update}
            return await self._invoke(AdapterCapability.UPDATE, options)
        except Exception as exc:
            self._degrade("update", model, exc)
            return self.mock.update(model, where, update)

    async def delete(self, model: str, where: Where) -> Any:
        if not self.supports(AdapterCapability.DELETE):
            return self.mock.delete(model, where)
        try:
            return await self._invoke(AdapterCapability.DELETE, {"model": model, "where": where})
        except Exception as exc:
            self._degrade("delete", model, exc)
            return self.mock.delete(model, where)

    async def find_many(
        self,
        model: str,
        where: Where | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        options: dict[str, Any] = {"model": model}
        for key, value in (("where", where), ("limit", limit), ("offset", offset)):
            if value is not None:
                options[key] = value

        if not self.supports(AdapterCapability.FIND_MANY):
            return self.mock.find_many(**options)
        try:
            return list(await self._invoke(AdapterCapability.FIND_MANY, options) or [])
        except Exception as exc:
            self._degrade("find_many", model, exc)
            return []

    async def _read_all(self, model: str, capability: AdapterCapability, fallback) -> list[dict[str, Any]]:
        if self.supports(AdapterCapability.FIND_MANY):
            return await self.find_many(model)
        if not self.supports(capability):
            return fallback()
        try:
            return list(await self._invoke(capability) or [])
        except Exception as exc:
            self._degrade(capability.name.lower(), model, exc)
            return []

    async def get_users(self) -> list[dict[str, Any]]:
        return await self._read_all("user", AdapterCapability.GET_USERS, self.mock.get_users)

    async def get_sessions(self) -> list[dict[str, Any]]:
        return await self._read_all("session", AdapterCapability.GET_SESSIONS, self.mock.get_sessions)

    async def create_user(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a user, plus a credential account when a password is given."""
        if not self.supports(AdapterCapability.CREATE):
            return self.mock.create_user(data)

        email = data.get("email")
        now = _now()
        record = {
            "createdAt": now,
            "updatedAt": now,
            "emailVerified": data.get("emailVerified", False),
            "name": data.get("name"),
            "email": email.lower() if isinstance(email, str) else email,
            "role": data.get("role"),
            "image": data.get("image") or avatar_url(str(email)),
        }
        try:
            user = await self._invoke(AdapterCapability.CREATE, {"model": "user", "data": record})
        except Exception as exc:
            self._degrade("create", "user", exc)
            return self.mock.create_user(data)

        if data.get("password") and isinstance(user, dict) and user.get("id"):
            account = {
                "userId": user["id"],
                "providerId": "credential",
                "accountId": user["id"],
                "password": data["password"],
                "createdAt": now,
                "updatedAt": now,
            }
            try:
                await self._invoke(AdapterCapability.CREATE, {"model": "account", "data": account})
            except Exception as exc:
                logger.error(f"Failed to create credential account for {user['id']}: {exc!r}")
        return user

    async def _create_timestamped(self, model: str, data: dict[str, Any]) -> dict[str, Any]:
        now = _now()
        return await self.create(model, {"createdAt": now, "updatedAt": now, **data})

    async def create_session(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._create_timestamped("session", data)

    async def create_account(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._create_timestamped("account", data)

    async def create_verification(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._create_timestamped("verification", data)

    async def create_organization(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._create_timestamped("organization", data)


def bind(raw: Any = None) -> AdapterFacade:
    """Wrap a raw adapter, or nothing at all, into an AdapterFacade."""
    facade = AdapterFacade(raw)
    if facade.is_mock:
        logger.info("No persistence adapter available, serving mock data")
    else:
        logger.debug(f"Bound adapter {type(raw).__name__} with {facade.capabilities!r}")
    return facade
