"""Capability detection for raw persistence adapters."""

import enum
import inspect
from collections.abc import Callable
from typing import Any


class AdapterCapability(enum.Flag):
    """Operations a raw adapter implements."""

    NONE = 0
    CREATE = enum.auto()
    UPDATE = enum.auto()
    DELETE = enum.auto()
    FIND_MANY = enum.auto()
    GET_USERS = enum.auto()
    GET_SESSIONS = enum.auto()

    @property
    def method_names(self) -> tuple[str, ...]:
        """Attribute names that provide this single capability."""
        return _METHOD_NAMES[self]


_METHOD_NAMES = {
    AdapterCapability.CREATE: ("create",),
    AdapterCapability.UPDATE: ("update",),
    AdapterCapability.DELETE: ("delete",),
    AdapterCapability.FIND_MANY: ("find_many", "findMany"),
    AdapterCapability.GET_USERS: ("get_users", "getUsers"),
    AdapterCapability.GET_SESSIONS: ("get_sessions", "getSessions"),
}


def _lookup(raw: Any, name: str) -> Any:
    if isinstance(raw, dict):
        return raw.get(name)
    # Static lookup so proxies answering every attribute are not mistaken for adapters
    if inspect.getattr_static(raw, name, None) is None:
        return None
    return getattr(raw, name, None)


def method_for(raw: Any, capability: AdapterCapability) -> Callable | None:
    """Return the raw adapter's callable for ``capability``, if any."""
    if raw is None:
        return None
    for name in capability.method_names:
        method = _lookup(raw, name)
        if callable(method):
            return method
    return None


def probe(raw: Any) -> AdapterCapability:
    """Compute the capabilities of ``raw`` once, by inspecting its callables."""
    capabilities = AdapterCapability.NONE
    for capability in _METHOD_NAMES:
        if method_for(raw, capability) is not None:
            capabilities |= capability
    return capabilities
