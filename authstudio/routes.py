"""JSON endpoints of the dashboard."""

import json
import logging
import re
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any, Literal

from bevy import Inject, injectable
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from authstudio.adapters.seed import SEEDERS, seed
from authstudio.config.extractor import enabled_plugin_ids
from authstudio.context import StudioContext
from authstudio.schema.composer import SchemaComposer

logger = logging.getLogger(__name__)

type HTTPMethod = Literal["GET", "POST", "PUT", "DELETE"]

MAX_SEED_COUNT = 100


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class StudioJSONResponse(JSONResponse):
    def render(self, content: Any) -> bytes:
        return json.dumps(content, default=_default, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class BadRequest(Exception):
    """Raised by handlers when the request is unusable."""


def error(message: str, status_code: int) -> StudioJSONResponse:
    return StudioJSONResponse({"error": message}, status_code=status_code)


class Router:
    def __init__(self):
        self.routes: list[Route] = []

    def route(self, path: str, methods: set[HTTPMethod] | None = None):
        methods = methods or {"GET"}

        def decorator(func: Callable) -> Callable:
            self.routes.append(Route(path, self._endpoint(func), methods=sorted(methods)))
            return func

        return decorator

    @staticmethod
    def _endpoint(func: Callable):
        async def endpoint(request: Request) -> Response:
            with request.app.state.container.branch() as container:
                container.add(Request, request)
                try:
                    result = await container.call(func, **request.path_params)
                except BadRequest as exc:
                    return error(str(exc), 400)
                except HTTPException:
                    raise
                except Exception as exc:
                    logger.exception(f"Unhandled error in {request.method} {request.url.path}")
                    return error(str(exc) or type(exc).__name__, 500)

            if isinstance(result, Response):
                return result
            return StudioJSONResponse(result)

        endpoint.__name__ = func.__name__
        return endpoint


router = Router()


async def _body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise BadRequest("Request body must be JSON")
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body


def _int_param(request: Request, name: str, default: int) -> int:
    value = request.query_params.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise BadRequest(f"Query parameter {name!r} must be an integer")


def _by_id(record_id: str) -> list[dict[str, Any]]:
    return [{"field": "id", "value": record_id}]


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _expires(session: dict[str, Any]) -> datetime | None:
    value = session.get("expiresAt") or session.get("expires")
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value if isinstance(value, datetime) else None


@router.route("/api/health")
@injectable
async def health(context: Inject[StudioContext]):
    return {
        "success": True,
        "status": "ok",
        "timestamp": datetime.now(timezone.utc),
        "configPath": str(path) if (path := context.config_path()) else None,
    }


@router.route("/api/config")
@injectable
async def get_config(context: Inject[StudioContext]):
    resolution = await context.resolve()
    return {
        "success": True,
        "config": resolution.config.dump(),
        "configPath": str(resolution.path) if resolution.path else None,
        "loadedBy": resolution.kind,
    }


@router.route("/api/stats")
@injectable
async def get_stats(context: Inject[StudioContext]):
    facade = await context.facade()
    users = await facade.get_users()
    sessions = await facade.get_sessions()
    now = datetime.now(timezone.utc)
    active = [s for s in sessions if (expires := _expires(s)) is None or expires > now]
    return {
        "success": True,
        "totalUsers": len(users),
        "totalSessions": len(sessions),
        "activeSessions": len(active),
        "usingMockData": facade.is_mock,
        "adapter": facade.status(),
    }


@router.route("/api/users")
@injectable
async def list_users(request: Inject[Request], context: Inject[StudioContext]):
    page = max(_int_param(request, "page", 1), 1)
    limit = max(_int_param(request, "limit", 20), 1)
    search = request.query_params.get("search", "").lower()

    users = await (await context.facade()).get_users()
    if search:
        users = [
            user
            for user in users
            if search in str(user.get("email", "")).lower() or search in str(user.get("name", "")).lower()
        ]

    start = (page - 1) * limit
    return {
        "success": True,
        "users": users[start:start + limit],
        "total": len(users),
        "page": page,
        "limit": limit,
    }


@router.route("/api/users", {"POST"})
@injectable
async def create_user(request: Inject[Request], context: Inject[StudioContext]):
    body = await _body(request)
    if not body.get("email") or not body.get("name"):
        raise BadRequest("Both name and email are required")

    user = await (await context.facade()).create_user(body)
    return {"success": True, "user": user}


@router.route("/api/users/{user_id}", {"PUT"})
@injectable
async def update_user(user_id: str, request: Inject[Request], context: Inject[StudioContext]):
    body = await _body(request)
    body.pop("id", None)
    if isinstance(body.get("email"), str):
        body["email"] = body["email"].lower()

    user = await (await context.facade()).update("user", _by_id(user_id), body)
    return {"success": True, "user": user}


@router.route("/api/users/{user_id}", {"DELETE"})
@injectable
async def delete_user(user_id: str, context: Inject[StudioContext]):
    await (await context.facade()).delete("user", _by_id(user_id))
    return {"success": True}


@router.route("/api/sessions")
@injectable
async def list_sessions(context: Inject[StudioContext]):
    sessions = await (await context.facade()).get_sessions()
    return {"success": True, "sessions": sessions, "total": len(sessions)}


@router.route("/api/providers")
@injectable
async def list_providers(context: Inject[StudioContext]):
    config = await context.config()
    return {"success": True, "providers": config.providers}


@router.route("/api/plugins")
@injectable
async def list_plugins(context: Inject[StudioContext]):
    config = await context.config()
    plugins = [plugin.model_dump(by_alias=True, mode="json") for plugin in config.plugins]
    return {"success": True, "plugins": plugins, "totalPlugins": len(plugins)}


@router.route("/api/plugins/organization/status")
@injectable
async def organization_status(context: Inject[StudioContext]):
    config = await context.config()
    plugin = next((p for p in config.plugins if p.id == "organization"), None)
    return {
        "success": True,
        "enabled": plugin is not None,
        "teamsEnabled": "teams" in enabled_plugin_ids(config),
        "organizationPlugin": plugin.model_dump(by_alias=True, mode="json") if plugin else None,
    }


@router.route("/api/organizations")
@injectable
async def list_organizations(request: Inject[Request], context: Inject[StudioContext]):
    limit = _int_param(request, "limit", 100)
    organizations = await (await context.facade()).find_many("organization", limit=limit)
    return {"success": True, "organizations": organizations, "total": len(organizations)}


@router.route("/api/organizations", {"POST"})
@injectable
async def create_organization(request: Inject[Request], context: Inject[StudioContext]):
    body = await _body(request)
    name = body.get("name")
    if not isinstance(name, str) or not name.strip():
        raise BadRequest("Organization name is required")
    body.setdefault("slug", _slugify(name))

    organization = await (await context.facade()).create_organization(body)
    return {"success": True, "organization": organization}


@router.route("/api/organizations/{organization_id}", {"PUT"})
@injectable
async def update_organization(organization_id: str, request: Inject[Request], context: Inject[StudioContext]):
    body = await _body(request)
    body.pop("id", None)
    organization = await (await context.facade()).update("organization", _by_id(organization_id), body)
    return {"success": True, "organization": organization}


@router.route("/api/organizations/{organization_id}", {"DELETE"})
@injectable
async def delete_organization(organization_id: str, context: Inject[StudioContext]):
    await (await context.facade()).delete("organization", _by_id(organization_id))
    return {"success": True}


@router.route("/api/database/schema")
@injectable
async def database_schema(
    request: Inject[Request],
    context: Inject[StudioContext],
    composer: Inject[SchemaComposer],
):
    requested = request.query_params.get("plugins")
    if requested is None:
        plugin_ids = enabled_plugin_ids(await context.config())
    else:
        plugin_ids = [p.strip() for p in requested.split(",") if p.strip()]

    return {"success": True, "schema": composer.compose_json(plugin_ids)}


@router.route("/api/seed/{kind}", {"POST"})
@injectable
async def seed_entities(kind: str, request: Inject[Request], context: Inject[StudioContext]):
    if kind not in SEEDERS:
        return error(f"Unknown seed target {kind!r}", 404)

    body = await _body(request) if await request.body() else {}
    count = body.get("count", 1)
    if not isinstance(count, int) or isinstance(count, bool) or not 1 <= count <= MAX_SEED_COUNT:
        raise BadRequest(f"count must be an integer between 1 and {MAX_SEED_COUNT}")

    options = {
        "role": body.get("role"),
        "user_id": body.get("userId"),
        "provider_id": body.get("providerId"),
    }
    results = await seed(await context.facade(), kind, count, **options)
    return {"success": True, "kind": kind, "count": len(results), "results": results}
