from pathlib import Path

from bevy.registries import Registry
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request

from authstudio.context import StudioContext
from authstudio.routes import error, router
from authstudio.schema.composer import SchemaComposer
from authstudio.settings import StudioSettings


async def _http_error(request: Request, exc: HTTPException):
    return error(exc.detail, exc.status_code)


def create_app(
    cwd: str | Path | None = None,
    settings: StudioSettings | None = None,
    context: StudioContext | None = None,
) -> Starlette:
    """Build the dashboard application.

    Args:
        cwd: Directory the configuration search starts from. Defaults to the
            current working directory.
        settings: Dashboard settings. Defaults to ``StudioSettings()``.
        context: A prepared context, used as is when given.
    """
    registry = Registry()
    container = registry.create_container()
    container.add(StudioContext, context or StudioContext(cwd, settings))
    container.add(SchemaComposer, SchemaComposer())

    app = Starlette(routes=list(router.routes), exception_handlers={HTTPException: _http_error})
    app.state.container = container
    return app
