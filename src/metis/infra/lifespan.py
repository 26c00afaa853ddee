"""Lifespan dependency injection bridge.

``inject`` lets the FastAPI lifespan declare ``Depends()`` parameters
the same way a route handler does.  FastAPI's ``solve_dependencies``
walks the dependency graph, so builders never need manual ordering.

Based on https://github.com/fastapi/fastapi/discussions/11742
"""

from contextlib import AsyncExitStack, asynccontextmanager
from functools import partial
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.dependencies.utils import get_dependant, solve_dependencies

LIFESPAN_SCOPE_HEADER = (b"X-Request-Scope", b"lifespan")


def get_app(request: Request) -> FastAPI:
    """Lifespan dependency: the ``FastAPI`` application itself."""
    return request.app


def _lifespan_request(app: FastAPI) -> Request:
    """Synthetic request that carries ``app`` through dependency resolution."""
    return Request(
        scope={
            "type": "http",
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": "/",
            "raw_path": b"/",
            "query_string": b"",
            "root_path": "",
            "headers": (LIFESPAN_SCOPE_HEADER,),
            "client": ("localhost", 80),
            "server": ("localhost", 80),
            "state": app.state,
            "app": app,
        }
    )


def inject(
    lifespan: Callable[..., Any],
) -> Callable[[FastAPI], Any]:
    """Resolve ``Depends()`` parameters for a lifespan function.

    Usage::

        @inject
        async def lifespan(
            app: FastAPI,
            _db: Annotated[None, Depends(build_db)],
        ):
            yield

    Every ``build_*`` generator owns both its setup and its teardown.
    The ``AsyncExitStack`` unwinds them in reverse order on shutdown,
    and ``app.dependency_overrides`` is honoured so tests can replace
    any builder.
    """

    @asynccontextmanager
    async def wrapper(app: FastAPI):  # type: ignore[misc]
        dependant = get_dependant(path="/", call=partial(lifespan, app))

        async with AsyncExitStack() as stack:
            solved = await solve_dependencies(
                request=_lifespan_request(app),
                dependant=dependant,
                async_exit_stack=stack,
                embed_body_fields=False,
                dependency_overrides_provider=app,
            )
            async with asynccontextmanager(lifespan)(app, **solved.values):
                yield

    return wrapper
