from __future__ import annotations

import os
from typing import Optional

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from .db import engine_from_settings, init_db, make_session_factory
from .exceptions import CatalogError, ProblemNotFound
from .logger import configure_logging
from .models import RunRequest
from .pipeline import Catalog, Pipeline, RecordSink
from .repository import ProblemCatalog, SubmissionStore
from .settings import Settings, get_settings

# minimal set needed by the Monaco editor
CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-eval' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "worker-src 'self' blob:; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "font-src 'self' data: https://cdn.jsdelivr.net; "
    "img-src 'self' data:; "
    "connect-src 'self';"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Content-Security-Policy", CSP)
        return response


async def list_problems(request):
    catalog: Catalog = request.app.state.catalog
    try:
        problems = await run_in_threadpool(catalog.list_problems)
    except (SQLAlchemyError, CatalogError) as exc:
        logger.error(f"[/api/problems] db error: {exc}")
        return PlainTextResponse(f"db error: {exc}", status_code=500)
    return JSONResponse([p.model_dump() for p in problems])


async def get_problem(request):
    catalog: Catalog = request.app.state.catalog
    problem_id = request.path_params["problem_id"]
    try:
        problem = await run_in_threadpool(catalog.get_problem, problem_id)
    except (SQLAlchemyError, CatalogError) as exc:
        logger.error(f"[/api/problems/{problem_id}] db error: {exc}")
        return PlainTextResponse(f"db error: {exc}", status_code=500)
    if problem is None:
        return Response(status_code=404)
    return JSONResponse(problem.model_dump())


async def run(request):
    try:
        body = RunRequest.model_validate(await request.json())
    except ValidationError as exc:
        return JSONResponse({"error": exc.errors(include_url=False, include_context=False)}, status_code=400)
    except ValueError:
        return JSONResponse({"error": "Invalid JSON"}, status_code=400)

    pipeline: Pipeline = request.app.state.pipeline
    try:
        result = await run_in_threadpool(pipeline.run_submission, body.problem_id, body.code)
    except ProblemNotFound:
        return PlainTextResponse("invalid problem_id", status_code=400)
    except (SQLAlchemyError, CatalogError) as exc:
        logger.error(f"[/api/run] db error: {exc}")
        return PlainTextResponse(f"db error: {exc}", status_code=500)
    return JSONResponse(result.model_dump())


async def favicon(request):
    return Response(status_code=204)


def create_app(
    settings: Optional[Settings] = None,
    catalog: Optional[Catalog] = None,
    store: Optional[RecordSink] = None,
) -> Starlette:
    settings = settings or get_settings()
    if catalog is None or store is None:
        engine = engine_from_settings(settings)
        init_db(engine)
        session_factory = make_session_factory(engine)
        catalog = catalog or ProblemCatalog(session_factory)
        store = store or SubmissionStore(session_factory)

    routes = [
        Route("/favicon.ico", favicon, methods=["GET"]),
        Route("/api/problems", list_problems, methods=["GET"]),
        Route("/api/problems/{problem_id:int}", get_problem, methods=["GET"]),
        Route("/api/run", run, methods=["POST"]),
    ]
    if os.path.isdir(settings.ui_dir):
        routes.append(Mount("/", app=StaticFiles(directory=os.path.abspath(settings.ui_dir), html=True), name="ui"))

    app = Starlette(routes=routes)
    app.add_middleware(SecurityHeadersMiddleware)
    app.state.settings = settings
    app.state.catalog = catalog
    app.state.pipeline = Pipeline.from_settings(settings, catalog, store)
    return app


def serve() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings)
    logger.info(f"starting judge server on {settings.host}:{settings.port}")
    uvicorn.run("judge_server.main:create_app", factory=True, host=settings.host, port=settings.port)

