"""
Problemset API - HTTP front end for the problem document store.

Provides endpoints for:
- Listing problem ids (GET /api/problems)
- Reading a problem (GET /api/problem/{id})
- Submitting a problem (POST /api/problem/{id}, password required)
- Deleting a problem (DELETE /api/problem/{id}, password required)
- Rendering a problem page (GET /problem/{id})
"""

import json
import uvicorn
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, TypeVar

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .auth import verify_password
from .config import Settings, get_settings
from .kv import create_kv
from .models import MISSING_FIELD_MESSAGES, DeleteProblemRequest, SubmitProblemRequest
from .render import render_problem_page
from .store import ProblemStore

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

BodyT = TypeVar("BodyT", bound=BaseModel)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Honour an overridden settings provider (CLI --config, tests)
    settings = app.dependency_overrides.get(get_settings, get_settings)()

    store = ProblemStore(create_kv(settings))
    app.state.store = store

    if not settings.pass_key:
        logger.warning("PASS_KEY not configured, all writes will be rejected")

    logger.info(
        "API started",
        version=__version__,
        host=settings.host,
        port=settings.port,
        backend=store.backend,
    )

    yield

    await store.close()
    logger.info("API stopped")


def get_store(request: Request) -> ProblemStore:
    """Store created at startup."""
    return request.app.state.store


API_PREFIX = "/api/problem/"
PAGE_PREFIX = "/problem/"


def raw_problem_id(prefix: str) -> Callable:
    """
    Dependency returning the problem id exactly as sent in the URL.

    The id is everything after `prefix` in the raw request path. Percent
    escapes are not decoded, so `a%2Fb` and `a/b` are different ids.
    """

    def dependency(request: Request) -> str:
        raw_path = request.scope.get("raw_path") or request.scope["path"].encode("utf-8")
        path = raw_path.split(b"?", 1)[0].decode("utf-8")
        return path[path.index(prefix) + len(prefix):]

    return dependency


# ============================================================================
# Request body parsing and verification
# ============================================================================


async def read_json_body(request: Request) -> object:
    """Decode the request body as JSON (400 if empty or malformed)."""
    raw = await request.body()
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")


def parse_body(model: type[BodyT], data: object) -> BodyT:
    """
    Validate a decoded body against `model`.

    The first failing field decides the diagnostic. A body that is not a
    JSON object is reported as missing the model's first field.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        loc = e.errors()[0]["loc"]
        field = loc[0] if loc else next(iter(model.model_fields))
        detail = MISSING_FIELD_MESSAGES.get(str(field), f"Invalid {field}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def verified_body(model: type[BodyT]) -> Callable:
    """
    Dependency for guarded endpoints.

    Parses the body into `model`, then checks its `verification` password
    against the configured digest (401 on mismatch).
    """

    async def dependency(
        request: Request,
        settings: Settings = Depends(get_settings),
    ) -> BaseModel:
        body = parse_body(model, await read_json_body(request))
        if not verify_password(body.verification, settings.pass_key):
            logger.warning("Verification failed", path=request.url.path)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        return body

    return dependency


# ============================================================================
# Public endpoints
# ============================================================================

public = APIRouter()


@public.get("/api/problems")
async def list_problems(store: ProblemStore = Depends(get_store)) -> JSONResponse:
    """List every stored problem id."""
    return JSONResponse(await store.list_ids())


@public.get(API_PREFIX + "{rest:path}", response_class=PlainTextResponse)
async def get_problem(
    problem_id: str = Depends(raw_problem_id(API_PREFIX)),
    store: ProblemStore = Depends(get_store),
) -> PlainTextResponse:
    """Return the raw problem document."""
    problem = await store.get(problem_id)
    if not problem:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Problem not found")
    return PlainTextResponse(problem)


@public.get(PAGE_PREFIX + "{rest:path}", response_class=HTMLResponse)
async def problem_page(
    problem_id: str = Depends(raw_problem_id(PAGE_PREFIX)),
    store: ProblemStore = Depends(get_store),
) -> HTMLResponse:
    """Render the problem as a Markdeep page."""
    problem = await store.get(problem_id)
    if not problem:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Problem not found")
    return HTMLResponse(render_problem_page(problem))


# ============================================================================
# Guarded endpoints (password required)
# ============================================================================

guarded = APIRouter()


@guarded.post(API_PREFIX + "{rest:path}", status_code=status.HTTP_201_CREATED)
async def submit_problem(
    problem_id: str = Depends(raw_problem_id(API_PREFIX)),
    body: SubmitProblemRequest = Depends(verified_body(SubmitProblemRequest)),
    store: ProblemStore = Depends(get_store),
) -> PlainTextResponse:
    """Create or overwrite a problem."""
    logger.info("Received problem submission", problem_id=problem_id, size=len(body.problem))

    await store.put(problem_id, body.problem)

    logger.info("Problem stored", problem_id=problem_id)
    return PlainTextResponse("Problem submitted", status_code=status.HTTP_201_CREATED)


@guarded.delete(API_PREFIX + "{rest:path}")
async def delete_problem(
    problem_id: str = Depends(raw_problem_id(API_PREFIX)),
    body: DeleteProblemRequest = Depends(verified_body(DeleteProblemRequest)),
    store: ProblemStore = Depends(get_store),
) -> PlainTextResponse:
    """Delete an existing problem."""
    if not await store.get(problem_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Problem not found")

    if not await store.delete(problem_id):
        logger.error("Failed to delete problem", problem_id=problem_id, backend=store.backend)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete problem",
        )

    logger.info("Problem deleted", problem_id=problem_id)
    return PlainTextResponse("Problem deleted")


# ============================================================================
# Application
# ============================================================================

_settings = get_settings()

app = FastAPI(
    title="Problemset API",
    description="HTTP front end for the problem document store",
    version=__version__,
    lifespan=lifespan,
    redirect_slashes=False,
    openapi_url="/openapi.json" if _settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

app.include_router(public)
app.include_router(guarded)


@app.exception_handler(StarletteHTTPException)
async def plain_text_http_error(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    """Render HTTP errors (including routing 404/405) as plain text."""
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


# ============================================================================
# Entry Point
# ============================================================================


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "problemset_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
