"""Bookmarket API entry point.

Builds the FastAPI app, wires routers and middleware, and starts the
reservation sweeper for the lifetime of the process.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookmarket.api.health import router as health_router
from bookmarket.api.listings import router as listings_router
from bookmarket.api.maintenance import router as maintenance_router
from bookmarket.api.middleware import error_body, setup_middleware
from bookmarket.api.orders import router as orders_router
from bookmarket.infrastructure.config import settings
from bookmarket.infrastructure.container import get_container
from bookmarket.infrastructure.database import dispose_engine
from bookmarket.infrastructure.logging_config import configure_logging

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the sweeper on boot; close the listing client and engine on exit."""
    container = get_container()
    logger.info(
        "Bookmarket API starting",
        version=settings.api_version,
        storage_backend=settings.storage_backend,
        hold_duration_minutes=settings.hold_duration_minutes,
        sweep_enabled=settings.sweep_enabled,
    )
    if settings.sweep_enabled:
        container.sweeper.start()

    yield

    await get_container().close()
    if settings.storage_backend == "sql":
        await dispose_engine()
    logger.info("Bookmarket API stopped")


app = FastAPI(
    title="Bookmarket API",
    description="Used-book marketplace backend: listings, orders and checkout",
    version=settings.api_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
setup_middleware(app)

app.include_router(health_router, tags=["Health"])
app.include_router(listings_router)
app.include_router(orders_router)
app.include_router(maintenance_router)


# ============================================================================
# Exception Handlers
# ============================================================================


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render router errors (see ``bookmarket.api.errors``) in the error envelope."""
    if isinstance(exc.detail, dict):
        body = error_body(
            exc.detail.get("error_code", "ERROR"),
            exc.detail.get("message", ""),
            exc.detail.get("details"),
            _request_id(request),
        )
    else:
        body = error_body("ERROR", str(exc.detail), request_id=_request_id(request))
    return JSONResponse(status_code=exc.status_code, content=body)


# Order endpoints answer malformed input with 400, like their domain validation
ORDER_PATH_PREFIX = "/orders"


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed bodies and query params in the error envelope.

    Order routes return 400 ``VALIDATION_ERROR``; every other route returns
    422 ``REQUEST_INVALID``.
    """
    # ctx may hold exception instances, which are not JSON serializable
    problems = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    if request.url.path.startswith(ORDER_PATH_PREFIX):
        status_code, error_code = status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"
    else:
        status_code, error_code = status.HTTP_422_UNPROCESSABLE_ENTITY, "REQUEST_INVALID"
    return JSONResponse(
        status_code=status_code,
        content=error_body(
            error_code,
            "Request failed validation",
            problems,
            _request_id(request),
        ),
    )
