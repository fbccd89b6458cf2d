"""FastAPI server for fleet maintenance parts tracking.

Run with:
    uvicorn api.server:app --reload
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api.errors import engine_error_handler, request_validation_handler
from api.routes import health, work_orders
from core import __version__
from core.config import get_settings
from core.observability.logging import configure_logging, get_logger, with_correlation
from reconciliation.errors import EngineError

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    settings = get_settings()
    logger.info(
        "Fleet maintenance API starting",
        extra_fields={"db_path": str(settings.db_path), "completion_roles": sorted(settings.completion_roles)},
    )
    yield
    logger.info("Fleet maintenance API stopped")


async def correlate_request(request: Request, call_next):
    """Tag every log line of a request with its request id and echo it back."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
    with with_correlation(request_id=request_id, actor_role=request.headers.get("X-Actor-Role")):
        response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def create_app() -> FastAPI:
    """Build the application with routers, CORS and engine error handling."""
    app = FastAPI(
        title="Fleet Maintenance API",
        description="Work order parts issuance, installation reconciliation and completion gating",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(correlate_request)
    app.add_exception_handler(EngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(work_orders.router, tags=["Work Orders"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
