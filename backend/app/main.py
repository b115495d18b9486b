"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.app.core.config import Settings, get_settings
from backend.app.core.rate_limit import RateLimiter
from backend.app.api import search
from noexplorer import __version__
from noexplorer.orchestrator import SearchClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings], SearchClient]


def _default_client_factory(settings: Settings) -> SearchClient:
    return SearchClient(settings.to_client_config())


def create_app(client_factory: Optional[ClientFactory] = None) -> FastAPI:
    """Create and configure the FastAPI app."""
    settings = get_settings()
    factory = client_factory or _default_client_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Own one SearchClient for the lifetime of the process."""
        client = factory(settings)
        await client.start()
        app.state.search_client = client
        app.state.search_limiter = RateLimiter(
            requests_per_window=settings.search_rate_limit_per_minute,
            window_seconds=60,
        )
        logger.info(
            "Search client ready (sources: %s)",
            ", ".join(s.name for s in client.sources) or "none",
        )

        yield

        app.state.search_client = None
        await client.close()
        logger.info("Search client closed")

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Privacy-focused metasearch API",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    def _with_cors(request: Request, response: JSONResponse) -> JSONResponse:
        origin = request.headers.get("origin")
        if origin and origin in settings.cors_origins_list:
            response.headers["Access-Control-Allow-Origin"] = origin
        return response

    # Exception handlers to ensure CORS headers are always sent
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        response = JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )
        return _with_cors(request, response)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        response = JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors()},
        )
        return _with_cors(request, response)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s", request.url.path)
        response = JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
        return _with_cors(request, response)

    # Routes
    app.include_router(search.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("backend.app.main:app", host="0.0.0.0", port=8000, reload=True)
