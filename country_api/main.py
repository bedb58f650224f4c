import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from country_api.config import Settings, settings as default_settings
from country_api.errors import RenderError, SourceUnavailable, StoreError
from country_api.logging import RequestLoggingMiddleware, init_logging, setup_query_logging
from country_api.resources import Resources
from country_api.routes import countries, status

logger = logging.getLogger("country_api")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: one engine and one HTTP session for the whole process
        resources = Resources.create(settings)
        setup_query_logging(resources.engine)
        app.state.resources = resources
        try:
            yield
        finally:
            resources.close()

    app = FastAPI(
        title="Country Currency & Exchange API",
        version="1.0.0",
        description=(
            "REST API exposing countries, currencies, exchange rates and a rough GDP estimate.\n\n"
            "Features:\n"
            "- Refresh from restcountries.com and open.er-api.com on demand\n"
            "- Filter by region and currency, sort by name or estimated GDP\n"
            "- Lightweight status and a generated summary image"
        ),
        lifespan=lifespan,
    )

    init_logging(settings)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(countries.router, prefix="/countries", tags=["Countries"])
    app.include_router(status.router, prefix="/status", tags=["Status"])

    @app.get("/", tags=["Health"])
    def root():
        return {"message": "Country Currency & Exchange API running. Visit /docs for API documentation."}

    register_exception_handlers(app)
    return app


# -------------------------------
# Unified error response handlers
# -------------------------------
def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(
            "HTTPException: %s %s -> %s | detail=%s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.detail,
        )
        body = {"error": exc.detail if isinstance(exc.detail, str) else "Error"}
        if isinstance(exc.detail, dict):
            body = {
                "error": exc.detail.get("error") or "Error",
                "details": exc.detail.get("details"),
            }
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(
            "ValidationError: %s %s | errors=%s",
            request.method,
            request.url.path,
            exc.errors(),
        )
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": jsonable_errors(exc)},
        )

    @app.exception_handler(SourceUnavailable)
    async def source_unavailable_handler(request: Request, exc: SourceUnavailable):
        logger.error("Refresh failed: %s (%s)", exc, exc.reason)
        return JSONResponse(
            status_code=503,
            content={"error": "External data source unavailable", "details": str(exc)},
        )

    @app.exception_handler(RenderError)
    async def render_error_handler(request: Request, exc: RenderError):
        logger.error("Refresh failed while rendering summary: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"error": "Summary image generation failed", "details": str(exc)},
        )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("Store error on %s %s: %s", request.method, request.url.path, exc.__cause__)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances which JSONResponse cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=default_settings.PORT)
