"""FastAPI server for the franchise reconciliation engine.

Main entry point for the API server. Routes only parse input, call the core
services and map the error taxonomy to status codes.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, payments, sales
from connectors.sheet_store import SheetStore, create_store
from core import __version__
from core.config import AppSettings
from core.errors import ReconciliationError, UpstreamStoreError
from core.observability.logging import configure_logging, get_logger, with_correlation
from reconciliation.repository import SheetRepository

logger = get_logger(__name__)


def create_app(
    settings: Optional[AppSettings] = None,
    store: Optional[SheetStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Explicit settings (defaults to AppSettings.from_env() at startup)
        store: Explicit store (defaults to the backend named in settings)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the store and verify every sheet schema before serving."""
        app_settings = settings or AppSettings.from_env()
        configure_logging(app_settings.log_level, app_settings.log_json, force=True)

        sheet_store = store or create_store(app_settings)
        await sheet_store.connect()
        repository = SheetRepository(sheet_store, app_settings.sheets)
        await repository.verify_schema()

        app.state.settings = app_settings
        app.state.store = sheet_store
        app.state.repository = repository
        logger.info(
            "Reconciliation API starting up",
            extra_fields={"store_backend": app_settings.store_backend},
        )

        try:
            yield
        finally:
            await sheet_store.disconnect()
            logger.info("Reconciliation API shutting down")

    app = FastAPI(
        title="Franchise Reconciliation API",
        description="Reconciles franchise orders against supplier invoices and imports kitchen sales",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlate_request(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        with with_correlation(request_id=request_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(ReconciliationError)
    async def handle_reconciliation_error(request: Request, exc: ReconciliationError) -> JSONResponse:
        if isinstance(exc, UpstreamStoreError):
            logger.error(
                f"Store failure: {exc.message}",
                extra_fields={"kind": exc.kind.value, "status": exc.status, "path": request.url.path},
            )
        elif exc.status_code >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}", extra_fields={"path": request.url.path})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "type": "ValidationError", "details": errors},
        )

    app.include_router(health.router, tags=["Health"])
    app.include_router(payments.router, tags=["Payments"])
    app.include_router(sales.router, prefix="/sales", tags=["Sales"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
