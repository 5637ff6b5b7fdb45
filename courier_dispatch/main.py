"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import UUID

from fastapi import FastAPI, Request, WebSocket
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from courier_dispatch.api.routes import router
from courier_dispatch.api.websocket import WebSocketNotifier, handle_customer_websocket, manager
from courier_dispatch.config import get_settings
from courier_dispatch.engine import DispatchEngine, build_engine
from courier_dispatch.errors import DispatchError
from courier_dispatch.utils.logging import get_logger, setup_logging

# Setup logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    logger.info("application_starting")

    if app.state.engine is None:
        app.state.engine = await build_engine(notifier=WebSocketNotifier(manager))
    engine: DispatchEngine = app.state.engine
    await engine.start()

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await engine.stop()


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    """Render engine errors as ``{"success": false, "error": ..., "message": ...}``."""
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=exc.code,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


def create_app(engine: DispatchEngine | None = None) -> FastAPI:
    """Create the API app, optionally around a prebuilt engine."""
    app = FastAPI(
        title="Courier Dispatch",
        description="Delivery dispatch and real-time tracking engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DispatchError, dispatch_error_handler)  # type: ignore[arg-type]
    app.include_router(router, prefix="/api/v1", tags=["api"])

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "service": "courier-dispatch"}

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Courier Dispatch API",
            "docs": "/docs",
            "health": "/health",
        }

    # WebSocket endpoint
    @app.websocket("/ws/customers/{customer_id}")
    async def customer_websocket(websocket: WebSocket, customer_id: str) -> None:
        """Tracking updates for every delivery of a customer."""
        try:
            customer_uuid = UUID(customer_id)
        except ValueError:
            await websocket.close(code=1003, reason="Invalid customer ID")
            return
        await handle_customer_websocket(websocket, customer_uuid)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "courier_dispatch.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )
