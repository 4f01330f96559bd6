"""
FastAPI Application Factory

Assembles the IPC app: system routes plus a health check. Kept separate
from main_asyncio.py so tests can build the app without starting a server.
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from api.routes import system
from runtime.runtime_info import RuntimeInfo, PROGRAM_NAME
from utils.logger import get_logger
from models.enums import LogCategory

log = get_logger().for_category(LogCategory.API)


def create_app(
    title: str = f"{PROGRAM_NAME} IPC",
    description: str = "Local control interface for the BotFarm process",
    version: str = None,
    docs_enabled: bool = True,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        title: API title (shown in docs)
        description: API description
        version: API version (default: installed package version)
        docs_enabled: Enable /docs and /redoc

    Returns:
        Configured FastAPI application ready to run
    """
    version = version or RuntimeInfo.version()

    app = FastAPI(
        title=title,
        description=description,
        version=version,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None
    )

    # =========================================================================
    # Routes
    # =========================================================================

    app.include_router(system.router, prefix="/api")

    log.debug("Routes registered: system (/api/system)")

    # =========================================================================
    # Health Check Endpoint
    # =========================================================================

    @app.get(
        "/api/health",
        tags=["System"],
        summary="Health check",
        description="Check if the IPC interface is running and responding"
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": "botfarm-ipc",
            "version": version
        }

    @app.get("/", include_in_schema=False)
    async def root():
        return JSONResponse(
            {
                "message": f"{PROGRAM_NAME} IPC",
                "docs": "/docs" if docs_enabled else None,
                "health": "/api/health"
            }
        )

    log.debug(f"FastAPI app created: {title} v{version}")

    return app
