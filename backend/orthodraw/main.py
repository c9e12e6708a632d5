"""
Main application module for the orthodraw backend.

This file sets up the FastAPI application, configures CORS so a
frontend can make cross-origin requests and exposes a simple health
check endpoint.  The drawing router is included under the ``/api``
namespace.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes_drawings import router as drawings_router

# Imported at module level so both create_app and the startup event can
# reference it.  init_db creates the tables if they do not exist.
from .services.drawings_store import init_db


def create_app() -> FastAPI:
    """Factory to create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application instance.
    """
    app = FastAPI(title="orthodraw")

    @app.on_event("startup")  # type: ignore[misc]
    async def startup_event() -> None:
        init_db()

    # Allow all origins by default; restrict this in production.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(drawings_router, prefix="/api", tags=["drawings"])

    return app


# Uvicorn imports this when running `uvicorn orthodraw.main:app` from backend/.
app = create_app()
