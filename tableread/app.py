from __future__ import annotations

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .catalogue import ScriptCatalogue
from .config import Settings, get_settings
from .gateway import Gateway
from .registry import RoomRegistry
from .routers import health as health_router
from .routers import scripts as scripts_router
from .routers import websockets as ws_router

logger = logging.getLogger(__name__)


# Custom StaticFiles variant that disables caching for the frontend assets.
class NoCacheStaticFiles(StaticFiles):
    async def get_response(self, path: str, scope):  # type: ignore[override]
        response = await super().get_response(path, scope)
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        return response


def create_app(settings: Optional[Settings] = None, catalogue: Optional[ScriptCatalogue] = None) -> FastAPI:
    settings = settings or get_settings()
    if catalogue is None:
        catalogue = ScriptCatalogue.from_directory(settings.scripts_dir)

    app = FastAPI(title="Table Read")

    # Allow all origins; the client is usually served from this same process.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    registry = RoomRegistry(auto_advance_delay=settings.auto_advance_delay)
    app.state.settings = settings
    app.state.catalogue = catalogue
    app.state.registry = registry
    app.state.gateway = Gateway(registry, catalogue)

    app.include_router(scripts_router.router)
    app.include_router(health_router.router)
    app.include_router(ws_router.router)

    # Mount the frontend (index.html etc.) at root path, after the API routes.
    if settings.static_dir.is_dir():
        app.mount("/", NoCacheStaticFiles(directory=str(settings.static_dir), html=True), name="frontend")
    else:
        logger.info("No static directory at %s; serving API only", settings.static_dir)

    return app


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = create_app(settings)
    logger.info("Table Read running at http://localhost:%d", settings.port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        ws_ping_interval=settings.ws_ping_interval,
        ws_ping_timeout=settings.ws_ping_timeout,
    )


__all__ = ["create_app", "main", "NoCacheStaticFiles"]
