"""
HTTP configuration channel and status API for the auto-balance service
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.responses import Response
from prometheus_fastapi_instrumentator import Instrumentator

from .config import ReconfigureRequest
from .errors import InvalidConfiguration
from .service import AutoBalanceService

logger = logging.getLogger(__name__)


def create_router(service: AutoBalanceService) -> APIRouter:
    router = APIRouter(prefix="/api/v1/autobalance", tags=["autobalance"])

    @router.get("/status")
    def get_status():
        return service.get_status()

    @router.get("/config")
    def get_config():
        return service.config_surface.snapshot().to_dict()

    @router.put("/config")
    def put_config(request: ReconfigureRequest):
        """Replace the whole runtime configuration"""
        try:
            config = service.reconfigure(request)
        except InvalidConfiguration as e:
            raise HTTPException(status_code=422, detail=str(e))
        return config.to_dict()

    @router.patch("/config")
    def patch_config(updates: Dict[str, Any]):
        """Update selected runtime configuration fields"""
        try:
            config = service.config_surface.update(**updates)
        except InvalidConfiguration as e:
            raise HTTPException(status_code=422, detail=str(e))
        return config.to_dict()

    @router.get("/diagnostics/{channel}")
    def get_diagnostics(channel: str):
        if channel not in service.diagnostics.CHANNELS:
            raise HTTPException(status_code=404, detail=f"Unknown channel: {channel}")

        jpeg = service.diagnostics.latest_jpeg(channel)
        if jpeg is None:
            raise HTTPException(status_code=404, detail=f"No {channel} image available")
        return Response(content=jpeg, media_type="image/jpeg")

    return router


def create_app(service: AutoBalanceService) -> FastAPI:
    app = FastAPI(
        title="Camera Auto-Balance API",
        description="Runtime configuration and status for closed-loop auto exposure",
        version="1.0.0",
    )
    app.include_router(create_router(service))
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "running": service.running}

    @app.on_event("shutdown")
    def shutdown():
        logger.info("API shutting down, stopping autobalance")
        service.stop()

    return app
