#!/usr/bin/env python3
"""
Surface Placement Service - Surface detection and keyboard placement for XR
FastAPI host for the detection engine with a live event stream
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router as api_router, set_services
from .core.detection_engine import SurfaceDetectionEngine
from .core.detection_service import DetectionService, MeshProvider
from .core.sample_ingestor import SceneGeometry
from .utils.config import DetectionSettings, get_settings
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(settings: Optional[DetectionSettings] = None,
               scene: Optional[SceneGeometry] = None,
               mesh_provider: Optional[MeshProvider] = None) -> FastAPI:
    """Build the service application around a fresh engine"""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management"""
        logger.info("🚀 Starting Surface Placement Service...")
        service = None
        try:
            engine = SurfaceDetectionEngine(settings=settings, scene=scene)
            service = DetectionService(engine, mesh_provider=mesh_provider)
            await service.initialize()

            app.state.detection_service = service
            set_services(service)

            logger.info("✅ Surface Placement Service initialized successfully")
            yield

        except Exception as e:
            logger.error(f"❌ Failed to initialize Surface Placement Service: {e}")
            raise
        finally:
            logger.info("🛑 Shutting down Surface Placement Service...")
            set_services(None)
            if service:
                await service.shutdown()

    app = FastAPI(
        title="Surface Placement Service",
        description="Spatial surface detection and placement lifecycle for XR keyboards",
        version="1.0.0",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        service = getattr(app.state, "detection_service", None)
        healthy = service is not None and await service.health_check()
        if healthy:
            return {
                "status": "healthy",
                "service": "surface-placement-service",
                "version": "1.0.0",
                "timestamp": datetime.utcnow().isoformat(),
            }
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "service": "surface-placement-service",
                "timestamp": datetime.utcnow().isoformat(),
            }
        )

    @app.get("/metrics")
    async def metrics():
        """Detection metrics endpoint"""
        service = getattr(app.state, "detection_service", None)
        if service is None:
            return JSONResponse(status_code=503, content={"error": "Detection service not initialized"})
        return {
            "service": "surface-placement-service",
            "timestamp": datetime.utcnow().isoformat(),
            "metrics": await service.get_metrics(),
        }

    @app.get("/")
    async def root():
        """Root endpoint with service information"""
        return {
            "service": "Surface Placement Service",
            "description": "Stable surfaces from noisy AR sensing, with placed virtual keyboards",
            "version": "1.0.0",
            "endpoints": {
                "detection": ["/api/v1/detection/toggle", "/api/v1/detection/status",
                              "/api/v1/session/start", "/api/v1/session/end"],
                "sensors": ["/api/v1/sensors/hit-test", "/api/v1/sensors/mesh",
                            "/api/v1/sensors/mesh/request", "/api/v1/observer/pose"],
                "registry": ["/api/v1/surfaces", "/api/v1/placements"],
                "events": "/api/v1/events",
            },
            "docs": "/docs" if settings.is_development else "disabled",
            "health": "/health",
            "metrics": "/metrics"
        }

    return app


def run():
    """Console entry point"""
    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    run()
