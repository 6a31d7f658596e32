"""
SpriteFlow worker entry point.

  uvicorn spriteflow.main:app --port 8080
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from . import metrics
from .config import Settings
from .gemini import GeminiImageClient
from .pipeline import GenerationService, GraphStore, ProviderGateway
from .pipeline.frames import FrameExtractor
from .pipeline.routes import generation_router, graph_router
from .removebg import RemoveBgClient
from .veo import VeoClient

logger = logging.getLogger(__name__)


def build_service(settings: Settings) -> GenerationService:
    """Wire the real providers into a service over a fresh graph."""
    gateway = ProviderGateway(
        image_provider=GeminiImageClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_image_model,
            temperature=settings.gemini_temperature,
        ),
        video_provider=VeoClient(api_key=settings.gemini_api_key),
        frame_extractor=FrameExtractor(ffmpeg_path=settings.ffmpeg_path),
        video_models=settings.veo_models,
        preferred_model=settings.veo_model,
        discover_models=settings.veo_discover_models,
        poll_interval=settings.veo_poll_interval,
        max_polls=settings.veo_max_polls,
        duration_seconds=settings.veo_duration_seconds,
        aspect_ratio=settings.veo_aspect_ratio,
        sampling_rate=settings.frame_sampling_fps,
    )
    return GenerationService(GraphStore(), gateway)


def create_app(
    service: Optional[GenerationService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Worker starting up...")
        if getattr(app.state, "service", None) is None:
            app.state.service = build_service(settings)
        yield
        pending = app.state.service.pending
        logger.info(f"Worker shutting down ({pending} generations still running)")

    app = FastAPI(title="SpriteFlow", lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service
    app.state.removebg = RemoveBgClient(api_key=settings.removebg_api_key)

    app.include_router(graph_router)
    app.include_router(generation_router)

    @app.get("/health")
    def health_check():
        """Verify worker is running and keys are configured."""
        return {
            "status": "ok",
            "gemini_api_key_set": bool(settings.gemini_api_key),
            "removebg_api_key_set": bool(settings.removebg_api_key),
            "video_models": settings.veo_models,
        }

    @app.get("/metrics")
    def metrics_endpoint():
        """Return a snapshot of all worker metrics."""
        return metrics.get_snapshot()

    return app


_settings = Settings.from_env()
logging.basicConfig(
    level=getattr(logging, _settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings=_settings)


if __name__ == "__main__":
    uvicorn.run("spriteflow.main:app", host="0.0.0.0", port=_settings.port)
