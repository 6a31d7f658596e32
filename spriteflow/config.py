"""
Runtime configuration read from the environment (and a local .env file).
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .pipeline.gateway import (
    DEFAULT_VIDEO_MODELS,
    MAX_POLLS,
    POLL_INTERVAL,
    VIDEO_ASPECT_RATIO,
    VIDEO_DURATION_SECONDS,
)
from .pipeline.frames import DEFAULT_SAMPLING_RATE

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Optional[list[str]]:
    value = os.getenv(name, "")
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None


class Settings(BaseModel):
    gemini_api_key: str = ""
    gemini_image_model: str = "gemini-2.5-flash-image"
    gemini_temperature: float = 0.4

    veo_model: Optional[str] = None
    veo_models: list[str] = Field(default_factory=lambda: list(DEFAULT_VIDEO_MODELS))
    veo_discover_models: bool = True
    veo_poll_interval: float = Field(default=POLL_INTERVAL, gt=0)
    veo_max_polls: int = Field(default=MAX_POLLS, gt=0)
    veo_duration_seconds: int = VIDEO_DURATION_SECONDS
    veo_aspect_ratio: str = VIDEO_ASPECT_RATIO

    frame_sampling_fps: float = Field(default=DEFAULT_SAMPLING_RATE, gt=0)
    ffmpeg_path: str = "ffmpeg"

    removebg_api_key: str = ""

    log_level: str = "INFO"
    port: int = 8080

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            "gemini_api_key": os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY", ""),
            "gemini_image_model": os.getenv("GEMINI_IMAGE_MODEL"),
            "gemini_temperature": os.getenv("GEMINI_TEMPERATURE"),
            "veo_model": os.getenv("VEO_MODEL") or None,
            "veo_models": _env_list("VEO_MODELS"),
            "veo_discover_models": _env_bool("VEO_DISCOVER_MODELS", True),
            "veo_poll_interval": os.getenv("VEO_POLL_INTERVAL"),
            "veo_max_polls": os.getenv("VEO_MAX_POLLS"),
            "veo_duration_seconds": os.getenv("VEO_DURATION_SECONDS"),
            "veo_aspect_ratio": os.getenv("VEO_ASPECT_RATIO"),
            "frame_sampling_fps": os.getenv("FRAME_SAMPLING_FPS"),
            "ffmpeg_path": os.getenv("FFMPEG_PATH"),
            "removebg_api_key": os.getenv("REMOVEBG_API_KEY", ""),
            "log_level": os.getenv("LOG_LEVEL"),
            "port": os.getenv("PORT"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})
