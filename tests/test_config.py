"""Tests for Settings.from_env."""

from spriteflow.config import Settings
from spriteflow.pipeline.gateway import DEFAULT_VIDEO_MODELS


def test_defaults(monkeypatch):
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "VEO_MODELS", "VEO_MODEL", "FRAME_SAMPLING_FPS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.gemini_api_key == ""
    assert settings.veo_models == DEFAULT_VIDEO_MODELS
    assert settings.veo_model is None
    assert settings.frame_sampling_fps == 8.0


def test_overrides(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "abc")
    monkeypatch.setenv("VEO_MODELS", "veo-a, veo-b,,")
    monkeypatch.setenv("VEO_MODEL", "veo-b")
    monkeypatch.setenv("VEO_DISCOVER_MODELS", "false")
    monkeypatch.setenv("VEO_MAX_POLLS", "10")
    monkeypatch.setenv("FRAME_SAMPLING_FPS", "12.5")
    monkeypatch.setenv("PORT", "9000")

    settings = Settings.from_env()

    assert settings.gemini_api_key == "abc"
    assert settings.veo_models == ["veo-a", "veo-b"]
    assert settings.veo_model == "veo-b"
    assert settings.veo_discover_models is False
    assert settings.veo_max_polls == 10
    assert settings.frame_sampling_fps == 12.5
    assert settings.port == 9000


def test_google_api_key_fallback(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    assert Settings.from_env().gemini_api_key == "google-key"
