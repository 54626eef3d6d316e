from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file for convenience.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    log_level: str = "INFO"

    # Keys
    gemini_api_key: str | None = None

    # Models
    gemini_image_model: str = "gemini-2.5-flash-image"

    # Mask editing
    mask_history_capacity: int = 10
    default_brush_size: float = 40.0
    mask_stroke_rgba: tuple[int, int, int, int] = (255, 255, 255, 255)
    max_sessions: int = 64

    # Export
    jpeg_quality: int = 90
    scale_presets: dict[str, float] = {
        "Original": 1.0,
        "Large": 0.5,
        "Medium": 0.25,
        "Small": 0.125,
    }

    # Watermark defaults (mirrors the download dialog)
    watermark_default_text: str = "© Vixel AI"
    watermark_default_opacity: float = 0.7
    watermark_default_position: str = "bottom-right"
    watermark_default_size: float = 0.2
    watermark_margin_ratio: float = 0.05


settings = Settings()
