"""Application configuration settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Form Field Detection"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"
    max_upload_bytes: int = 20 * 1024 * 1024  # 20 MB

    # Rendering
    render_scale: float = 3.0  # Detection constants are tuned for 3x renders

    # Field Detection Thresholds
    detection_confidence_threshold: float = 0.3
    detection_merge_threshold: float = 5.0
    page_timeout_seconds: float = 30.0

    # Evaluation
    evaluation_iou_threshold: float = 0.5
    dataset_path: Path = Path("./test")
    annotation_extensions: list[str] = [
        ".groundtruth.json",
        ".annotations.json",
        ".json",
    ]
    reports_path: Path = Path("./reports")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
