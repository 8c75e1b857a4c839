from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # App
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]

    # LLM
    llm_api_key: str = ""
    llm_model: str = "gemini-1.5-pro"  # "gpt-*" | "claude-*" | "gemini-*"
    llm_max_tokens: int = Field(default=2048, ge=1, le=4000)
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_timeout: float = Field(default=30.0, gt=0)  # 초

    # Camera
    camera_index: int = 0
    camera_width: int = Field(default=1280, gt=0)
    camera_height: int = Field(default=720, gt=0)
    camera_frame_rate: int = Field(default=30, ge=1, le=60)

    # Scheduler
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_regions_per_frame: int = Field(default=3, ge=1)
    min_text_length: int = Field(default=10, ge=0)
    dedupe_unchanged_text: bool = False
    attach_snapshot: bool = False
    tracking_iou_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    region_stale_after: float = Field(default=1.0, gt=0)  # 초

    # Transport
    retry_max: int = Field(default=3, ge=0)
    backoff_base: float = Field(default=1.0, ge=0)  # 초
    backoff_cap: float = Field(default=30.0, ge=0)  # 초
    connectivity_probe_url: str = ""
    connectivity_probe_interval: float = Field(default=10.0, gt=0)  # 초

    @property
    def frame_interval(self) -> float:
        """tick 최소 간격 (초)"""
        return 1.0 / self.camera_frame_rate


@lru_cache
def get_settings() -> Settings:
    return Settings()
