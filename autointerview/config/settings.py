"""
Application settings and configuration management.

Uses pydantic-settings for environment variable loading.
"""

from functools import lru_cache

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "AutoInterview"
    app_version: str = "0.1.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Remote interview API (question source + answer sink)
    api_base_url: str = "https://ai-interview-urf8.onrender.com"
    http_timeout_seconds: float = 60.0
    upload_drain_timeout_seconds: float = 30.0
    fallback_question: str = "Tell me about yourself and your experience."

    # Session timing
    auto_start_delay_seconds: int = Field(default=10, ge=0)
    answer_time_limit_seconds: int = Field(default=60, ge=1)
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    settle_delay_seconds: float = Field(default=1.0, ge=0)

    # TTS configuration
    narration_enabled: bool = True
    tts_voice_language: str = "en"
    tts_voice_gender: str = "Female"
    tts_preferred_voices_str: str = Field(
        default="Samantha",
        validation_alias="tts_preferred_voices"
    )
    tts_default_voice: str = "en-US-JennyNeural"
    tts_words_per_minute: int = Field(default=150, gt=0)

    # Capture device
    capture_device: str | None = None  # None = system default input
    capture_sample_rate: int = 16000
    capture_channels: int = 1
    capture_block_size: int = 1024
    capture_video: bool = True  # False = microphone only
    capture_camera_index: int = 0
    capture_video_fps: float = Field(default=15.0, gt=0)

    # CORS - stored as comma-separated string in env
    cors_origins_str: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        validation_alias="cors_origins"
    )

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @computed_field
    @property
    def tts_preferred_voices(self) -> list[str]:
        """Parse preferred voice name fragments from comma-separated string."""
        return [name.strip() for name in self.tts_preferred_voices_str.split(",") if name.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
