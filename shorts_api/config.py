from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Credentials ---
    groq_api_key: SecretStr = SecretStr("")
    openai_api_key: SecretStr = SecretStr("")
    elevenlabs_api_key: SecretStr = SecretStr("")
    gemini_api_key: SecretStr = SecretStr("")
    api_token: SecretStr = Field(default=SecretStr("change-me"), description="Bearer token guarding /api/jobs")

    # --- Storage ---
    uploads_dir: str = Field(default="./uploads", description="Per-job working directories")
    outputs_dir: str = Field(default="./outputs", description="Final videos, keyed by job id")
    job_store_backend: Literal["memory", "database"] = "memory"
    database_url: SecretStr = SecretStr("sqlite+aiosqlite:///./shorts.db")

    # --- Background execution ---
    task_backend: Literal["local", "arq"] = "local"
    max_concurrent_jobs: int = Field(default=2, ge=1)
    redis_url: str = "redis://localhost:6379/0"
    shutdown_timeout: Optional[float] = Field(
        default=600, gt=0, description="Seconds to wait for local jobs on shutdown; None waits forever"
    )

    # --- Providers ---
    script_model: str = "llama-3.1-8b-instant"
    image_model: str = "dall-e-3"
    gemini_model: str = "gemini-1.5-flash"
    voice_provider: Literal["elevenlabs", "gtts"] = "elevenlabs"
    elevenlabs_voice_id: str = "EXAVITQu4vr4xnSDxMaL"
    elevenlabs_model_id: str = "eleven_monolingual_v1"
    http_timeout: int = Field(default=120, ge=1, description="Seconds per provider HTTP call")

    # --- Encoder ---
    ffmpeg_binary: str = "ffmpeg"
    ffmpeg_timeout: int = Field(default=1800, ge=1, description="Seconds per ffmpeg invocation")

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def missing_credentials(self) -> list:
        """Names of provider keys that are empty."""
        required = {
            "GROQ_API_KEY": self.groq_api_key,
            "OPENAI_API_KEY": self.openai_api_key,
            "GEMINI_API_KEY": self.gemini_api_key,
        }
        if self.voice_provider == "elevenlabs":
            required["ELEVENLABS_API_KEY"] = self.elevenlabs_api_key
        return [name for name, value in required.items() if not value.get_secret_value().strip()]

    @model_validator(mode="after")
    def check_backends(self) -> "Settings":
        # ARQ workers run in other processes and only see a shared store
        if self.task_backend == "arq" and self.job_store_backend != "database":
            raise ValueError("TASK_BACKEND=arq requires JOB_STORE_BACKEND=database")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
