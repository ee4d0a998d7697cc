import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# pipeline_board/core/config.py -> repo root
REPO_ROOT = Path(__file__).resolve().parents[2]


def _env_files() -> list[str]:
    env = os.getenv("PB_ENVIRONMENT", "").strip().lower()
    override = f".env.{env}" if env and env != "development" else ".env.local"
    return [str(REPO_ROOT / ".env"), str(REPO_ROOT / override)]


class Settings(BaseSettings):
    app_name: str = "Pipeline Board"
    environment: str = "development"
    log_level: str = "INFO"

    backend_base_url: str = "https://localhost:7070"
    backend_api_token: str = ""
    # Unset means the HTTP client's own default timeout.
    backend_timeout_seconds: Optional[float] = None
    backend_verify_tls: bool = True

    search_min_length: int = 0

    model_config = SettingsConfigDict(env_prefix="PB_", env_file=_env_files(), extra="ignore")


settings = Settings()
