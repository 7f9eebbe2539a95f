from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App settings loaded from environment variables (.env)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    APP_NAME: str = "PELAKOR"
    ENV: str = "dev"

    # BACKEND API
    API_BASE_URL: str = Field(
        default="",
        validation_alias=AliasChoices("API_BASE_URL", "EXPO_PUBLIC_API_URL"),
    )
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # SECURITY
    SECRET_KEY: str = "CHANGE_ME"
    COOKIE_SECURE: bool = False   # set True behind HTTPS
    COOKIE_SAMESITE: str = "lax"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 12  # 12h

    # ARCHIVE EXPORT
    INSTANSI_NAME: str = "PEMERINTAH KABUPATEN OGAN ILIR"
    LOGO_PATH: str = ""
    EXPORT_DIR: str = "./exports"

    # CLI
    SESSION_FILE: str = "~/.pelakor/session.json"
    LOG_LEVEL: str = "INFO"

    def api_base_url(self) -> str:
        return (self.API_BASE_URL or "").strip().rstrip("/")


PACKAGE_DIR = Path(__file__).resolve().parent.parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"
STATIC_DIR = PACKAGE_DIR / "static"

settings = Settings()
