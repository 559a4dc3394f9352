from functools import lru_cache
from typing import List, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # APP
    APP_NAME: str = "Delivery BI API"
    ENV: str = "development"
    DEBUG: bool = True

    # Base de datos (Supabase / Postgres con tablas CRP Portal)
    DATABASE_URL: str

    # JWT
    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_SHARE_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_MINUTES: int = 15
    REFRESH_TOKEN_MINUTES: int = 60 * 24 * 7
    SHARE_LINK_BASE_URL: str = "http://localhost:5173"

    # CORS (string separada por comas en el .env)
    CORS_ORIGINS: Optional[str] = None

    # CACHE HTTP
    CACHE_MAX_AGE: int = 60
    CACHE_SWR: int = 300

    # IA / Gemini
    GOOGLE_API_KEY: Optional[str] = None
    GEMINI_MODEL_NAME: str = "gemini-2.5-flash"
    GEMINI_TEMPERATURE: float = 0.2
    GEMINI_MAX_OUTPUT_TOKENS: int = 1024

    # Alertas diarias
    SLACK_WEBHOOK_URL: Optional[str] = None
    CRON_SECRET: Optional[str] = None
    ALERT_ORDERS_THRESHOLD: float = -20

    # Controlling
    SPARKLINE_WEEKS: int = 8

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: Optional[str] = None

    @field_validator("JWT_SECRET", "JWT_REFRESH_SECRET", "JWT_SHARE_SECRET")
    @classmethod
    def _jwt_min_length(cls, v: str) -> str:
        if v is None or len(v) < 32:
            raise ValueError("El secreto JWT debe tener al menos 32 caracteres.")
        return v

    @field_validator("SPARKLINE_WEEKS")
    @classmethod
    def _positive_weeks(cls, v: int) -> int:
        if v < 1:
            raise ValueError("SPARKLINE_WEEKS debe ser >= 1.")
        return v

    @property
    def CORS_ORIGINS_LIST(self) -> List[str]:
        v = self.CORS_ORIGINS
        if not v:
            return []
        return [s.strip() for s in v.split(",") if s.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
