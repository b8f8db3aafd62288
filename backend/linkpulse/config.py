from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Environment
    ENV: str = "development"
    LOG_LEVEL: Optional[str] = None  # defaults to INFO in production, DEBUG otherwise
    LOG_FORMAT: Optional[str] = None  # "json" or "console"

    # Database
    DATABASE_URL: str = "sqlite:///./linkpulse.db"

    # Security
    SECRET_KEY: str = "linkpulse-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Short codes
    SHORT_CODE_LENGTH: int = 7
    SHORT_CODE_MAX_ATTEMPTS: int = 100

    # Domain
    BASE_URL: str = "http://localhost:8000"

    # Geolocation
    GEO_LOOKUP_TIMEOUT: float = 5.0  # seconds, per provider attempt
    IPGEOLOCATION_KEY: Optional[str] = None
    IPSTACK_KEY: Optional[str] = None

    # Worker pools
    ANALYTICS_MAX_WORKERS: int = 7
    RECORDER_MAX_WORKERS: int = 8

    class Config:
        env_file = ".env"

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


settings = Settings()
