"""
Application settings.
Reads configuration from environment variables (and a .env file, if present).
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Load .env only once here
load_dotenv()


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass
class Settings:
    """
    Runtime configuration for the gateway and its services.

    Build it with `Settings.from_env()` in production; tests construct it
    directly with the fields they care about.
    """

    jwt_secret: str
    database_url: Optional[str] = None
    token_expiration_minutes: int = 1440  # Default 24 hours
    app_env: str = "production"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    upload_folder: str = "uploads"
    max_image_bytes: int = 5 * 1024 * 1024
    db_pool_min: int = 1
    db_pool_max: int = 10
    port: int = 5000
    log_level: str = "INFO"

    @property
    def development(self) -> bool:
        return self.app_env.lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Load settings from the process environment.

        Raises:
            RuntimeError: If JWT_SECRET is not set.
        """
        jwt_secret = os.getenv("JWT_SECRET")
        if not jwt_secret:
            raise RuntimeError("JWT_SECRET is missing. Set it in .env")

        return cls(
            jwt_secret=jwt_secret,
            database_url=os.getenv("DATABASE_URL"),
            token_expiration_minutes=int(os.getenv("TOKEN_EXPIRATION_MINUTES", 1440)),
            app_env=os.getenv("APP_ENV", "production"),
            cors_origins=_split_origins(os.getenv("FRONTEND_URL", "http://localhost:5173")),
            upload_folder=os.getenv("UPLOAD_FOLDER", "uploads"),
            max_image_bytes=int(float(os.getenv("MAX_IMAGE_MB", 5)) * 1024 * 1024),
            db_pool_min=int(os.getenv("DB_POOL_MIN", 1)),
            db_pool_max=int(os.getenv("DB_POOL_MAX", 10)),
            port=int(os.getenv("PORT", 5000)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
