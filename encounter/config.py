"""
Runtime settings for the Trait Encounter backend.

Values come from the process environment, with a local `.env` file loaded
first. Catalog and model credentials are optional at import time: a source
without credentials reports a failed fetch instead of crashing the app.
"""
import logging
import os
from typing import Dict, List
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Settings:
    """Environment-backed settings. Read once at import."""

    # Supabase project
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_PUBLISHABLE_KEY: str = os.getenv("SUPABASE_PUBLISHABLE_KEY", "")
    # Service role key, only for the cross-user product search cache
    SUPABASE_SECRET_KEY: str = os.getenv("SUPABASE_SECRET_KEY", "")

    # Gemini (search intent + per-item explanations)
    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    LLM_TIMEOUT_SECONDS: float = _env_float("LLM_TIMEOUT_SECONDS", 30)

    # Rakuten Web Service (marketplace + book marketplace)
    RAKUTEN_APPLICATION_ID: str = os.getenv("RAKUTEN_APPLICATION_ID", "")
    # When set, the newer openapi.rakuten.co.jp endpoint is used
    RAKUTEN_ACCESS_KEY: str = os.getenv("RAKUTEN_ACCESS_KEY", "")
    RAKUTEN_AFFILIATE_ID: str = os.getenv("RAKUTEN_AFFILIATE_ID", "")
    RAKUTEN_REFERER: str = os.getenv("RAKUTEN_REFERER", "https://mecraft.life/")

    # TMDb (movie metadata)
    TMDB_BEARER_TOKEN: str = os.getenv("TMDB_BEARER_TOKEN", "")

    # Timeout applied to every catalog HTTP call
    CATALOG_TIMEOUT_SECONDS: float = _env_float("CATALOG_TIMEOUT_SECONDS", 10)

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Comma separated, only honoured in production/staging
    CORS_ORIGINS: List[str] = os.getenv(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000"
    ).split(",")

    @property
    def SUPABASE_JWKS_URL(self) -> str:
        """Public signing keys for access token verification."""
        if not self.SUPABASE_URL:
            return ""
        return f"{self.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"

    def missing_required(self) -> List[str]:
        """Names of settings without which no request can succeed."""
        required: Dict[str, str] = {
            "SUPABASE_URL": self.SUPABASE_URL,
            "SUPABASE_PUBLISHABLE_KEY": self.SUPABASE_PUBLISHABLE_KEY,
            "GOOGLE_API_KEY": self.GOOGLE_API_KEY,
        }
        return [name for name, value in required.items() if not value]

    def missing_catalog_credentials(self) -> List[str]:
        """Catalog credentials that are unset; the matching sources will fail soft."""
        catalog: Dict[str, str] = {
            "RAKUTEN_APPLICATION_ID": self.RAKUTEN_APPLICATION_ID,
            "TMDB_BEARER_TOKEN": self.TMDB_BEARER_TOKEN,
        }
        return [name for name, value in catalog.items() if not value]

    def validate(self) -> None:
        """
        Raises:
            ValueError: a required setting is missing
        """
        missing = self.missing_required()
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        for name in self.missing_catalog_credentials():
            logger.warning(f"{name} is not set; that catalog source will return no items")

    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def is_staging(self) -> bool:
        return self.ENVIRONMENT.lower() == "staging"

    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


settings = Settings()

# Tests set VALIDATE_CONFIG=false
if os.getenv("VALIDATE_CONFIG", "true").lower() == "true":
    try:
        settings.validate()
    except ValueError as e:
        if not settings.is_development():
            raise
        logger.warning(f"{e}. The app will start but requests will fail until .env is configured.")
