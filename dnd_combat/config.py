"""Application configuration using environment variables."""
import os
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # API Keys
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")

    # Narration
    AI_MODEL: str = os.getenv("AI_MODEL", "claude-sonnet-4-20250514")
    NARRATION_ENABLED: bool = os.getenv("NARRATION_ENABLED", "true").lower() == "true"
    NARRATION_MAX_TOKENS: int = int(os.getenv("NARRATION_MAX_TOKENS", "150"))

    # Server
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # CORS - Frontend URL
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # Dice limits
    MAX_DICE_COUNT: int = int(os.getenv("MAX_DICE_COUNT", "100"))
    MAX_DIE_SIZE: int = int(os.getenv("MAX_DIE_SIZE", "1000"))
    CRITICAL_SUCCESS: int = int(os.getenv("CRITICAL_SUCCESS", "20"))
    CRITICAL_FAILURE: int = int(os.getenv("CRITICAL_FAILURE", "1"))

    # Combat rules
    UNARMED_DAMAGE: str = os.getenv("UNARMED_DAMAGE", "1d1")
    UNARMED_DAMAGE_TYPE: str = os.getenv("UNARMED_DAMAGE_TYPE", "bludgeoning")
    DEFAULT_SPEED: int = int(os.getenv("DEFAULT_SPEED", "30"))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
