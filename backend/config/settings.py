from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # API Settings
    API_V1_STR: str = "/api"
    PROJECT_NAME: str = "SnapEdit AI"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server Settings
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # Command classification (OpenAI-compatible chat completions)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    CLASSIFIER_MODEL: str = "gpt-4o"
    CLASSIFIER_MAX_TOKENS: int = 300
    CLASSIFIER_TIMEOUT_SECONDS: float = 30.0

    # Image services (Replicate)
    REPLICATE_API_TOKEN: Optional[str] = None
    REPLICATE_BASE_URL: str = "https://api.replicate.com/v1"
    BACKGROUND_REMOVAL_VERSION: str = "fb8af171cfa1616ddcf1242c093f9c46bcada5ad4cf6f2fbe8b81b330ec5c003"
    GENERATIVE_EDIT_VERSION: str = "39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b"
    GENERATIVE_STRENGTH: float = 0.7
    IMAGE_PROCESSING_TIMEOUT: float = 120.0
    PREDICTION_POLL_INTERVAL: float = 1.0

    # Upstream retries (transient failures only)
    UPSTREAM_MAX_ATTEMPTS: int = 3
    UPSTREAM_BACKOFF_SECONDS: float = 0.5

    # Request limits
    MAX_COMMAND_LENGTH: int = 500

    # API Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 10
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0
    RATE_LIMIT_MAX_CLIENTS: int = 10000

    # CORS Settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173"
    ]

    def missing_credentials(self) -> List[str]:
        """Return the names of external-service credentials that are not set."""
        required_fields = ["OPENAI_API_KEY", "REPLICATE_API_TOKEN"]
        return [field for field in required_fields if not getattr(self, field, None)]

# Global settings instance
settings = Settings()
