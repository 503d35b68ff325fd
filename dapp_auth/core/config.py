from functools import lru_cache

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(override=False)


class Settings(BaseSettings):
    PROJECT_NAME: str = "dApp Auth API"
    VERSION: str = "1.0.0"
    # Application settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    NODE_ENV: str = "development"
    CORS_ORIGINS: str = "*"

    # Token signing
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 24 * 3600  # 24 hours
    CHALLENGE_EXPIRY_SECONDS: int = 300  # 5 minutes

    # Storage backends
    POSTGRES_URL: str
    MONGODB_URL: str | None = None
    MONGODB_DATABASE: str = "dapp"
    REDIS_URL: str | None = None
    REDIS_MAX_CONNECTIONS: int = 20

    # Mail transport (consumed by the mailer, only reported here)
    MAIL_HOST: str = "mailpit"
    MAIL_PORT: int = 1025
    MAIL_FROM: str | None = None

    # Request handling
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    STARTUP_RETRIES: int = 3

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_development(self) -> bool:
        return self.NODE_ENV.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.NODE_ENV.lower() == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Raises pydantic.ValidationError when a required variable is missing.
    """
    return Settings()
