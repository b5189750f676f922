from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_ENV: str = "development"
    DATABASE_URL: str = "sqlite:///./qcore.db"

    # Token signing / password hashing
    ACCESS_TOKEN_SECRET: str = "changeme-secret-key"
    ACCESS_TOKEN_EXPIRES_MINUTES: int = 2 * 24 * 60
    PASSWORD_HASH_ITERATIONS: int = 100_000

    # Empty LOG_LEVEL means: DEBUG outside production, INFO in production.
    LOG_LEVEL: str = ""
    LOG_FORMAT: str = "json"
    LOG_DIR: str = "logs"

    # Comma-separated allowed origins, or "*" to allow all.
    CORS_ORIGINS: str = "*"

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    PORT_RETRIES: int = 5

    RATE_LIMIT: str = "100/15 minutes"
    RATE_LIMIT_ENABLED: bool = True
    SLOW_REQUEST_MS: int = 500

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() == "production"

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL.strip():
            return self.LOG_LEVEL.strip().upper()
        return "INFO" if self.is_production else "DEBUG"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
