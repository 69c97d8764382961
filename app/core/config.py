from __future__ import annotations

import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "4Planet"
    ENV: str = "dev"
    DATABASE_URL: str | None = None
    BASE_URL: str = "http://localhost:8000"

    # CloudPayments
    CLOUDPAYMENTS_PUBLIC_ID: str = ""
    CLOUDPAYMENTS_SECRET: str = ""  # Empty secret disables webhook signature checks (dev only)
    WEBHOOK_SIGNATURE_HEADER: str = "Content-HMAC"
    # When False, deliveries with a bad signature are still settled and only flagged in the log
    WEBHOOK_REJECT_INVALID_SIGNATURE: bool = True

    JWT_SECRET: str = "change_me"
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin"

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    WEBHOOK_RATE_LIMIT: str = "120/minute"

    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"
    SENTRY_DSN: str | None = None

    @field_validator("CLOUDPAYMENTS_SECRET", "CLOUDPAYMENTS_PUBLIC_ID", mode="before")
    @classmethod
    def strip_credentials(cls, v):
        """Treat whitespace-only credentials as unset."""
        if v is None:
            return ""
        return str(v).strip()

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        # Convert Heroku's postgres:// URL to postgresql://
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        required_in_prod = (
            "DATABASE_URL",
            "CLOUDPAYMENTS_PUBLIC_ID",
            "CLOUDPAYMENTS_SECRET",  # Signature bypass must never be reachable in prod
            "JWT_SECRET",
            "ADMIN_PASSWORD",
        )
        if self.ENV.lower() == "prod":
            missing = [name for name in required_in_prod if not getattr(self, name)]
            default_violations: list[str] = []
            if self.JWT_SECRET == "change_me":
                default_violations.append("JWT_SECRET uses default placeholder")
            if self.ADMIN_PASSWORD == "admin":
                default_violations.append("ADMIN_PASSWORD uses default placeholder")
            if missing:
                raise ValueError(f"Missing required production settings: {', '.join(missing)}")
            if default_violations:
                raise ValueError("Insecure default secrets in production: " + ", ".join(default_violations))
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./storage/dev.db"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    DATABASE_URL: str = "sqlite:///:memory:"
    CLOUDPAYMENTS_PUBLIC_ID: str = "test-public-id"
    CLOUDPAYMENTS_SECRET: str = "test-cloudpayments-secret"
    JWT_SECRET: str = "test-jwt-secret"
    RATE_LIMIT_ENABLED: bool = False


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://4planet.org",
        "https://www.4planet.org",
    ]
    CORS_ALLOW_CREDENTIALS: bool = True
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()
