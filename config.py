from __future__ import annotations

import os


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except ValueError:
        return default


def _env_csv(name: str, default: str = "") -> list[str]:
    raw = _env_str(name, default)
    return [p.strip() for p in raw.split(",") if p.strip()]


class Config:
    def __init__(self):
        self.APP_ENV = _env_str("APP_ENV", "development").lower()
        self.IS_PRODUCTION = self.APP_ENV in {"production", "prod"}
        self.APP_VERSION = _env_str("APP_VERSION", "1.0.0")

        self.HOST = _env_str("HOST", "0.0.0.0")
        self.PORT = _env_int("PORT", 3001)

        self.DATABASE_URL = _env_str("DATABASE_URL", "sqlite:///./hireflow.db")
        self.LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()
        self.ALLOWED_ORIGINS = _env_csv("ALLOWED_ORIGINS", "http://localhost:5173")

        self.SESSION_TTL_MINUTES = max(5, _env_int("SESSION_TTL_MINUTES", 24 * 60))
        self.PASSWORD_MIN_LENGTH = max(1, _env_int("PASSWORD_MIN_LENGTH", 6))

        self.UPLOAD_DIR = _env_str("UPLOAD_DIR", "./uploads")
        self.MAX_UPLOAD_BYTES = max(1, _env_int("MAX_FILE_SIZE", 10 * 1024 * 1024))

        # http: POST to MAIL_API_URL, log: write to the "mailer" logger only, disabled: always fail.
        default_mail_mode = "http" if self.IS_PRODUCTION else "log"
        self.MAIL_MODE = _env_str("MAIL_MODE", default_mail_mode).lower()
        self.MAIL_API_URL = _env_str("MAIL_API_URL")
        self.MAIL_API_KEY = _env_str("MAIL_API_KEY")
        self.MAIL_FROM = _env_str("MAIL_FROM", "no-reply@localhost")
        self.MAIL_TIMEOUT_SECONDS = max(1, _env_int("MAIL_TIMEOUT_SECONDS", 15))
        self.COMPANY_NAME = _env_str("COMPANY_NAME", "Your Company")

        self.RATE_LIMIT_LOGIN = max(1, _env_int("RATE_LIMIT_LOGIN", 20))
        self.RATE_LIMIT_GLOBAL = max(1, _env_int("RATE_LIMIT_GLOBAL", 600))

        self.ENABLE_COMPRESSION = _env_str("ENABLE_COMPRESSION", "1").lower() in {"1", "true", "yes", "y", "on"}
        self.COMPRESSION_MIN_SIZE = max(0, _env_int("COMPRESSION_MIN_SIZE", 1024))
        self.COMPRESSION_LEVEL = max(1, min(9, _env_int("COMPRESSION_LEVEL", 6)))

        self.SEED_ADMIN_USERNAME = _env_str("SEED_ADMIN_USERNAME")
        self.SEED_ADMIN_EMAIL = _env_str("SEED_ADMIN_EMAIL")
        self.SEED_ADMIN_PASSWORD = _env_str("SEED_ADMIN_PASSWORD")

    def validate(self) -> None:
        if self.MAIL_MODE not in {"http", "log", "disabled"}:
            raise RuntimeError(f"Invalid MAIL_MODE: {self.MAIL_MODE}")
        if not self.IS_PRODUCTION:
            return
        if self.DATABASE_URL.startswith("sqlite://") and ":memory:" in self.DATABASE_URL:
            raise RuntimeError("In-memory SQLite is not allowed in production")
        if self.MAIL_MODE == "http" and not self.MAIL_API_URL:
            raise RuntimeError("MAIL_API_URL is required when MAIL_MODE=http")
        if "*" in self.ALLOWED_ORIGINS:
            raise RuntimeError("Wildcard CORS origin is not allowed in production")
