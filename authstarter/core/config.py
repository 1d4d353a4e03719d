from typing import List, Optional
import os

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

MIN_SECRET_LENGTH = 32


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseModel):
    environment: str = "development"
    app_name: str = "Auth Starter"
    database_url: str

    jwt_access_secret: str
    jwt_refresh_secret: str
    jwt_issuer: str = "auth-starter"
    access_ttl_min: int = 15
    refresh_ttl_days: int = 7

    log_level: str = "INFO"
    log_json: bool = False
    cors_origins: List[str] = []

    smtp_server: str = ""
    smtp_port: Optional[int] = None
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = True
    mail_from: str = ""
    mail_from_name: str = "Auth Starter"
    app_base_url: str = "http://localhost:3000"

    email_verification_required: bool = False
    email_verify_ttl_min: int = 60
    password_reset_ttl_min: int = 30

    login_max_attempts: int = 5
    login_lockout_min: int = 15
    login_attempt_window_min: int = 15

    session_cleanup_enabled: bool = True
    session_cleanup_interval_min: int = 60

    @field_validator("environment")
    @classmethod
    def _known_environment(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"development", "test", "production"}:
            raise ValueError("environment must be one of development, test, production")
        return v

    @field_validator("database_url")
    @classmethod
    def _database_url_present(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("DATABASE_URL must be set")
        return v.strip()

    @field_validator("jwt_access_secret", "jwt_refresh_secret")
    @classmethod
    def _secret_length(cls, v: str) -> str:
        if len(v) < MIN_SECRET_LENGTH:
            raise ValueError(f"JWT secrets must be at least {MIN_SECRET_LENGTH} characters long")
        return v

    @field_validator(
        "access_ttl_min",
        "refresh_ttl_days",
        "email_verify_ttl_min",
        "password_reset_ttl_min",
        "login_max_attempts",
        "login_lockout_min",
        "login_attempt_window_min",
        "session_cleanup_interval_min",
    )
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @model_validator(mode="after")
    def _cross_field_rules(self) -> "Settings":
        if self.email_verification_required:
            missing = [
                name
                for name, value in (
                    ("SMTP_SERVER", self.smtp_server.strip()),
                    ("SMTP_PORT", self.smtp_port),
                    ("MAIL_FROM", self.mail_from.strip()),
                )
                if not value
            ]
            if missing:
                raise ValueError(
                    f"{', '.join(missing)} required when AUTH_EMAIL_VERIFICATION_REQUIRED=true"
                )
        if self.environment == "production" and not self.cors_origins:
            raise ValueError("Set CORS_ORIGINS with at least one allowed origin in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_server and self.smtp_port and self.mail_from)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and `.env`, if present)."""
        load_dotenv()
        smtp_port = os.getenv("SMTP_PORT", "").strip()
        return cls(
            environment=os.getenv("APP_ENV", "development"),
            app_name=os.getenv("APP_NAME", "Auth Starter"),
            database_url=os.getenv("DATABASE_URL", ""),
            jwt_access_secret=os.getenv("JWT_ACCESS_SECRET", ""),
            jwt_refresh_secret=os.getenv("JWT_REFRESH_SECRET", ""),
            jwt_issuer=os.getenv("JWT_ISSUER", "auth-starter"),
            access_ttl_min=int(os.getenv("ACCESS_TOKEN_TTL_MIN", "15")),
            refresh_ttl_days=int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "7")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOG_JSON"),
            cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "")),
            smtp_server=os.getenv("SMTP_SERVER", ""),
            smtp_port=int(smtp_port) if smtp_port else None,
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            smtp_starttls=_env_bool("SMTP_STARTTLS", True),
            mail_from=os.getenv("MAIL_FROM", ""),
            mail_from_name=os.getenv("MAIL_FROM_NAME", "Auth Starter"),
            app_base_url=os.getenv("APP_BASE_URL", "http://localhost:3000"),
            email_verification_required=_env_bool("AUTH_EMAIL_VERIFICATION_REQUIRED"),
            email_verify_ttl_min=int(os.getenv("AUTH_EMAIL_VERIFICATION_TTL_MIN", "60")),
            password_reset_ttl_min=int(os.getenv("AUTH_PASSWORD_RESET_TTL_MIN", "30")),
            login_max_attempts=int(os.getenv("AUTH_LOGIN_MAX_ATTEMPTS", "5")),
            login_lockout_min=int(os.getenv("AUTH_LOGIN_LOCKOUT_MIN", "15")),
            login_attempt_window_min=int(os.getenv("AUTH_LOGIN_ATTEMPT_WINDOW_MIN", "15")),
            session_cleanup_enabled=_env_bool("SESSION_CLEANUP_ENABLED", True),
            session_cleanup_interval_min=int(os.getenv("SESSION_CLEANUP_INTERVAL_MIN", "60")),
        )
