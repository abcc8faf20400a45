from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root so it loads regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str

    # JWT (tokens are issued by the auth service; we only verify them)
    secret_key: str
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Session booking rules
    min_session_minutes: int = 1
    max_session_minutes: int = 480
    default_session_minutes: int = 60

    # External calls. A slow provider must never stall a booking.
    provider_timeout_seconds: float = 10.0
    notification_timeout_seconds: float = 5.0

    # Env
    env: str = "development"

    # Email (SMTP). Leave smtp_host empty to disable sending.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = "Coaching Sessions"
    site_name: str = "Coaching Sessions"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)


settings = Settings()
