"""Application configuration using Pydantic Settings."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Intern Attendance"
    debug: bool = False
    log_level: str = "INFO"

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "intern_attendance"

    # JWT (tokens are issued elsewhere; we only verify them)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Local calendar used for "today"
    timezone: str = "Asia/Kolkata"

    # Daily attendance generation
    attendance_cron_enabled: bool = True
    attendance_cron_hour: int = 6
    attendance_cron_minute: int = 0
    attendance_marker_staff_id: str = ""  # falls back to the first active admin

    # Pagination
    attendance_default_page_size: int = 10
    attendance_max_page_size: int = 200

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:5173"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to a strong secret when DEBUG is not enabled. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
        return self

    @model_validator(mode="after")
    def _validate_cron_time(self):
        if not 0 <= self.attendance_cron_hour <= 23:
            raise ValueError("ATTENDANCE_CRON_HOUR must be between 0 and 23")
        if not 0 <= self.attendance_cron_minute <= 59:
            raise ValueError("ATTENDANCE_CRON_MINUTE must be between 0 and 59")
        return self


settings = Settings()
