"""
Application Configuration with Type Safety and Validation
Following 12-factor app principles
"""
from functools import lru_cache
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


DEFAULT_RANGES: Dict[str, str] = {
    "recruiters": "Recruiters!A:J",
    "candidates": "Candidates!A:L",
    "clients": "Clients!A:J",
    "performance": "Performance!A:D",
}


class Settings(BaseSettings):
    """
    Application settings with environment variable support.
    All settings are validated and typed.
    """

    # Application
    app_name: str = "Recruitment Sheets Dashboard"
    app_version: str = "1.0.0"
    debug: bool = Field(default=True, description="Enable debug mode")
    environment: str = Field(default="development", description="Environment name")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    ping_message: str = Field(default="ping", description="Body of /api/ping")

    # Document store
    database_url: str = Field(default="./recruitment_dashboard.db", description="SQLite document store path")
    db_timeout: float = Field(default=30.0, description="Database timeout in seconds")

    # Google service account (private sheets shared with the account)
    google_service_account_email: Optional[str] = Field(default=None)
    google_service_account_private_key: Optional[str] = Field(
        default=None, description="PEM private key; escaped \\n sequences are accepted"
    )
    google_service_account_file: Optional[str] = Field(
        default=None, description="Path to a service account JSON key file"
    )

    # Google Sheets API key (public / anyone-with-link sheets)
    google_sheets_api_key: Optional[str] = Field(default=None)

    # Google endpoints
    google_token_url: str = Field(default="https://oauth2.googleapis.com/token")
    google_sheets_scope: str = Field(default="https://www.googleapis.com/auth/spreadsheets.readonly")
    sheets_api_base_url: str = Field(default="https://sheets.googleapis.com/v4/spreadsheets")
    sheets_export_base_url: str = Field(default="https://docs.google.com/spreadsheets/d")
    http_timeout_seconds: float = Field(default=30.0, description="Timeout for spreadsheet requests")

    # Scheduler
    scheduler_max_runs_per_window: int = Field(default=20, description="Max imports per source per window")
    scheduler_window_seconds: float = Field(default=60.0, description="Rate limit sliding window")
    scheduler_min_interval_seconds: float = Field(default=3.0, description="Floor for refresh intervals")

    # CORS - Use str type to avoid pydantic-settings JSON parsing
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://localhost:8080",
        description="Allowed CORS origins (comma-separated)"
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False, description="JSON log lines instead of coloured output")
    log_file: Optional[str] = Field(default=None)

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list"""
        return [origin.strip() for origin in self.cors_origins.split(',') if origin.strip()]

    @property
    def service_account_private_key(self) -> Optional[str]:
        """Private key with escaped newlines restored"""
        key = self.google_service_account_private_key
        if key and "\\n" in key:
            key = key.replace("\\n", "\n")
        return key

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.
    Uses lru_cache to ensure singleton pattern.
    """
    return Settings()


# Convenience alias
settings = get_settings()
