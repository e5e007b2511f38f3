"""
Configuration settings for the Callhome telemetry service
"""

from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    """Application settings"""

    # Database
    db_host: str = "timescale"
    db_port: str = "5432"
    db_name: str = "callhome"
    db_user: str = "callhome"
    db_password: str = "callhome"
    db_ssl_mode: str = "disable"
    database_url: str = ""

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8008
    debug: bool = False
    environment: str = "development"
    request_timeout: float = 10.0  # seconds

    # Geolocation
    geo_db_path: str = "./geodb/GeoLite2-City.mmdb"

    # Repository: "timescale" or "sheets"
    repository: str = "timescale"

    # Google Sheets
    gcp_credentials_file: Optional[str] = None
    spreadsheet_id: Optional[str] = None
    sheet_id: int = 0

    # Authorization
    auth_token: Optional[str] = None
    auth_url: Optional[str] = None
    auth_timeout: float = 5.0

    # Pagination
    default_page_limit: int = 10
    max_page_limit: int = 100

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Build database_url from components unless given explicitly
        if not self.database_url:
            self.database_url = (
                f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
                f"?sslmode={self.db_ssl_mode}"
            )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

# Global settings instance
settings = Settings()
