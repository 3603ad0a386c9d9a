from pydantic_settings import BaseSettings
from typing import Optional, List


def _parse_csv_list(v: str) -> List[str]:
    """Parse comma-separated string; strip whitespace; keep non-empty."""
    if not v or not v.strip():
        return []
    return [o.strip() for o in v.split(",") if o.strip()]


_DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql://postgres:postgres@db:5432/property_manager"

    # CORS: comma-separated extra origins for production
    # Default localhost origins are always included.
    ALLOWED_ORIGINS_EXTRA: str = ""

    def get_allowed_origins(self) -> List[str]:
        """Return CORS allowed origins: default localhost + ALLOWED_ORIGINS_EXTRA."""
        return _DEFAULT_CORS_ORIGINS + _parse_csv_list(self.ALLOWED_ORIGINS_EXTRA)

    # Auth
    SECRET_KEY: str = "supersecret_jwt_key_change_in_production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Accounts whose registration bootstraps admin claims (comma-separated)
    ADMIN_EMAILS: str = ""

    def get_admin_emails(self) -> List[str]:
        return [e.lower() for e in _parse_csv_list(self.ADMIN_EMAILS)]

    # Frontend (invitation and campaign links point here)
    FRONTEND_URL: str = "http://localhost:5173"
    APP_NAME: str = "Property Manager Pro"

    # Brevo (transactional invitation emails; optional)
    BREVO_API_KEY: Optional[str] = None
    SENDER_EMAIL: str = "noreply@propertymanager.local"

    # Admin
    SUDO_ADMIN_EMAIL: str = "admin@propertymanager.local"
    SUDO_ADMIN_PASSWORD: str = "changeme"

    # Invitations
    INVITATION_TTL_DAYS: int = 7
    PUBLIC_LINK_INVITATION_TTL_HOURS: int = 24

    # Campaign CSV imports
    CAMPAIGN_UPLOAD_DIR: str = "./var/campaign_csvs"
    CAMPAIGN_CSV_MAX_BYTES: int = 2 * 1024 * 1024
    CAMPAIGN_CSV_RETENTION_DAYS: int = 30

    # Transactions: attempts before a serialization failure is surfaced
    TRANSACTION_MAX_ATTEMPTS: int = 3

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        # Environment variables take precedence over the .env file


settings = Settings()
