from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Find .env file - check adhesion/ directory first, then project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
APP_ENV = BASE_DIR / "adhesion" / ".env"
ROOT_ENV = BASE_DIR / ".env"

# Use adhesion/.env if it exists, otherwise try root .env
env_file = str(APP_ENV) if APP_ENV.exists() else (str(ROOT_ENV) if ROOT_ENV.exists() else ".env")


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # SMTP
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: Optional[int] = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    FROM_EMAIL: Optional[str] = None
    REPLY_TO_EMAIL: Optional[str] = None

    # Association
    ASSOCIATION_NAME: str = "Association Générale des Comoriens"
    ASSOCIATION_CODE: str = "AGCO"
    FRONTEND_URL: str = "http://localhost:3000"

    # Membership lifecycle
    REFERENCE_ALLOCATION_ATTEMPTS: int = 3
    AMENDMENT_HISTORY_LIMIT: int = 10
    REJECTION_REASON_MIN_LENGTH: int = 10
    TEMPORARY_PASSWORD_LENGTH: int = 8
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    # Audit
    AUDIT_LOG_ENABLED: bool = True

    # Application
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = env_file
        case_sensitive = True


settings = Settings()

# Derived paths
LOGS_DIR = BASE_DIR / "logs"
