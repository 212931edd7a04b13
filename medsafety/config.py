"""
Configuration settings for the Medication Safety Engine
"""
from pathlib import Path
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Medication Safety Engine"
    DEBUG: bool = False
    VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = f"sqlite:///{BASE_DIR}/data/medication_safety.db"
    SQL_DEBUG: bool = False
    SEED_REFERENCE_DATA: bool = True

    # Safety rules
    BLOCKING_SEVERITY_THRESHOLD: int = 3  # 3 = major on the 1..4 scale
    OVERRIDE_REASON_MIN_LENGTH: int = 10
    ALTERNATIVES_LIMIT: int = 10

    # Concurrency
    PATIENT_LOCK_TIMEOUT_SECONDS: float = 5.0

    # Audit
    ENABLE_AUDIT_LOGGING: bool = True
    AUDIT_FILE_MIRROR: bool = False
    AUDIT_LOG_PATH: Path = BASE_DIR / "data" / "audit_logs"

    class Config:
        env_file = ".env"
        extra = "allow"


settings = Settings()
