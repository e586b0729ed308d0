# shopfloor/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List
import secrets
from pathlib import Path
import logging
from functools import lru_cache

# Configure logger
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Application info
    PROJECT_NAME: str = "Shopfloor CSV Ingest"
    API_V1_STR: str = "/api/v1"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = "Part and assembly data ingestion backend"

    # Set base directory for data files
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    LOGS_DIR: Path = BASE_DIR / "logs"
    UPLOAD_DIR: Path = BASE_DIR / "uploads"

    # Database connection settings
    DATABASE_URL: Optional[str] = None
    DB_FILE: str = "csv_data.db"
    DB_ECHO: bool = False  # Don't log SQL in production

    # Security settings
    SECRET_KEY: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # Default admin account - CHANGE IN PRODUCTION!
    ADMIN_EMAIL: str = "admin@shopfloor.com"
    ADMIN_PASSWORD: str = "Admin123!"
    ADMIN_FIRST_NAME: str = "System"
    ADMIN_LAST_NAME: str = "Administrator"

    # Upload settings
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB
    ALLOWED_UPLOAD_EXTENSIONS: List[str] = [".csv"]
    ALLOWED_UPLOAD_MIME_TYPES: List[str] = [
        "text/csv",
        "application/csv",
        "text/plain",  # Some systems report CSV as text/plain
        "application/vnd.ms-excel",  # Excel CSV
    ]
    ERROR_REPORT_FILENAME: str = "error.csv"

    # Pagination settings
    DEFAULT_PAGE_SIZE: int = 100
    MAX_PAGE_SIZE: int = 1000

    # CORS settings
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 5004
    LOG_LEVEL: str = "info"

    # Debug options
    DEBUG: bool = False

    @property
    def get_data_dir(self) -> Path:
        """Ensure data directory exists and return it"""
        if not self.DATA_DIR.exists():
            self.DATA_DIR.mkdir(parents=True)
        return self.DATA_DIR

    @property
    def get_upload_dir(self) -> Path:
        """Ensure upload directory exists and return it"""
        if not self.UPLOAD_DIR.exists():
            self.UPLOAD_DIR.mkdir(parents=True)
        return self.UPLOAD_DIR

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Build SQLAlchemy database URI, SQLite file in the data directory by default"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite:///{self.get_data_dir / self.DB_FILE}"

    @property
    def ERROR_REPORT_PATH(self) -> Path:
        """Fixed location of the rejected-rows report, overwritten on every upload"""
        return self.get_data_dir / self.ERROR_REPORT_FILENAME

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Ensure directories exist
        self.get_data_dir
        self.get_upload_dir
        # Ensure SECRET_KEY is initialized and persistent
        self._ensure_secret_key()

    def _ensure_secret_key(self):
        """Ensure a consistent SECRET_KEY exists, stored in a file"""
        if self.SECRET_KEY:
            logger.info("Using provided SECRET_KEY")
            return

        secret_key_path = self.DATA_DIR / "secret_key.txt"

        if secret_key_path.exists():
            try:
                self.SECRET_KEY = secret_key_path.read_text().strip()
                logger.info("Loaded SECRET_KEY from file")
                return
            except OSError as e:
                logger.error(f"Failed to read SECRET_KEY from file: {e}")

        # Generate a new key and save it
        self.SECRET_KEY = secrets.token_urlsafe(32)
        try:
            secret_key_path.write_text(self.SECRET_KEY)
            logger.info("Generated and saved new SECRET_KEY")
        except OSError as e:
            logger.error(f"Failed to save SECRET_KEY to file: {e}")
            # Continue with in-memory key even if file write fails

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


# Cache the settings instance
@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
