from pydantic_settings import BaseSettings
from typing import Optional, Union


class Settings(BaseSettings):
    # Database connection string - can be overridden via .env file
    # Only used by the "server" storage backend
    DATABASE_URL: str = "sqlite:///./pcic_database.db"

    # Which blob store backs the API
    # "server": peo_files table + bytes on disk under UPLOAD_DIR
    # "local": embedded keyed store, bytes kept inline with metadata
    STORAGE_BACKEND: str = "server"

    # File Storage settings
    UPLOAD_DIR: str = "./uploads"  # Root of the {office}/{adjuster}/{name} tree
    LOCAL_STORE_PATH: Optional[str] = None  # shelve file for the keyed store, in-memory if unset

    # Silent auto-delete after a download from the image view
    AUTO_DELETE_DELAY_SECONDS: float = 120.0
    # Extension used when the original filename has none
    DEFAULT_EXTENSION: str = "bin"

    # CORS origins - allows frontend to make requests to backend
    # Can be string (comma-separated) or list for flexibility
    CORS_ORIGINS: Union[str, list[str]
                        ] = "http://localhost:3000,http://localhost:5173"

    LOG_LEVEL: str = "INFO"

    def get_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGINS string into list"""
        if isinstance(self.CORS_ORIGINS, str):
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]
        return self.CORS_ORIGINS if isinstance(self.CORS_ORIGINS, list) else []

    class Config:
        # Load settings from .env file if it exists
        # Environment variables override defaults
        env_file = ".env"
        case_sensitive = True


settings = Settings()
