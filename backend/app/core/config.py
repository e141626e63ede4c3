import secrets
from typing import List, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Disaster Response Desk"
    ENVIRONMENT: str = "development"
    API_V1_STR: str = "/api/v1"

    # Security
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12
    JWT_ALGORITHM: str = "HS256"
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str):
            v = v.strip("[").strip("]").strip('"').strip("'")
            if not v:
                return []
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, list):
            return v
        raise ValueError(v)

    # Report store
    DATABASE_URL: str = "sqlite+aiosqlite:///./disaster_desk.db"

    # Blob store: "local" writes under UPLOAD_DIR, "supabase" uses Supabase Storage
    BLOB_BACKEND: str = "local"
    UPLOAD_DIR: str = "uploads"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    SUPABASE_URL: Optional[str] = None
    SUPABASE_KEY: Optional[str] = None
    SUPABASE_BUCKET: str = "disaster-evidence"
    MAX_IMAGE_BYTES: int = 5 * 1024 * 1024
    MAX_IMAGE_PIXELS: int = 40_000_000
    STRIP_IMAGE_METADATA: bool = True

    # Validation
    REPORT_DESCRIPTION_MIN_LENGTH: int = 10
    PASSWORD_MIN_LENGTH: int = 6

    # Login throttling
    LOGIN_MAX_FAILED_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_SECONDS: int = 300

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("BLOB_BACKEND")
    @classmethod
    def check_blob_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("local", "supabase"):
            raise ValueError(f"Unsupported BLOB_BACKEND: {v}")
        return v

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file="backend_config.env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

settings = Settings()
