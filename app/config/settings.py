# config/settings.py
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # API
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Frame Studio"

    # CORS
    ALLOWED_HOSTS: List[str] = ["*"]

    # Auth
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: str = "secret"

    # Design space (logical units, independent of on-screen zoom)
    CANVAS_WIDTH: int = 1200
    CANVAS_HEIGHT: int = 800

    # Editing
    GRID_SIZE: int = 10
    FINE_GRID_SIZE: int = 5
    SNAP_THRESHOLD: float = 10.0
    MIN_FRAME_SIZE: float = 30.0
    HANDLE_HIT_RADIUS: float = 8.0
    ROTATE_HANDLE_OFFSET: float = 30.0
    DUPLICATE_OFFSET: float = 20.0
    HISTORY_LIMIT: int = 50

    # Rendering / export
    EXPORT_SCALE: float = 2.0
    ROTATION_MODE: str = "upright-content"
    FONTS_DIR: str = "fonts"
    DEFAULT_FONT_FAMILY: str = "Arial"
    REQUEST_TIMEOUT: int = 30
    JPEG_QUALITY: int = 90
    EXPORT_TIMEOUT_SECONDS: int = 55
    MAX_WORKERS: Optional[int] = None

    # Env
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
