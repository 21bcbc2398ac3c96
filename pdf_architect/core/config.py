# File: pdf_architect/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    PROJECT_NAME: str = "PDF Architect API"
    PROJECT_VERSION: str = "0.1.0"

    # Gemini settings (OCR, instruction synthesis, image generation)
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")
    GEMINI_IMAGE_MODEL: str = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")
    GEMINI_TIMEOUT: float = float(os.getenv("GEMINI_TIMEOUT", "120"))

    # Prompt context limits
    CONTEXT_CHAR_LIMIT: int = int(os.getenv("CONTEXT_CHAR_LIMIT", "3000"))
    CONTEXT_PAGE_LIMIT: int = int(os.getenv("CONTEXT_PAGE_LIMIT", "5"))

    # Rendering / selection
    RENDER_SCALE: float = float(os.getenv("RENDER_SCALE", "2.0"))
    SELECTION_JPEG_QUALITY: int = int(os.getenv("SELECTION_JPEG_QUALITY", "85"))
    HANDLE_TOLERANCE: float = float(os.getenv("HANDLE_TOLERANCE", "4.0"))

    # Session behaviour
    STATUS_CLEAR_SECONDS: float = float(os.getenv("STATUS_CLEAR_SECONDS", "3.0"))
    IMAGE_FETCH_TIMEOUT: float = float(os.getenv("IMAGE_FETCH_TIMEOUT", "30.0"))
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

    # CORS settings
    CORS_ORIGINS: list = os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")


settings = Settings()
