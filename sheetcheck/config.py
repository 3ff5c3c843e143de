"""
Configuration settings for the SheetCheck service
"""
from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings using pydantic-settings"""

    # Server settings
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = True

    # CORS settings
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Project paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    EXPORTS_DIR: Path = PROJECT_ROOT / "exports"

    # Hosted store (Supabase storage + PostgREST)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_KEY: Optional[str] = None
    STORAGE_BUCKET: str = "files"
    STORAGE_TIMEOUT: float = 30.0
    READ_AFTER_WRITE_RETRIES: int = 3
    READ_AFTER_WRITE_DELAY: float = 0.5

    # Vision extraction settings
    OPENAI_API_KEY: Optional[str] = None
    VISION_BASE_URL: str = "https://api.openai.com/v1"
    VISION_MODEL: str = "gpt-4o"
    VISION_TEMPERATURE: float = 0.2
    VISION_MAX_TOKENS: int = 4000
    VISION_TIMEOUT: float = 60.0
    MAX_IMAGES_PER_BATCH: int = 20
    FALLBACK_BATCH_SIZE: int = 5

    # Document conversion
    RENDER_SCALE: float = 2.0
    ZIP_COMPRESSION_LEVEL: int = 6

    # Scorer settings
    SCORER_URL: Optional[str] = None
    SCORER_TIMEOUT: float = 300.0
    LLM_PROVIDER: str = "openai"  # "openai", "groq" or "ollama"
    SCORER_MODEL: str = "gpt-4o"
    SCORER_TEMPERATURE: float = 0.2
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    OLLAMA_MODEL: str = "llama3.1:latest"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_NUM_CTX: int = 8192

    # Retry policy
    MAX_RETRIES: int = 2
    RETRY_BASE_DELAY: float = 5.0
    STALE_EVALUATION_SECONDS: int = 900
    BATCH_CONCURRENCY: int = 4

    class Config:
        env_file = ".env"
        extra = "allow"


settings = Settings()

# Ensure directories exist
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
settings.EXPORTS_DIR.mkdir(parents=True, exist_ok=True)
