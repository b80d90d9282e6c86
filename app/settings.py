import os
from pydantic import BaseModel
from functools import lru_cache
from dotenv import load_dotenv
load_dotenv()

class Settings(BaseModel):
    APP_NAME: str = os.getenv("APP_NAME", "Role DNA Audition Service")
    ENV: str = os.getenv("ENV", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    SQLITE_PATH: str = os.getenv("SQLITE_PATH", "app.sqlite3")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY") or None
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OPENROUTER_API_KEY: str | None = os.getenv("OPENROUTER_API_KEY") or None
    OPENROUTER_MODEL: str = os.getenv("OPENROUTER_MODEL", "google/gemini-2.5-flash")
    LLM_TIMEOUT_SECONDS: int = int(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
    LLM_MAX_ATTEMPTS: int = int(os.getenv("LLM_MAX_ATTEMPTS", "3"))
    IDENTITY_URL: str | None = os.getenv("IDENTITY_URL") or None
    IDENTITY_API_KEY: str | None = os.getenv("IDENTITY_API_KEY") or None
    JD_MIN_CHARS: int = int(os.getenv("JD_MIN_CHARS", "50"))
    JD_MAX_CHARS: int = int(os.getenv("JD_MAX_CHARS", "10000"))
    SCAFFOLD_ESTIMATE_MINUTES: int = int(os.getenv("SCAFFOLD_ESTIMATE_MINUTES", "3"))
    SCAFFOLD_TIMEOUT_MINUTES: int = int(os.getenv("SCAFFOLD_TIMEOUT_MINUTES", "15"))
    POLL_INTERVAL_SECONDS: int = int(os.getenv("POLL_INTERVAL_SECONDS", "10"))
    QUESTIONS_PER_DIMENSION: int = int(os.getenv("QUESTIONS_PER_DIMENSION", "3"))
    MIN_QUALITY_SCORE: int = int(os.getenv("MIN_QUALITY_SCORE", "2"))
    MAX_RETRIES_PER_QUESTION: int = int(os.getenv("MAX_RETRIES_PER_QUESTION", "2"))

@lru_cache
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
