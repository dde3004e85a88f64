from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Project root = backend/
    BASE_DIR: Path = Path(__file__).resolve().parents[2]

    DATA_DIR: Path = BASE_DIR / "data"
    DB_PATH: Path = DATA_DIR / "assistant.sqlite3"
    MIGRATIONS_DIR: Path = BASE_DIR / "db" / "migrations"

    # LLM provider
    LLM_PROVIDER: str = "openai"
    LLM_TIMEOUT_SECONDS: int = 30
    LLM_MAX_TOKENS: int = 1000
    LLM_TEMPERATURE: float = 0.3
    CLASSIFIER_TEMPERATURE: float = 0.0
    CLASSIFIER_MAX_TOKENS: int = 300

    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    GROQ_API_KEY: Optional[str] = None
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    GROQ_MODEL: str = "llama-3.1-8b-instant"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:latest"

    # Routing + ranking knobs
    KNOWN_BRANDS: List[str] = [
        "Galaxy Treats",
        "Juice Head",
        "Mellow Fellow",
        "Modus",
        "Cake",
        "Flying Monkey",
        "Delta Extrax",
        "Streamline",
    ]
    CLASSIFIER_HISTORY: int = 3
    KNOWLEDGE_FETCH_LIMIT: int = 5
    KNOWLEDGE_TOP_K: int = 3
    KNOWLEDGE_CONTENT_CHARS: int = 500
    FILE_FETCH_LIMIT: int = 10
    FILE_TOP_K: int = 3
    FILE_MIN_CONFIDENCE: float = 0.2
    SOURCE_TIMEOUT_SECONDS: float = 20.0

    COMPANY_NAME: str = "Streamline Group"
    FALLBACK_FORM_NAME: str = "Marketing Request Form"

settings = Settings()
