from dotenv import load_dotenv

load_dotenv(override=False)

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.routers import chat

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

app = FastAPI(
    title="Streamline Assistant API",
    version="0.1.0"
)

def _cors_origins() -> list[str]:
    origins: list[str] = []
    frontend = os.getenv("FRONTEND_URL", "").strip()
    if frontend:
        origins.append(frontend)
    allow = os.getenv("ALLOW_ORIGINS", "").strip()
    if allow:
        origins.extend([o.strip() for o in allow.split(",") if o.strip()])
    return origins or ["http://localhost:5173"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    warnings: list[str] = []
    if not settings.DB_PATH.exists():
        warnings.append(f"db_missing:{settings.DB_PATH}")

    provider = settings.LLM_PROVIDER.strip().lower()
    if provider == "openai" and not settings.OPENAI_API_KEY:
        warnings.append("llm_key_missing:OPENAI_API_KEY")
    elif provider == "groq" and not settings.GROQ_API_KEY:
        warnings.append("llm_key_missing:GROQ_API_KEY")

    payload = {"status": "ok", "llm_provider": provider}
    if warnings:
        payload["warnings"] = warnings
    return payload

app.include_router(chat.router)
