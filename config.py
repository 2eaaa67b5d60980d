"""
Configuration for the product parser service.

Values come from the environment, optionally seeded by a .env file next to
this module. The OpenAI key is supplied per request and never read here.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PUBLIC_DIR = Path(__file__).parent / "public"

# --- Page fetch ---
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
)
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "10"))

# --- Completion ---
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
OPENAI_TEMPERATURE = float(os.getenv("OPENAI_TEMPERATURE", "0"))
OPENAI_MAX_TOKENS = int(os.getenv("OPENAI_MAX_TOKENS", "1000"))

# --- Prompt sizing (characters) ---
SIGNAL_EXCERPT_CHARS = int(os.getenv("SIGNAL_EXCERPT_CHARS", "1000"))
FALLBACK_EXCERPT_CHARS = int(os.getenv("FALLBACK_EXCERPT_CHARS", "3000"))
PROMPT_MAX_CHARS = int(os.getenv("PROMPT_MAX_CHARS", "4000"))
