# core/settings.py
"""
Environment configuration for the gateway.

Values are read once at import time. Keys are only used by the HTTP layer
to seed per-caller credential pools; the gateway itself receives pools
from its caller.
"""
import os
from typing import List


def _split_csv(raw: str | None) -> List[str]:
    return [p.strip() for p in (raw or "").split(",") if p.strip()]


# Provider priority: paid/primary first, free/backup last
PROVIDER_PRIORITY = [p.lower() for p in _split_csv(os.getenv("GATEWAY_PROVIDER_PRIORITY", "openai,gemini"))]

# Per-attempt timeout
DEFAULT_TIMEOUT_MS = int(os.getenv("GATEWAY_TIMEOUT_MS", "60000"))

# Caller pools kept in memory by the HTTP layer; least recently used are dropped
MAX_CALLER_POOLS = int(os.getenv("GATEWAY_MAX_CALLER_POOLS", "1024"))

# OpenAI
OPENAI_API_URL = os.getenv("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# Gemini
GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash-latest")
GEMINI_API_KEYS = _split_csv(os.getenv("GEMINI_API_KEYS"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
