"""
Interest coach configuration: all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


def _float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


class Settings:
    """Application settings from environment variables."""

    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

    # Chat model (Volcengine Ark / Doubao, OpenAI-compatible streaming)
    DOUBAO_API_KEY: str = os.environ.get("DOUBAO_API_KEY", "")
    DOUBAO_MODEL: str = os.environ.get("DOUBAO_MODEL", "doubao-seed-1-6-251015")
    DOUBAO_ENDPOINT: str = os.environ.get(
        "DOUBAO_ENDPOINT",
        "https://ark.cn-beijing.volces.com/api/v3/chat/completions",
    )
    DOUBAO_TEMPERATURE: float = _float("DOUBAO_TEMPERATURE", 0.7)
    DOUBAO_MAX_TOKENS: int = _int("DOUBAO_MAX_TOKENS", 2000)
    THINKING_BUDGET_TOKENS: int = _int("THINKING_BUDGET_TOKENS", 2000)
    MODEL_TIMEOUT_SECONDS: float = _float("MODEL_TIMEOUT_SECONDS", 120.0)

    # Web search (Tavily)
    TAVILY_API_KEY: str = os.environ.get("TAVILY_API_KEY", "")
    TAVILY_ENDPOINT: str = os.environ.get("TAVILY_ENDPOINT", "https://api.tavily.com/search")
    SEARCH_MAX_RESULTS: int = _int("SEARCH_MAX_RESULTS", 5)
    SEARCH_DEPTH: str = os.environ.get("SEARCH_DEPTH", "advanced")
    SEARCH_TIMEOUT_SECONDS: float = _float("SEARCH_TIMEOUT_SECONDS", 30.0)

    # Pipeline
    CLASSIFIER_STRATEGY: str = os.environ.get("CLASSIFIER_STRATEGY", "model")  # "model" or "keyword"
    MAX_HISTORY_LENGTH: int = _int("MAX_HISTORY_LENGTH", 6)
    HISTORY_WINDOW: int = _int("HISTORY_WINDOW", 4)
    STAGE_QUEUE_SIZE: int = _int("STAGE_QUEUE_SIZE", 64)

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")
    TESTING: bool = os.environ.get("TESTING", "").lower() == "true"
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")


# Singleton instance
settings = Settings()

# Validate required settings (skip in test mode)
if not settings.TESTING and not settings.DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")
