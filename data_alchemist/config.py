"""
Data Alchemist configuration.
Values come from the environment (or a local .env file).
"""

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


class Settings:
    """Application settings, read once per instance."""

    def __init__(self):
        # AI collaborator (GitHub Models endpoint)
        self.github_token: Optional[str] = os.getenv("GITHUB_TOKEN")
        self.ai_endpoint: str = os.getenv("GITHUB_AI_ENDPOINT", "https://models.github.ai/inference")
        self.ai_model: str = os.getenv("GITHUB_AI_MODEL", "openai/gpt-4.1")
        self.ai_timeout_seconds: float = _float_env("AI_TIMEOUT_SECONDS", 10.0)
        self.ai_temperature: float = _float_env("AI_TEMPERATURE", 0.2)
        self.ai_max_tokens: int = _int_env("AI_MAX_TOKENS", 1000)

        # Query / recommendation tuning
        self.fuzzy_threshold: float = _float_env("FUZZY_THRESHOLD", 0.6)
        self.header_match_threshold: float = _float_env("HEADER_MATCH_THRESHOLD", 0.7)
        self.recommendation_limit: int = _int_env("RECOMMENDATION_LIMIT", 5)

        # File locations
        self.upload_dir: str = os.getenv("UPLOAD_DIR", "uploads")
        self.export_dir: str = os.getenv("EXPORT_DIR", "exports")

        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def ai_enabled(self) -> bool:
        return bool(self.github_token)


def get_settings() -> Settings:
    return Settings()
