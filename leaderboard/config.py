import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class RateLimitPolicy:
    window_hours: int = 24
    max_per_user: int = 100
    max_per_ip: int = 150


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///db.sqlite"
    auth_secret: str = ""
    api_key: Optional[str] = None
    turnstile_secret_key: Optional[str] = None
    turnstile_verify_url: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    hf_api_base: str = "https://huggingface.co/api"
    trusted_file_host: str = "huggingface.co"
    model_file_extension: str = ".gguf"
    http_timeout_sec: float = 10.0
    judge_models: Tuple[str, ...] = ("grok-4.1-fast",)
    recent_limit: int = 10
    max_runtime_sec: int = 10800
    frontend_origin: str = "http://localhost:3000"
    rate_limit: RateLimitPolicy = field(default_factory=RateLimitPolicy)


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings from the environment. Cached; call ``get_settings.cache_clear()`` after changing env."""
    return Settings(
        database_url=os.getenv("DB_URL", "sqlite:///db.sqlite"),
        auth_secret=os.getenv("AUTH_SECRET", ""),
        api_key=os.getenv("API_KEY") or None,
        turnstile_secret_key=os.getenv("TURNSTILE_SECRET_KEY") or None,
        hf_api_base=os.getenv("HF_API_BASE", "https://huggingface.co/api").rstrip("/"),
        trusted_file_host=os.getenv("TRUSTED_FILE_HOST", "huggingface.co"),
        http_timeout_sec=float(os.getenv("REGISTRY_TIMEOUT_SEC", "10")),
        judge_models=_split_csv(os.getenv("JUDGE_MODELS", "grok-4.1-fast")),
        recent_limit=int(os.getenv("RECENT_SUBMISSIONS_LIMIT", "10")),
        frontend_origin=os.getenv("FRONTEND_ORIGIN", "http://localhost:3000"),
        rate_limit=RateLimitPolicy(
            window_hours=int(os.getenv("RATE_LIMIT_WINDOW_HOURS", "24")),
            max_per_user=int(os.getenv("MAX_SUBMISSIONS_PER_USER", "100")),
            max_per_ip=int(os.getenv("MAX_SUBMISSIONS_PER_IP", "150")),
        ),
    )
