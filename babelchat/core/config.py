# babelchat/core/config.py
import os
from typing import Literal
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - REDIS_HOST the Redis host; empty runs against an embedded fakeredis
        - CHANNEL_BACKEND the realtime fan-out: "memory" (single instance) or "redis"
        - LINGO_API_KEY / LINGO_API_URL the Lingo.dev localization engine
        - SUPABASE_JWT_SECRET the secret used to verify access tokens
    """

    # Load environment variables from the .env file
    load_dotenv()

    CHANNEL_BACKEND: Literal["memory", "redis"] = os.getenv("CHANNEL_BACKEND", "memory")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    LINGO_API_KEY: str = os.getenv("LINGO_API_KEY", os.getenv("LINGODOTDEV_API_KEY", ""))
    LINGO_API_URL: str = os.getenv("LINGO_API_URL", "https://engine.lingo.dev")
    TRANSLATION_TIMEOUT_SECONDS: float = float(os.getenv("TRANSLATION_TIMEOUT_SECONDS", "10"))
    PROXY_CACHE_TTL_SECONDS: int = int(os.getenv("PROXY_CACHE_TTL_SECONDS", "900"))
    PROXY_CACHE_MAXSIZE: int = int(os.getenv("PROXY_CACHE_MAXSIZE", "1000"))

    TYPING_TIMEOUT_SECONDS: float = float(os.getenv("TYPING_TIMEOUT_SECONDS", "3"))
    MESSAGE_HISTORY_LIMIT: int = int(os.getenv("MESSAGE_HISTORY_LIMIT", "100"))
    DEFAULT_LANGUAGE: str = os.getenv("DEFAULT_LANGUAGE", "en")

    SUPABASE_JWT_SECRET: str = os.getenv("SUPABASE_JWT_SECRET", "")
    JWT_AUDIENCE: str = os.getenv("JWT_AUDIENCE", "authenticated")

    ALLOWED_ORIGINS: list[str] = [
        o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()
    ]

    @property
    def redis_url(self) -> str:
        scheme = "rediss" if self.REDIS_SSL else "redis"
        auth = f":{self.REDIS_ACCESS_KEY}@" if self.REDIS_ACCESS_KEY else ""
        return f"{scheme}://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}"

settings = Settings()
