import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    supabase_jwt_secret: Optional[str] = None
    frontend_url: str = "http://localhost:5173"
    profile_table: str = "user_details"
    avatar_bucket: str = "quest-images"
    role_mismatch_redirect_ms: int = 1500
    callback_settle_ms: int = 500
    cookie_secure: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET") or None,
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        profile_table=os.getenv("PROFILE_TABLE", "user_details"),
        avatar_bucket=os.getenv("AVATAR_BUCKET", "quest-images"),
        role_mismatch_redirect_ms=int(os.getenv("ROLE_MISMATCH_REDIRECT_MS", "1500")),
        callback_settle_ms=int(os.getenv("CALLBACK_SETTLE_MS", "500")),
        cookie_secure=os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes"),
    )
