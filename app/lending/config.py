import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    supabase_url: str
    supabase_anon_key: str
    site_url: str
    auth_timeout_seconds: int

    autosave_debounce_ms: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///lending.db"),
        supabase_url=_getenv("SUPABASE_URL", ""),
        supabase_anon_key=_getenv("SUPABASE_ANON_KEY", ""),
        site_url=_getenv("SITE_URL", "http://localhost:8080"),
        auth_timeout_seconds=_getenv_int("AUTH_TIMEOUT_SECONDS", 15),
        autosave_debounce_ms=_getenv_int("AUTOSAVE_DEBOUNCE_MS", 2000),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "SUPABASE_URL": s.supabase_url,
        "SUPABASE_ANON_KEY": s.supabase_anon_key,
        "SITE_URL": s.site_url,
        "AUTH_TIMEOUT_SECONDS": s.auth_timeout_seconds,
        "AUTOSAVE_DEBOUNCE_MS": s.autosave_debounce_ms,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
    }
