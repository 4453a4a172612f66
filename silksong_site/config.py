import os
from datetime import datetime, timezone


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    try:
        return int(value) if value else default
    except ValueError:
        return default


class Settings:
    """Application settings, read from environment variables on every access."""

    @property
    def app_name(self) -> str:
        return "Silksong Fan Site"

    @property
    def app_version(self) -> str:
        return os.getenv("APP_VERSION", "1.0.0")

    @property
    def environment(self) -> str:
        env = os.getenv("ENV", "").lower()
        if env in ("production", "prod"):
            return "production"
        if env == "test":
            return "test"
        return "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def log_level(self) -> str:
        return os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def site_url(self) -> str:
        if self.is_production:
            return os.getenv("SITE_URL", "https://hollowknightsilksong.org").rstrip("/")
        return os.getenv("SITE_URL", "http://localhost:8000").rstrip("/")

    @property
    def cors_origin(self) -> str:
        return os.getenv("CORS_ORIGIN", "http://localhost:3000")

    # --- Database ---

    @property
    def database_backend(self) -> str:
        """`sql` (SQLAlchemy) or `supabase` (hosted PostgREST)."""
        return os.getenv("DATABASE_BACKEND", "sql").strip().lower()

    @property
    def database_url(self) -> str:
        return os.getenv("DATABASE_URL", "").strip()

    @property
    def supabase_url(self) -> str:
        return os.getenv("SUPABASE_URL", "").rstrip("/")

    @property
    def supabase_service_key(self) -> str:
        return os.getenv("SUPABASE_SERVICE_KEY", "")

    @property
    def supabase_table(self) -> str:
        return os.getenv("SUPABASE_TABLE", "newsletter_subscriptions")

    # --- Email (Resend) ---

    @property
    def resend_api_key(self) -> str:
        return os.getenv("RESEND_API_KEY", "")

    @property
    def resend_from_email(self) -> str:
        return os.getenv("RESEND_FROM_EMAIL", "Silksong News <news@hollowknightsilksong.org>")

    @property
    def resend_reply_to(self) -> str:
        return os.getenv("RESEND_REPLY_TO", "")

    # --- Subscriptions ---

    @property
    def double_opt_in(self) -> bool:
        return _env_bool("DOUBLE_OPT_IN", True)

    @property
    def token_expiry_hours(self) -> int:
        return _env_int("TOKEN_EXPIRY_HOURS", 48)

    @property
    def site_hash_salt(self) -> str:
        return os.getenv("SITE_HASH_SALT", "silksong-default-salt-change-in-production")

    @property
    def stats_api_key(self) -> str:
        return os.getenv("STATS_API_KEY", "")

    @property
    def webhook_secret(self) -> str:
        return os.getenv("WEBHOOK_SECRET", "")

    # Production limits are stricter
    @property
    def subscribe_rate_limit(self) -> tuple[int, int]:
        """(max requests, window seconds)"""
        return (3, 15 * 60) if self.is_production else (10, 5 * 60)

    @property
    def unsubscribe_rate_limit(self) -> tuple[int, int]:
        return (5, 10 * 60) if self.is_production else (20, 5 * 60)

    @property
    def stats_rate_limit(self) -> tuple[int, int]:
        return (10, 15 * 60) if self.is_production else (50, 5 * 60)

    # --- Caching ---

    @property
    def page_cache_ttl(self) -> int:
        return _env_int("PAGE_CACHE_TTL", 300)

    @property
    def stats_cache_ttl(self) -> int:
        return _env_int("STATS_CACHE_TTL", 300 if self.is_production else 120)

    # --- Game ---

    @property
    def release_date(self) -> datetime:
        raw = os.getenv("RELEASE_DATE", "2025-09-04T14:00:00+00:00")
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


# Singleton instance (no cache: properties read the environment every time)
_settings_instance = None


def get_settings() -> Settings:
    """Return the shared Settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def clear_settings_cache():
    """Drop the shared Settings instance."""
    global _settings_instance
    _settings_instance = None
