"""
Subscription storage adapters and the FastAPI dependency that picks one.
"""
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_db
from .base import SubscriptionAdapter
from .sqlalchemy_adapter import SqlAlchemySubscriptionAdapter
from .supabase_adapter import SupabaseSubscriptionAdapter

_supabase_adapter: Optional[SupabaseSubscriptionAdapter] = None


def _get_supabase_adapter() -> SupabaseSubscriptionAdapter:
    # One HTTP client for the whole process
    global _supabase_adapter
    if _supabase_adapter is None:
        settings = get_settings()
        _supabase_adapter = SupabaseSubscriptionAdapter(
            url=settings.supabase_url,
            service_key=settings.supabase_service_key,
            table=settings.supabase_table,
        )
    return _supabase_adapter


def get_adapter(db: Session = Depends(get_db)) -> SubscriptionAdapter:
    """Adapter selected by DATABASE_BACKEND (`sql` or `supabase`)."""
    if get_settings().database_backend == "supabase":
        return _get_supabase_adapter()
    return SqlAlchemySubscriptionAdapter(db)


def close_adapters() -> None:
    global _supabase_adapter
    if _supabase_adapter is not None:
        _supabase_adapter.close()
        _supabase_adapter = None


__all__ = [
    "SubscriptionAdapter",
    "SqlAlchemySubscriptionAdapter",
    "SupabaseSubscriptionAdapter",
    "get_adapter",
    "close_adapters",
]
