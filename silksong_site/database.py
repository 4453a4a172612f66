# SQLAlchemy setup for the generic SQL backend.
#
# - Local development: SQLite file (silksong.db) when DATABASE_URL is not set.
# - Production: whatever DATABASE_URL points to (PostgreSQL, MySQL).
#
# The hosted database (DATABASE_BACKEND=supabase) does not go through this
# module; see adapters/supabase_adapter.py.

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

backend_dir = Path(__file__).parent.parent
env_path = backend_dir / ".env"
load_dotenv(dotenv_path=env_path)

env_database_url = os.getenv("DATABASE_URL", "").strip()

if env_database_url:
    DATABASE_URL = env_database_url
else:
    DATABASE_URL = "sqlite:///./silksong.db"

IS_SQLITE = DATABASE_URL.startswith("sqlite")

connect_args = {"check_same_thread": False} if IS_SQLITE else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=not IS_SQLITE,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def create_tables():
    """Create missing tables. All models must be imported before calling this."""
    from . import models  # noqa: F401

    expected_tables = list(Base.metadata.tables.keys())
    logger.info(f"Expected tables: {', '.join(expected_tables)}")

    Base.metadata.create_all(bind=engine)

    existing_tables = inspect(engine).get_table_names()
    missing_tables = [t for t in expected_tables if t not in existing_tables]
    if missing_tables:
        logger.warning(f"⚠️ Missing tables: {', '.join(missing_tables)}")
    else:
        logger.info("✅ All tables created/verified")


def get_db():
    """
    FastAPI dependency yielding one DB session per request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
