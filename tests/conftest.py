import os
import sys

# Ensure repo root is on sys.path so tests can import the app package
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

# Settings are read from the environment, set them before the app is imported
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DATABASE_BACKEND"] = "sql"
os.environ["RESEND_API_KEY"] = "re_test_key"
os.environ["STATS_API_KEY"] = "stats-secret"
os.environ["WEBHOOK_SECRET"] = "webhook-secret"
os.environ["SITE_URL"] = "https://silksong.test"
os.environ["RELEASE_DATE"] = "2025-09-04T14:00:00+00:00"

import pytest
import resend
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from silksong_site import dependencies
from silksong_site.adapters.sqlalchemy_adapter import SqlAlchemySubscriptionAdapter
from silksong_site.config import clear_settings_cache
from silksong_site.database import Base, get_db
from silksong_site.main import app
from silksong_site.models import Subscription, UnsubscriptionLog  # noqa: F401


@pytest.fixture(autouse=True)
def fresh_state(monkeypatch):
    """Every test starts with empty limiters and caches and the default opt-in mode."""
    monkeypatch.delenv("DOUBLE_OPT_IN", raising=False)
    clear_settings_cache()
    dependencies.reset_state()
    yield
    dependencies.reset_state()
    clear_settings_cache()


@pytest.fixture
def db_session():
    """
    In-memory SQLite database shared by every connection of one test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def adapter(db_session):
    return SqlAlchemySubscriptionAdapter(db_session)


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing Resend calls instead of hitting the API."""
    sent = []

    def fake_send(params):
        sent.append(params)
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr(resend.Emails, "send", fake_send)
    return sent


@pytest.fixture
def client(db_session, sent_emails):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def stats_headers():
    return {"Authorization": "Bearer stats-secret"}


@pytest.fixture
def webhook_headers():
    return {"X-Webhook-Secret": "webhook-secret"}
