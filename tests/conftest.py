"""Shared pytest fixtures for market-sync-api tests."""
import os
import sys
from pathlib import Path
from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Keep the app off the local database file and the scheduler off during tests
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Fixed observation time used across the suite (naive UTC)
NOW = datetime(2026, 3, 14, 18, 0, 0)


# =============================================================================
# HELPERS
# =============================================================================

def build_raw_match(
    match_id: Any = "1001",
    status: str = "UPCOMING",
    kickoff: Optional[datetime] = None,
    odds: Optional[Dict[str, float]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Upstream payload in the provider's current shape."""
    kickoff = kickoff or NOW + timedelta(hours=6)
    payload = {
        "id": match_id,
        "status": status,
        "kickoff_at": kickoff.isoformat() + "Z",
        "home": {"id": 40, "name": "Liverpool", "logo_url": "https://img.example/40.png"},
        "away": {"id": 49, "name": "Chelsea", "logo_url": "https://img.example/49.png"},
        "league": {"id": 39, "name": "Premier League", "country": "England", "flagEmoji": "🏴"},
        "odds": {
            "novig_current": odds or {"home": 1.80, "draw": 3.40, "away": 4.50},
            "books": {"pinnacle": {"home": 1.82}, "bet365": {"home": 1.80}},
        },
        "models": {
            "v1_consensus": {"pick": "home", "confidence": 0.62, "probs": {"home": 0.55}},
        },
    }
    payload.update(extra)
    return payload


class FakeMarketClient:
    """Stands in for MarketApiClient; serves canned payloads per status."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.calls: List[str] = []
        self.closed = False

    async def fetch_matches(self, status: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self.calls.append(status)
        response = self.responses.get(status, [])
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return await response()
        return response

    async def aclose(self) -> None:
        self.closed = True


class FakeErrorRecorder:
    """Collects error recordings instead of writing them."""

    def __init__(self):
        self.recorded: List[tuple] = []

    def record(self, match_id: str, message: str) -> None:
        self.recorded.append((match_id, message))

    async def drain(self) -> None:
        return None


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    """Isolated in-memory database shared by every connection in one test."""
    from app.models import Base

    # StaticPool keeps a single connection so the TestClient threadpool and
    # side-channel sessions see the same in-memory data
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    """Session factory bound to the test engine."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create fresh test database session."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# CONFIGURATION
# =============================================================================

@pytest.fixture
def auth_secrets(monkeypatch):
    """Configure the trigger secrets for the duration of a test."""
    from app.core.config import settings

    monkeypatch.setattr(settings, "CRON_SECRET", "cron-secret")
    monkeypatch.setattr(settings, "ADMIN_TOKEN", "admin-token")
    monkeypatch.setattr(settings, "API_KEY", "operator-key")
    return settings


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture(scope="function")
def test_client(db_session):
    """
    Create FastAPI TestClient bound to the test database.

    Note: We don't use context manager (with TestClient) so the lifespan
    (init_db, scheduler start) does not run against the real database.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from app.main import app
    from app.core.database import get_db

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
