import os

# Settings are read when the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_umroh.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ALGORITHM", "HS256")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

# Imports for testing tools
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from unittest.mock import AsyncMock
from jose import jwt

# Import your application code
from umroh_service.main import app
from umroh_service.database import Base, get_db
from umroh_service.config import settings
from umroh_service.routers import reminder_router

# --- Test Database Setup ---
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_umroh.db"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# --- Database Management Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def setup_db():
    """Creates and drops the test database tables."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Provides a clean database session for each test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()


# --- Mocking External Services ---
@pytest.fixture(scope="function", autouse=True)
def mock_lifespan_services(mocker):
    """
    Keeps the app lifespan away from Redis and the background reminder loop.
    """
    mocker.patch("umroh_service.main.redis.from_url", return_value=AsyncMock())
    mocker.patch("umroh_service.main.FastAPILimiter.init", new_callable=AsyncMock)
    mocker.patch("umroh_service.main.run_reminder_scheduler", new_callable=AsyncMock)


# --- API Test Client Fixture ---
@pytest.fixture(scope="function")
def client(db_session):
    """Provides a TestClient bound to the test session."""
    def override_get_db():
        try:
            yield db_session
        finally:
            db_session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[reminder_router.limit_sweep_rate] = lambda: None

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# --- Auth helpers ---
def create_test_token(user_id: int) -> str:
    """Creates a bearer token like the identity service would issue."""
    token = jwt.encode({"sub": str(user_id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return f"Bearer {token}"


@pytest.fixture
def auth_headers_for():
    def _headers(user_id: int) -> dict:
        return {"Authorization": create_test_token(user_id)}
    return _headers
