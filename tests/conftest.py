import os
from unittest.mock import patch, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ideabox.main import app
from ideabox.database import Base, get_db
from ideabox.models import APIKey, UsageLog, User  # noqa: F401  (register models with Base)
from ideabox.core.cache import InMemoryBackend, set_cache, reset_cache
from ideabox.core.credentials import CredentialStore, InMemoryCredentialRepository, SqlCredentialRepository

# Use a file-based SQLite database for testing to avoid threading issues
TEST_DATABASE_URL = "sqlite:///./test.db"
TEST_ENCRYPTION_SECRET = "test-encryption-secret"


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """Set up and tear down test database for each test"""
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})

    # Drop all tables first (cleanup from previous tests)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        try:
            db = TestingSessionLocal()
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    # Fresh cache per test (admin status must not carry over)
    set_cache(InMemoryBackend())

    yield

    reset_cache()
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

    if os.path.exists("./test.db"):
        os.remove("./test.db")


@pytest.fixture
def client():
    """Create test client"""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def test_db():
    """Create test database session for direct database operations"""
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def sql_store(test_db):
    return CredentialStore(SqlCredentialRepository(test_db), TEST_ENCRYPTION_SECRET)


@pytest.fixture
def memory_store():
    return CredentialStore(InMemoryCredentialRepository(), TEST_ENCRYPTION_SECRET)


@pytest.fixture
def mock_http():
    """Patch the outbound HTTP client; yields the client mock.

    Configure mock_http.post.return_value (see `respond`) or side_effect.
    """
    with patch("ideabox.core.ai_service.httpx.Client") as mock_client_cls:
        mock_client = MagicMock()
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_cls.return_value = mock_client
        yield mock_client


@pytest.fixture
def respond(mock_http):
    """Set the mocked provider response: respond(status_code, json_body, method="post")."""
    def _respond(status_code, data, method="post"):
        response = MagicMock()
        response.status_code = status_code
        if isinstance(data, Exception):
            response.json.side_effect = data
        else:
            response.json.return_value = data
        getattr(mock_http, method).return_value = response
        return response
    return _respond
