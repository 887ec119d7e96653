"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.simplefin_items import get_relink_service
from database import Base, enable_sqlite_foreign_keys, get_db
from main import app
from services.relink_service import RelinkService
from services.simplefin_import_service import SimplefinImportService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    family,
    other_family,
    security,
    simplefin_item,
)
from tests.fixtures.mocks import SAMPLE_SIMPLEFIN_BALANCES, MockSimpleFINClient


@pytest.fixture(autouse=True)
def reset_relink_locks():
    """Clear running relink batches so tests never see each other's state."""
    RelinkService._running_items.clear()
    yield
    RelinkService._running_items.clear()


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="mock_simplefin_client")
def mock_simplefin_client_fixture():
    """Create a mock SimpleFIN client with sample balances."""
    return MockSimpleFINClient(balances=SAMPLE_SIMPLEFIN_BALANCES)


@pytest.fixture(name="relink_service")
def relink_service_fixture(mock_simplefin_client):
    """RelinkService wired to the mock SimpleFIN client."""
    return RelinkService(import_service=SimplefinImportService(client=mock_simplefin_client))


def _make_client(db, service):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_relink_service():
        return service

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_relink_service] = override_get_relink_service
    return TestClient(app)


@pytest.fixture(name="client")
def client_fixture(db, relink_service):
    """Create a test client with the test database."""
    client = _make_client(db, relink_service)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="client_with_failing_refresh")
def client_with_failing_refresh_fixture(db):
    """Create a test client whose SimpleFIN refresh always fails."""
    failing_client = MockSimpleFINClient(
        should_fail=True,
        failure_message="SimpleFIN API unavailable",
        failure_type="connection",
    )
    service = RelinkService(import_service=SimplefinImportService(client=failing_client))
    client = _make_client(db, service)
    yield client
    app.dependency_overrides.clear()
