import os

# The app's own engine must never touch a file during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from bracketflow.database import build_engine, get_session, init_db  # noqa: E402
from bracketflow.main import app  # noqa: E402

# ============================================================================
# Test Database Setup
# ============================================================================
# 1. build_engine() puts sqlite:///:memory: on a StaticPool so ALL sessions share one DB
# 2. App dependency overridden to use test_engine (see client_fixture)
# 3. Tables dropped and recreated per test so stage ids and match codes never collide
test_engine = build_engine("sqlite:///:memory:")


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="engine")
def engine_fixture():
    """The shared in-memory engine, for tests that need more than one session"""
    return test_engine


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a freshly created schema"""
    SQLModel.metadata.drop_all(test_engine)
    init_db(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place
    for the entire duration. This ensures the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def tournament_id(client: TestClient) -> int:
    response = client.post("/api/tournaments", json={"name": "Test Cup", "game": "valorant"})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def make_stage(client: TestClient, tournament_id: int):
    """Factory: create a stage via the API and return its JSON"""

    def _make(fmt: str, teams, **extra):
        payload = {"name": f"{fmt} stage", "format": fmt, "teams": list(teams)}
        payload.update(extra)
        response = client.post(f"/api/tournaments/{tournament_id}/stages", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _make
