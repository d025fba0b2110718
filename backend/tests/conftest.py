import os

# The app engine is never used by tests; keep it off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from rally.database import get_session, import_models  # noqa: E402
from rally.main import app  # noqa: E402
from rally.services.notifications import get_event_publisher  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test database: sqlite in memory with StaticPool
# ============================================================================
# 1. StaticPool makes every session share one connection, hence one database
# 2. check_same_thread=False is required for TestClient's worker thread
# 3. Tables are created per test and dropped afterwards
# 4. The app dependency is overridden before the TestClient starts
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Fresh schema for every test."""
    import_models()
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Test client whose requests run against the test engine."""
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_event_publisher():
    """Subscribers registered by a test never leak into the next one."""
    get_event_publisher().clear()
    yield
    get_event_publisher().clear()
