"""
Pytest configuration and fixtures
"""
import pytest
import os
import sys
from pathlib import Path
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.orm import sessionmaker, Session

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Set test environment variables before importing
os.environ["ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-for-integration-tests-only-min-32-chars"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CORS_ORIGINS"] = "http://localhost:3000"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("OPENAI_API_KEY", "sk-test")

# Import after setting env vars
from content_studio.db import Base, get_db, User
from content_studio.db.engine import build_engine
from content_studio.auth import get_password_hash, create_user_token
from content_studio.main import create_app
from content_studio.services.credits_service import CreditsService
from content_studio.services.templates import seed_templates
from content_studio.services.llm_service import get_llm_service

TEST_PASSWORD = "testpassword123"


@pytest.fixture(scope="session")
def app():
    return create_app()


@pytest.fixture(scope="session")
def test_engine():
    """In-memory SQLite shared by every test; each test runs in a rolled-back transaction"""
    engine = build_engine("sqlite://")

    # pysqlite needs explicit BEGIN for SAVEPOINT support
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(app, test_engine):
    """Create a database session for each test"""
    connection = test_engine.connect()
    transaction = connection.begin()

    # Service commits and rollbacks act on savepoints inside the outer transaction
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=connection,
        join_transaction_mode="create_savepoint",
    )
    session = TestingSessionLocal()
    seed_templates(session)

    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db

    yield session

    session.close()
    transaction.rollback()
    connection.close()
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app, db_session):
    """Create test client"""
    return TestClient(app)


def _make_user(db: Session, email: str, is_admin: bool = False) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        first_name="Test",
        last_name="User",
        is_active=True,
        is_admin=is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    CreditsService(db).get_or_create(user.id)
    return user


@pytest.fixture(scope="function")
def test_user(db_session: Session) -> User:
    """Create a test user with the Free credit allowance"""
    return _make_user(db_session, "test@example.com")


@pytest.fixture(scope="function")
def other_user(db_session: Session) -> User:
    return _make_user(db_session, "other@example.com")


@pytest.fixture(scope="function")
def admin_user(db_session: Session) -> User:
    return _make_user(db_session, "admin@example.com", is_admin=True)


@pytest.fixture(scope="function")
def auth_headers(test_user: User) -> dict:
    return {"Authorization": f"Bearer {create_user_token(test_user)}"}


@pytest.fixture(scope="function")
def admin_headers(admin_user: User) -> dict:
    return {"Authorization": f"Bearer {create_user_token(admin_user)}"}


@pytest.fixture(scope="function")
def mock_llm(app):
    """Replace the LLM service dependency with a Mock"""
    from unittest.mock import Mock

    llm = Mock()
    llm.generate_text.return_value = "Generated text about testing"
    llm.generate_image.return_value = {"image_url": "https://images.example.com/1.png", "prompt": "a cat"}
    app.dependency_overrides[get_llm_service] = lambda: llm
    yield llm
    app.dependency_overrides.pop(get_llm_service, None)
