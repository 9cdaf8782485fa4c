"""
Test configuration and fixtures for the task management API tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database and blob store overrides
- Authentication helpers (JWT token generation)
- Common fixtures for users and tasks
"""

import os
import sys
import logging
from datetime import timedelta
from pathlib import Path
from typing import Generator, Dict

# Keep the application engine off PostgreSQL and give tokens a stable key
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.dialects.postgresql import JSONB

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
from auth.security import hash_password, create_access_token
from storage import FileStore, get_file_store
from time_utils import utc_now

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Replace PostgreSQL-specific types with SQLite-compatible types
    for table in Base.metadata.tables.values():
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture(scope="function")
def client(test_db: Session, upload_dir: Path) -> TestClient:
    """
    Create FastAPI test client with database and blob store overrides.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_store] = lambda: FileStore(upload_dir)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _create_user(db: Session, name: str, email: str, password: str, role: str = "user") -> models.User:
    user = models.User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created {role} user with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def admin_user(test_db: Session) -> models.User:
    return _create_user(test_db, "Admin User", "admin.user@example.com", "admin123", role="admin")


@pytest.fixture(scope="function")
def regular_user(test_db: Session) -> models.User:
    return _create_user(test_db, "Regular User", "regular.user@example.com", "user123")


@pytest.fixture(scope="function")
def another_user(test_db: Session) -> models.User:
    """Second non-admin user for multi-user scenarios."""
    return _create_user(test_db, "Another User", "another.user@example.com", "another123")


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    token_data = {
        "sub": str(user.id),
        "role": user.role,
        "email": user.email
    }
    return create_access_token(token_data, expires_delta)


@pytest.fixture(scope="function")
def auth_headers(admin_user: models.User) -> Dict[str, str]:
    """Authorization headers for the admin user."""
    return {"Authorization": f"Bearer {create_auth_token(admin_user)}"}


@pytest.fixture(scope="function")
def user_auth_headers(regular_user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(regular_user)}"}


@pytest.fixture(scope="function")
def another_user_auth_headers(another_user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(another_user)}"}


def future_iso(days: int = 1) -> str:
    """ISO timestamp `days` from now, suitable for a dueDate in a request body."""
    return (utc_now() + timedelta(days=days)).isoformat()


def insert_task(db: Session, assignee: models.User, creator: models.User, **overrides) -> models.Task:
    """
    Insert a task directly, bypassing request validation.

    Used for states the API refuses to create, such as past due dates.
    """
    values = dict(
        title="Seeded task",
        description="Inserted directly for testing",
        status=models.TaskStatus.todo,
        priority=models.TaskPriority.medium,
        due_date=utc_now() + timedelta(days=3),
        tags=[],
        attachments=[],
        assigned_to_id=assignee.id,
        created_by_id=creator.id,
        is_deleted=False,
    )
    values.update(overrides)
    task = models.Task(**values)
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


@pytest.fixture(scope="function")
def task(test_db: Session, regular_user: models.User, admin_user: models.User) -> models.Task:
    """A todo task assigned to the regular user, created by the admin."""
    return insert_task(
        test_db,
        regular_user,
        admin_user,
        title="Write release notes",
        description="Summarize the changes for the next release",
        tags=["docs", "release"],
    )
