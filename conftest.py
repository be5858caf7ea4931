import pytest
import os
from typing import Callable

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

TEST_DATABASE_URL = "sqlite:///./jobmatch-test.db"

# Must be set before the app (and its engine) is imported
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
# Metrics are written to stdout instead of probing for an agent
os.environ.setdefault("AWS_EMF_ENVIRONMENT", "Local")

# --- Alembic Imports ---
from alembic.config import Config
from alembic import command
# --- End Alembic Imports ---

# Import app and DB dependency function first
from main import app, get_db, get_collaborator_client, manager

# Import database components needed for setup
from database import Base, engine as app_engine
from collaborators import CollaboratorClient
from schemas import UserIdentity
from settings import Environment, Settings, get_environment

connect_args = (
    {"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {}
)
test_engine = create_engine(TEST_DATABASE_URL, connect_args=connect_args)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models and stamp with Alembic head."""
    db_path = TEST_DATABASE_URL.split("///")[-1]
    # Close the connections the app opened at import so its WAL files go away
    app_engine.dispose()
    if os.path.exists(db_path):
        try:
            os.unlink(db_path)
            print(f"\nRemoved existing test database file: {db_path}")
        except OSError as e:
            print(f"Error removing existing test database file {db_path}: {e}")

    print(f"Creating test database tables from models at {db_path}")
    Base.metadata.create_all(bind=test_engine)

    print("Stamping database with Alembic head revision")
    alembic_cfg = Config("alembic.ini")  # Load base config
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)  # Point to test DB
    command.stamp(alembic_cfg, "head")  # Mark DB as up-to-date

    yield  # Tests run here

    test_engine.dispose()
    if os.path.exists(db_path):
        try:
            os.unlink(db_path)
            print(f"Removed test database file: {db_path}")
        except OSError as e:
            print(f"Error removing test database file {db_path}: {e}")


@pytest.fixture(scope="function")
def db_session(setup_test_database):
    """Yields a SQLAlchemy session directly from the test factory."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def override_get_db():
    """Override the get_db dependency to use our test database."""

    def _override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = _override_get_db

    yield

    if original:
        app.dependency_overrides[get_db] = original
    else:
        del app.dependency_overrides[get_db]


# --- Identity ---
@pytest.fixture
def identity() -> UserIdentity:
    return UserIdentity(id="user-123", first_name="Anna", last_name="Petrova")


@pytest.fixture
def other_identity() -> UserIdentity:
    return UserIdentity(id="user-456", first_name="Ivan", last_name="Sidorov")


@pytest.fixture(scope="function")
def override_auth(identity):
    """Run the app in development mode as `identity`."""
    app.dependency_overrides[get_environment] = lambda: Environment(skip_auth=True, mock_user=identity)
    yield identity
    app.dependency_overrides.pop(get_environment, None)


# --- Collaborators ---
@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        resume_parser_url="https://ai.test/parse",
        job_extractor_url="https://ai.test/vacancy",
        letter_generator_url="https://ai.test/letter",
        scoring_url="https://ai.test/score",
        resume_min_display_seconds=0,
        scoring_min_display_seconds=0,
    )


@pytest.fixture
def make_client(test_settings) -> Callable[[Callable[[httpx.Request], httpx.Response]], CollaboratorClient]:
    """Build a CollaboratorClient whose requests are answered by `handler`."""

    def _make(handler):
        return CollaboratorClient(test_settings, transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def use_collaborators():
    """Install a collaborator client into the app for one test."""

    def _use(client: CollaboratorClient) -> CollaboratorClient:
        app.dependency_overrides[get_collaborator_client] = lambda: client
        return client

    yield _use
    app.dependency_overrides.pop(get_collaborator_client, None)


@pytest.fixture(scope="function")
def test_client(override_get_db, override_auth):
    """Provides a test client with the test database and a logged-in user."""
    manager.workflows.clear()
    return TestClient(app)


# --- Sample collaborator payloads ---
@pytest.fixture
def resume_payload() -> dict:
    return {
        "personal_info": {
            "first_name": "Anna",
            "last_name": "Petrova",
            "email": "anna@example.com",
            "phone": "+7 900 000-00-00",
            "location": {"city": "Moscow", "country": "Russia"},
        },
        "skills": {
            "hard_skills": ["Python", "SQL"],
            "soft_skills": ["Communication"],
            "languages": ["English"],
        },
        "education": [{"institution": "MSU", "degree": "BSc", "graduation_year": "2018"}],
        "experience": [
            {
                "position": "Backend Developer",
                "company": "Acme",
                "bullet_list": ["Built APIs", "Owned the billing service"],
                "start_date": "2019-01",
            }
        ],
        "summary": "Backend developer with five years of experience.",
        "desired_position": "Senior Backend Developer",
        "similar_positions": [f"Position {i}" for i in range(8)],
    }


@pytest.fixture
def job_payload() -> dict:
    return {
        "job_data": {
            "job_title": "Senior Python Developer",
            "company_name": "Globex",
            "location": {"city": "Remote"},
            "employment_type": "full-time",
            "description": "Build and run backend services.",
            "skills": {"hard_skills": ["Python", "PostgreSQL"], "soft_skills": ["Ownership"]},
        }
    }


@pytest.fixture
def scoring_payload() -> dict:
    def category(score, name):
        return {"score": score, "summary": f"{name} summary", "description": f"{name} details"}

    return {
        "scoring_result": {
            "total_score": 78,
            "breakdown": {
                "hard_skills": category(80, "Hard skills"),
                "soft_skills": category(70, "Soft skills"),
                "experience_match": category(75, "Experience"),
                "position_match": category(85, "Position"),
            },
            "recommendation": "good_match",
            "recruiter_recommendation": "Invite to an interview.",
            "candidate_recommendation": "Highlight PostgreSQL experience.",
        }
    }
