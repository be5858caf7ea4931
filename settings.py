from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

from schemas import UserIdentity


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod")
    )

    # Database (falls back to DB_* variables, then local SQLite)
    database_url: Optional[str] = None

    # External AI collaborators
    resume_parser_url: str = "https://77xihg.buildship.run/first-resume-upload"
    job_extractor_url: str = "https://77xihg.buildship.run/vacancy-upload"
    letter_generator_url: str = "https://77xihg.buildship.run/cvV2Json-8e263af8b451"
    scoring_url: str = "https://77xihg.buildship.run/resume-vacancy-letter-copy-248ea5426c1b"

    # Abort timeouts, seconds. Parsing large files is the slowest call.
    resume_parse_timeout: float = 120.0
    collaborator_timeout: float = 60.0

    # Minimum time the upload and scoring steps take before results are revealed
    resume_min_display_seconds: float = 32.0
    scoring_min_display_seconds: float = 15.0

    # Identity provider (HS256 access tokens)
    jwt_secret: Optional[str] = None
    jwt_audience: str = "authenticated"

    # Development mode: skip token checks and act as the mock user
    skip_auth: bool = False
    mock_user_id: str = "cdba5822-f73a-4a66-a342-7ccaa39fa406"
    mock_user_first_name: Optional[str] = "Developer"
    mock_user_last_name: Optional[str] = "Test"

    # Application base URL (for CORS etc.)
    app_base_url: str = "http://localhost:8000"  # Default for local dev

    # In-memory workflow sessions kept before the least recently used is dropped
    max_workflow_sessions: int = 1000


class Environment(BaseModel):
    """Startup-time switches injected into the app instead of module globals."""

    model_config = ConfigDict(frozen=True)

    skip_auth: bool = False
    mock_user: Optional[UserIdentity] = None


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def get_environment() -> Environment:
    settings = get_settings()
    if not settings.skip_auth:
        return Environment(skip_auth=False)
    return Environment(
        skip_auth=True,
        mock_user=UserIdentity(
            id=settings.mock_user_id,
            first_name=settings.mock_user_first_name,
            last_name=settings.mock_user_last_name,
        ),
    )
