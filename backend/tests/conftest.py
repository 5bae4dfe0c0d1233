import os
from datetime import datetime, timedelta

# Keep the app's own engine off the filesystem during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from league_app.config import Settings, get_settings  # noqa: E402
from league_app.database import get_session  # noqa: E402
from league_app.main import app  # noqa: E402
from league_app.services.record_store import RecordStore  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependencies overridden to use test_engine and TEST_SETTINGS (see client_fixture)
# 5. Tables dropped after every test: team names are unique
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TEST_SETTINGS = Settings(
    database_url=TEST_DATABASE_URL,
    auto_lock_delay_minutes=0,
    red_card_suspension_matches=1,
    yellow_card_thresholds={3: 1, 5: 1, 7: 2},
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


def override_get_settings() -> Settings:
    return TEST_SETTINGS


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a freshly created schema."""
    # Import all models to ensure they're registered BEFORE create_all
    from league_app.models.card_record import CardRecord  # noqa: F401
    from league_app.models.manual_suspension import ManualSuspension  # noqa: F401
    from league_app.models.match import Match  # noqa: F401
    from league_app.models.player import Player  # noqa: F401
    from league_app.models.side_effect_failure import SideEffectFailure  # noqa: F401
    from league_app.models.team import Team  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    return TEST_SETTINGS


@pytest.fixture(name="store")
def store_fixture(session: Session) -> RecordStore:
    return RecordStore(session)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session and settings

    Overrides MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_settings] = override_get_settings

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Row factories
# ============================================================================


@pytest.fixture
def make_team(session: Session):
    from league_app.models.team import Team

    def _make(name: str) -> Team:
        team = Team(name=name)
        session.add(team)
        session.commit()
        session.refresh(team)
        return team

    return _make


@pytest.fixture
def make_player(session: Session):
    from league_app.models.player import Player

    def _make(team_id: int, first_name: str = "Test", last_name: str = "Player") -> Player:
        player = Player(team_id=team_id, first_name=first_name, last_name=last_name)
        session.add(player)
        session.commit()
        session.refresh(player)
        return player

    return _make


@pytest.fixture
def make_match(session: Session):
    """Unlocked match in the future unless told otherwise."""
    from league_app.models.match import Match

    def _make(**fields) -> Match:
        fields.setdefault("scheduled_at", datetime.utcnow() + timedelta(days=7))
        match = Match(**fields)
        session.add(match)
        session.commit()
        session.refresh(match)
        return match

    return _make
