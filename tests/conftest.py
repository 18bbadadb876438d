from __future__ import annotations

import os

# engine/settings read these at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_ENV", "local")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from teamroster.db.models import Base
from teamroster.db.session import get_db
from teamroster.main import app
from teamroster.schemas.player import PlayerIn
from teamroster.schemas.team import TeamIn
from teamroster.services import teams as team_service

ACTOR = 42


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        s = session_factory()
        try:
            yield s
            s.commit()
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def team_in(**overrides) -> TeamIn:
    data = {
        "name": "Lightning",
        "age_group": "U12",
        "division": "Competitive",
        "season_id": 1,
        "max_players": 18,
    }
    data.update(overrides)
    return TeamIn(**data)


def player_in(user_id: int, positions, primary=None, jersey=None, **extra) -> PlayerIn:
    return PlayerIn(
        user_id=user_id,
        positions=list(positions),
        primary_position=primary or positions[0],
        jersey_number=jersey,
        **extra,
    )


@pytest.fixture
def make_team(db):
    def _make(**overrides) -> int:
        result = team_service.create_team(db, team_in(**overrides), actor_id=ACTOR)
        assert result.ok, result.error
        return result.value
    return _make
