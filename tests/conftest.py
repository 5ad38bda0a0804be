import os

# connection.py 가 import 시점에 엔진을 만들기 때문에 squadapi import 전에 설정
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("TIMEZONE", "UTC")

import random
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from squadapi.models import Base
from squadapi.services.challenge_service import ChallengeService
from squadapi.services.judge_service import JudgeService
from squadapi.services.power_service import PowerService
from squadapi.services.squad_membership_service import StaticSquadMembership
from squadapi.services.star_service import StarService

SQUAD_ID = "squad-1"
MEMBERS = ["alice", "bob", "carol", "dave", "erin"]
T0 = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def membership():
    return StaticSquadMembership({SQUAD_ID: MEMBERS})


@pytest.fixture
def star_service(db):
    return StarService(db)


@pytest.fixture
def power_service(db):
    return PowerService(db, rng=random.Random(7))


@pytest.fixture
def judge_service(db, star_service):
    return JudgeService(db, star_service=star_service)


@pytest.fixture
def challenge_service(db, membership, power_service, judge_service):
    return ChallengeService(
        db,
        membership,
        power_service=power_service,
        judge_service=judge_service,
    )


@pytest.fixture
def app(db, membership):
    from squadapi.database.session import get_db
    from squadapi.deps import get_squad_membership
    from squadapi.main import create_app

    app = create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_squad_membership] = lambda: membership
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


def auth_headers(user_id: str, is_admin: bool = False) -> dict:
    from squadapi.core.security import create_access_token

    token = create_access_token({"sub": user_id, "is_admin": is_admin})
    return {"Authorization": f"Bearer {token}"}
