"""Shared fixtures: an in-memory SQLite store injected into the app."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from iceout.config import Settings
from iceout.database import create_db_engine, init_db, make_session_factory
from iceout.device import DeviceIdentityProvider
from iceout.main import create_app
from iceout.models import Profile, Sighting

TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture
def engine():
    eng = create_db_engine(TEST_DB_URL)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = make_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url=TEST_DB_URL, device_id_secret="test-secret")


@pytest.fixture
def client(settings, engine):
    app = create_app(settings, engine=engine)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def identity() -> DeviceIdentityProvider:
    return DeviceIdentityProvider("test-secret")


def make_sighting(db, lat: float = 40.7128, lng: float = -74.0060, media=None, status: str = "unverified") -> Sighting:
    row = Sighting(
        lat=lat,
        lng=lng,
        activity_type="Vehicle stop",
        media=media or [],
        status=status,
        validations_count=0,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def make_profile(db, principal_id: str, role: str = "anonymous", email: str | None = None) -> Profile:
    row = Profile(id=principal_id, role=role, email=email)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


PHOTO = [{"path": "sightings/abc/photo.jpg", "type": "image/jpeg"}]
