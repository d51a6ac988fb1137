"""
Pytest fixtures: a throwaway SQLite database per test, with the repositories
and vote coordinator constructed against it.
"""
from datetime import datetime, timedelta, timezone

import pytest

from photoshare.database import Photo, User, init_db, make_engine, make_session_factory
from photoshare.repositories import PhotoRepository, UserRepository
from photoshare.votes import VoteCoordinator

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class RecordingCleaner:
    """Stands in for PhotoCleaner, remembering which files it was asked to remove."""

    def __init__(self):
        self.cleaned = []

    def clean(self, filename):
        self.cleaned.append(filename)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}", timeout=30)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def cleaner():
    return RecordingCleaner()


@pytest.fixture
def photos(session_factory, cleaner):
    return PhotoRepository(session_factory, cleaner)


@pytest.fixture
def users(session_factory):
    return UserRepository(session_factory)


@pytest.fixture
def votes(session_factory):
    return VoteCoordinator(session_factory)


@pytest.fixture
def make_user(users):
    def _make(name, password="password123", is_admin=False, email=None):
        user = User(name=name, email=email or f"{name}@example.com", is_admin=is_admin)
        return users.insert(user, password)
    return _make


@pytest.fixture
def make_photo(photos):
    counter = {"n": 0}

    def _make(owner, title="A photo", tags=(), up_votes=0, down_votes=0, created_at=None):
        counter["n"] += 1
        photo = Photo(
            owner_id=owner.id,
            title=title,
            file_ref=f"photo{counter['n']:04d}.jpg",
            up_votes=up_votes,
            down_votes=down_votes,
            created_at=created_at or BASE_TIME + timedelta(minutes=counter["n"]),
        )
        return photos.insert(photo, tags)
    return _make
