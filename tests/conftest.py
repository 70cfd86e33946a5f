import os
import sys
import itertools
from datetime import datetime, timedelta
from pathlib import Path
from typing import AsyncGenerator, Generator, List, Optional

import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import Database
from core.exceptions import StorageError
from core.models import Comment, Post, User, Video
from providers.media_provider import MediaStorage, StoredMedia, remove_local_file
from services.identity import Viewer

TEST_ACCESS_SECRET = "test-access-secret"
TEST_REFRESH_SECRET = "test-refresh-secret"


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("ACCESS_TOKEN_SECRET", TEST_ACCESS_SECRET)
    monkeypatch.setenv("REFRESH_TOKEN_SECRET", TEST_REFRESH_SECRET)
    for variable in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
        monkeypatch.delenv(variable, raising=False)


class FakeMediaStorage(MediaStorage):
    """In-memory storage double that honours the temp-file contract"""

    def __init__(self, duration: float = 12.6):
        self.duration = duration
        self.fail_uploads = False
        self.uploaded: List[str] = []
        self.deleted: List[str] = []
        self._counter = itertools.count(1)

    @property
    def source_name(self) -> str:
        return "fake"

    async def upload(self, local_path: str) -> StoredMedia:
        try:
            if self.fail_uploads:
                raise StorageError("upload rejected")
            n = next(self._counter)
            url = f"https://media.test/asset-{n}{Path(local_path).suffix}"
            self.uploaded.append(url)
            return StoredMedia(url=url, public_id=f"asset-{n}", duration=self.duration)
        finally:
            remove_local_file(local_path)

    async def delete(self, url: str) -> bool:
        self.deleted.append(url)
        return True


@pytest.fixture
def media_storage() -> FakeMediaStorage:
    return FakeMediaStorage()


@pytest.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """A fresh SQLite database file per test"""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'videotube-test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def temp_file(tmp_path):
    """Factory for throwaway upload files"""
    counter = itertools.count(1)

    def _make(suffix: str = ".bin", content: bytes = b"data") -> str:
        path = tmp_path / f"upload-{next(counter)}{suffix}"
        path.write_bytes(content)
        return str(path)

    return _make


@pytest.fixture
def make_user(database):
    counter = itertools.count(1)

    async def _make(username: Optional[str] = None, full_name: Optional[str] = None) -> User:
        n = next(counter)
        username = username or f"user{n}"
        user = User(
            username=username,
            email=f"{username}@example.com",
            full_name=full_name or f"User {n}",
            avatar=f"https://media.test/avatar-{n}.png",
            password_hash="not-a-real-hash",
        )
        async with database.transaction() as session:
            session.add(user)
        return user

    return _make


@pytest.fixture
def make_video(database):
    counter = itertools.count(1)
    base_time = datetime(2024, 1, 1, 12, 0, 0)

    async def _make(owner: User, published: bool = True, **fields) -> Video:
        n = next(counter)
        values = {
            "title": f"Video {n}",
            "description": f"Description {n}",
            "video_file": f"https://media.test/video-{n}.mp4",
            "thumbnail": f"https://media.test/thumb-{n}.png",
            "duration": 60 + n,
            "views": n,
            "created_at": base_time + timedelta(minutes=n),
            "updated_at": base_time + timedelta(minutes=n),
        }
        values.update(fields)
        video = Video(owner_id=owner.id, is_published=published, **values)
        async with database.transaction() as session:
            session.add(video)
        return video

    return _make


@pytest.fixture
def make_post(database):
    async def _make(owner: User, content: str = "Hello channel") -> Post:
        post = Post(owner_id=owner.id, content=content)
        async with database.transaction() as session:
            session.add(post)
        return post

    return _make


@pytest.fixture
def make_comment(database):
    counter = itertools.count(1)
    base_time = datetime(2024, 2, 1, 8, 0, 0)

    async def _make(owner: User, content: Optional[str] = None, **fields) -> Comment:
        n = next(counter)
        created = base_time + timedelta(minutes=n)
        comment = Comment(
            owner_id=owner.id,
            content=content or f"Comment {n}",
            created_at=created,
            updated_at=created,
            **fields,
        )
        async with database.transaction() as session:
            session.add(comment)
        return comment

    return _make


def viewer_of(user: Optional[User]) -> Viewer:
    return Viewer(user.id) if user is not None else Viewer.anonymous()


@pytest.fixture
def as_viewer():
    return viewer_of


@pytest.fixture
def test_client(tmp_path, monkeypatch, media_storage) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app backed by a throwaway database."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api-test.db'}")

    from main import create_app
    from api.dependencies import get_media_storage

    app = create_app()
    app.dependency_overrides[get_media_storage] = lambda: media_storage
    with TestClient(app) as client:
        yield client


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.info = Mock()
    logger.error = Mock()
    logger.warning = Mock()
    logger.debug = Mock()
    return logger
