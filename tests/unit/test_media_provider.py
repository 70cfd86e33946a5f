"""
Unit tests for Media Storage Providers

Tests the Cloudinary and local-disk providers with mocked external dependencies.
"""
import hashlib
import os

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.exceptions import StorageError
from providers.media_provider import (
    CloudinaryMediaStorage,
    LocalMediaStorage,
    StoredMedia,
    cleanup_temp_files,
    create_media_storage,
)


def async_context(value):
    """MagicMock usable as `async with ... as value`"""
    manager = MagicMock()
    manager.__aenter__ = AsyncMock(return_value=value)
    manager.__aexit__ = AsyncMock(return_value=False)
    return manager


def mock_client(status: int, payload: dict):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    session = MagicMock()
    session.post = MagicMock(return_value=async_context(response))
    return async_context(session), session


class TestStoredMedia:
    def test_duration_rounded_to_seconds(self):
        assert StoredMedia("u", "p", 12.6).duration_seconds == 13
        assert StoredMedia("u", "p").duration_seconds == 0


class TestCleanup:
    def test_missing_files_are_ignored(self, temp_file):
        path = temp_file()
        cleanup_temp_files(path, None, path, "/nonexistent/file")
        assert not os.path.exists(path)


class TestCloudinaryMediaStorage:
    """Test CloudinaryMediaStorage"""

    @pytest.fixture
    def provider(self):
        return CloudinaryMediaStorage("demo", "key-123", "secret-xyz")

    def test_properties(self, provider):
        assert provider.source_name == "cloudinary"
        assert provider.configured is True
        assert CloudinaryMediaStorage().configured is False

    def test_sign(self, provider):
        expected = hashlib.sha1(b"public_id=abc&timestamp=1700000000secret-xyz").hexdigest()
        assert provider.sign({"timestamp": "1700000000", "public_id": "abc"}) == expected

    @pytest.mark.parametrize(
        "url,expected",
        [
            (
                "https://res.cloudinary.com/demo/video/upload/v1712/abc123.mp4",
                {"resource_type": "video", "public_id": "abc123"},
            ),
            (
                "https://res.cloudinary.com/demo/image/upload/folder/thumb.png",
                {"resource_type": "image", "public_id": "folder/thumb"},
            ),
            ("https://example.com/not/cloudinary.png", None),
            ("https://res.cloudinary.com/demo/image/upload/v1712", None),
        ],
    )
    def test_parse_url(self, url, expected):
        assert CloudinaryMediaStorage.parse_url(url) == expected

    async def test_upload_success(self, provider, temp_file):
        path = temp_file(".mp4")
        client, session = mock_client(
            200,
            {
                "secure_url": "https://res.cloudinary.com/demo/video/upload/v1/abc.mp4",
                "public_id": "abc",
                "duration": 42.4,
            },
        )

        with patch("providers.media_provider.aiohttp.ClientSession", return_value=client):
            stored = await provider.upload(path)

        assert stored.url == "https://res.cloudinary.com/demo/video/upload/v1/abc.mp4"
        assert stored.public_id == "abc"
        assert stored.duration_seconds == 42
        assert session.post.call_args[0][0].endswith("/demo/auto/upload")
        assert not os.path.exists(path)

    async def test_upload_rejected(self, provider, temp_file):
        path = temp_file(".png")
        client, _ = mock_client(400, {"error": {"message": "Invalid image file"}})

        with patch("providers.media_provider.aiohttp.ClientSession", return_value=client):
            with pytest.raises(StorageError) as exc_info:
                await provider.upload(path)

        assert "Invalid image file" in exc_info.value.message
        assert not os.path.exists(path)

    async def test_upload_without_credentials_removes_file(self, temp_file):
        path = temp_file(".png")
        with pytest.raises(StorageError):
            await CloudinaryMediaStorage().upload(path)
        assert not os.path.exists(path)

    async def test_delete(self, provider):
        client, session = mock_client(200, {"result": "ok"})

        with patch("providers.media_provider.aiohttp.ClientSession", return_value=client):
            deleted = await provider.delete(
                "https://res.cloudinary.com/demo/image/upload/v1/thumb.png"
            )

        assert deleted is True
        assert session.post.call_args[0][0].endswith("/demo/image/destroy")
        assert session.post.call_args[1]["data"]["public_id"] == "thumb"

    async def test_delete_unknown_url_is_false(self, provider):
        assert await provider.delete("https://example.com/file.png") is False
        assert await provider.delete("") is False


class TestLocalMediaStorage:
    """Test LocalMediaStorage"""

    @pytest.fixture
    def provider(self, tmp_path):
        return LocalMediaStorage(str(tmp_path / "media"), "/media")

    async def test_upload_and_delete(self, provider, tmp_path, temp_file):
        path = temp_file(".png", b"image-bytes")

        stored = await provider.upload(path)

        assert stored.url.startswith("/media/")
        assert stored.url.endswith(".png")
        assert not os.path.exists(path)
        target = tmp_path / "media" / stored.url.rsplit("/", 1)[1]
        assert target.read_bytes() == b"image-bytes"

        assert await provider.delete(stored.url) is True
        assert not target.exists()
        assert await provider.delete(stored.url) is False

    async def test_upload_missing_file(self, provider):
        with pytest.raises(StorageError):
            await provider.upload(None)

    async def test_delete_foreign_url(self, provider):
        assert await provider.delete("https://elsewhere.test/a.png") is False


class TestCreateMediaStorage:
    def test_falls_back_to_local(self):
        assert isinstance(create_media_storage(), LocalMediaStorage)

    def test_cloudinary_when_configured(self, monkeypatch):
        monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "demo")
        monkeypatch.setenv("CLOUDINARY_API_KEY", "key")
        monkeypatch.setenv("CLOUDINARY_API_SECRET", "secret")
        assert isinstance(create_media_storage(), CloudinaryMediaStorage)
