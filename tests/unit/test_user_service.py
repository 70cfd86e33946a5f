"""
Unit tests for the UserService

Covers registration with its upload ordering, the login/refresh/logout token
lifecycle, account updates and the public channel profile.
"""
import os
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from core.auth import PasswordManager, TokenManager, TokenType
from core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from core.models import Subscription, User
from services.user_service import UserService

PASSWORD = "correct-horse"


@pytest.fixture
def tokens():
    return TokenManager("unit-access-secret", "unit-refresh-secret")


@pytest.fixture
def users(database, media_storage, tokens):
    return UserService(database, media_storage, tokens)


@pytest.fixture
def register(users, temp_file):
    async def _register(username="janedoe", email="jane@example.com", **kwargs):
        return await users.register(
            kwargs.pop("full_name", "Jane Doe"),
            email,
            username,
            kwargs.pop("password", PASSWORD),
            temp_file(".png"),
            **kwargs,
        )

    return _register


async def user_count(database) -> int:
    async with database.session() as session:
        return (await session.execute(select(func.count(User.id)))).scalar_one()


@pytest.mark.unit
class TestRegistration:
    async def test_register_normalises_and_uploads(
        self, users, media_storage, temp_file, as_viewer
    ):
        avatar = temp_file(".png")
        cover = temp_file(".jpg")

        view = await users.register(
            " Jane Doe ", "Jane@Example.com", "JaneDoe", PASSWORD, avatar, "image/png",
            cover, "image/jpeg",
        )

        assert view.username == "janedoe"
        assert view.email == "jane@example.com"
        assert view.full_name == "Jane Doe"
        assert view.avatar == media_storage.uploaded[0]
        assert view.cover_image == media_storage.uploaded[1]
        assert not os.path.exists(avatar)
        assert not os.path.exists(cover)
        assert "password_hash" not in view.model_dump()

    async def test_cover_is_optional(self, register):
        view = await register()
        assert view.cover_image == ""

    async def test_duplicate_handle_or_email(self, register, database, media_storage):
        await register()
        uploads_before = len(media_storage.uploaded)

        with pytest.raises(ConflictError):
            await register(email="other@example.com")
        with pytest.raises(ConflictError):
            await register(username="someoneelse")

        assert await user_count(database) == 1
        assert len(media_storage.uploaded) == uploads_before

    @pytest.mark.parametrize(
        "overrides",
        [
            {"username": "x"},
            {"email": "not-an-email"},
            {"password": "short"},
            {"full_name": "   "},
            {"avatar_content_type": "text/plain"},
        ],
    )
    async def test_invalid_fields(self, register, database, media_storage, overrides):
        with pytest.raises(ValidationError):
            await register(**overrides)
        assert await user_count(database) == 0
        assert media_storage.uploaded == []

    async def test_avatar_required(self, users, database):
        with pytest.raises(ValidationError) as exc_info:
            await users.register("Jane", "jane@example.com", "janedoe", PASSWORD, None)
        assert exc_info.value.details["field"] == "avatar"
        assert await user_count(database) == 0

    async def test_upload_failure_creates_no_user(self, register, database, media_storage):
        media_storage.fail_uploads = True
        with pytest.raises(StorageError):
            await register()
        assert await user_count(database) == 0


@pytest.mark.unit
class TestSessions:
    """Test login, refresh and logout"""

    async def test_login_by_username_or_email(self, users, register, tokens):
        await register()

        by_name = await users.login("JaneDoe", PASSWORD)
        by_email = await users.login("jane@example.com", PASSWORD)

        assert by_name.user.username == "janedoe"
        payload = tokens.verify_token(by_email.access_token, TokenType.ACCESS)
        assert payload["sub"] == by_email.user.id
        assert payload["username"] == "janedoe"

    async def test_login_failures(self, users, register):
        await register()

        with pytest.raises(NotFoundError):
            await users.login("nobody", PASSWORD)
        with pytest.raises(AuthenticationError):
            await users.login("janedoe", "wrong-password")
        with pytest.raises(ValidationError):
            await users.login("", PASSWORD)

    async def test_refresh_rotates_and_rejects_reuse(self, users, register):
        await register()
        session = await users.login("janedoe", PASSWORD)

        rotated = await users.refresh(session.refresh_token)
        assert rotated.refresh_token != session.refresh_token

        with pytest.raises(AuthenticationError):
            await users.refresh(session.refresh_token)
        assert (await users.refresh(rotated.refresh_token)).access_token

    async def test_access_token_is_not_a_refresh_token(self, users, register):
        await register()
        session = await users.login("janedoe", PASSWORD)
        with pytest.raises(AuthenticationError):
            await users.refresh(session.access_token)

    async def test_logout_revokes_refresh(self, users, register, as_viewer):
        user = await register()
        session = await users.login("janedoe", PASSWORD)

        await users.logout(as_viewer(user))

        with pytest.raises(AuthenticationError):
            await users.refresh(session.refresh_token)

    async def test_change_password(self, users, register, as_viewer):
        user = await register()

        with pytest.raises(ValidationError) as exc_info:
            await users.change_password(as_viewer(user), "not-it-at-all", "new-password-1")
        assert exc_info.value.details["field"] == "oldPassword"

        await users.change_password(as_viewer(user), PASSWORD, "new-password-1")
        with pytest.raises(AuthenticationError):
            await users.login("janedoe", PASSWORD)
        assert (await users.login("janedoe", "new-password-1")).user.id == user.id

    async def test_password_checks_run_outside_write_transactions(
        self, users, register, database, as_viewer
    ):
        user = await register()
        open_transactions = []
        real_transaction = database.transaction
        real_verify = PasswordManager.verify_password

        @asynccontextmanager
        async def tracking_transaction():
            open_transactions.append(True)
            try:
                async with real_transaction() as session:
                    yield session
            finally:
                open_transactions.pop()

        def checked_verify(password, hashed):
            assert not open_transactions
            return real_verify(password, hashed)

        with patch.object(database, "transaction", tracking_transaction), patch.object(
            PasswordManager, "verify_password", side_effect=checked_verify
        ) as verify:
            result = await users.login("janedoe", PASSWORD)
            await users.change_password(as_viewer(user), PASSWORD, "new-password-1")

        assert verify.call_count == 2
        assert result.refresh_token
        async with database.session() as session:
            stored = await session.get(User, user.id)
        assert stored.refresh_token == result.refresh_token


@pytest.mark.unit
class TestProfile:
    async def test_update_account(self, users, register, as_viewer):
        user = await register()
        view = await users.update_account(as_viewer(user), "Jane Q. Doe", "JQ@example.com")
        assert view.full_name == "Jane Q. Doe"
        assert view.email == "jq@example.com"

    async def test_update_account_email_taken(self, users, register, as_viewer):
        await register()
        other = await register(username="other", email="other@example.com")
        with pytest.raises(ConflictError):
            await users.update_account(as_viewer(other), "Other", "jane@example.com")

    async def test_replace_avatar_removes_old_asset(
        self, users, register, media_storage, temp_file, as_viewer
    ):
        user = await register()
        view = await users.update_avatar(as_viewer(user), temp_file(".png"), "image/png")

        assert view.avatar != user.avatar
        assert media_storage.deleted == [user.avatar]

    async def test_replace_cover_rejects_non_image(self, users, register, temp_file, as_viewer):
        user = await register()
        path = temp_file(".txt")
        with pytest.raises(ValidationError):
            await users.update_cover_image(as_viewer(user), path, "text/plain")
        assert not os.path.exists(path)

    async def test_channel_profile_counts(
        self, users, database, make_user, as_viewer
    ):
        channel = await make_user("bigchannel")
        fan = await make_user()
        other = await make_user()
        async with database.transaction() as session:
            session.add(Subscription(subscriber_id=fan.id, channel_id=channel.id))
            session.add(Subscription(subscriber_id=other.id, channel_id=channel.id))
            session.add(Subscription(subscriber_id=channel.id, channel_id=other.id))

        profile = await users.get_channel_profile("BigChannel", as_viewer(fan))

        assert profile.subscribers_count == 2
        assert profile.channels_subscribed_to_count == 1
        assert profile.is_subscribed is True
        assert (await users.get_channel_profile("bigchannel", as_viewer(None))).is_subscribed is False

    async def test_unknown_channel(self, users, as_viewer):
        with pytest.raises(NotFoundError):
            await users.get_channel_profile("ghost", as_viewer(None))

    async def test_get_user_for_deleted_account(self, users):
        with pytest.raises(AuthenticationError):
            await users.get_user("0" * 32)
