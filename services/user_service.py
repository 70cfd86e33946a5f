"""
Account and Channel Profile Service.

This module provides the `UserService`, which owns everything tied to a user
record: registration, login and token rotation, profile and image updates,
and the public channel profile with subscription counts.

Key Components:
- Registration: Validates every field and checks handle/email uniqueness
  before uploading the avatar (and optional cover image), then inserts the
  row. A failed insert removes the uploaded images again.
- Sessions: Login issues an access/refresh token pair and stores the refresh
  token on the user row. `refresh` only accepts the stored token and rotates
  both; `logout` clears it.
- Images: Avatar and cover updates upload the new file first, switch the URL
  and then remove the old asset from storage on a best-effort basis.

Architectural Design:
- Token mechanics live in `core.auth.TokenManager`; this service decides who
  receives a token.
- Temporary upload files are handed over as paths and never outlive a call.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.auth import PasswordManager, TokenManager, TokenType
from core.database import Database
from core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from core.models import Subscription, User, utcnow
from core.schemas import AuthTokens, ChannelProfile, LoginResult, UserView
from core.validation import InputValidator
from providers.media_provider import MediaStorage, StoredMedia, cleanup_temp_files
from services.identity import Viewer
from services.queries import get_or_404, subscriber_count

logger = logging.getLogger(__name__)


class UserService:
    """Accounts, sessions and channel profiles"""

    def __init__(self, database: Database, storage: MediaStorage, tokens: TokenManager):
        self.database = database
        self.storage = storage
        self.tokens = tokens

    async def _discard(self, *uploads: Optional[StoredMedia]):
        for stored in uploads:
            if stored is not None and not await self.storage.delete(stored.url):
                logger.warning(f"Could not remove orphaned upload {stored.url}")

    async def _ensure_unique(self, session, username: Optional[str], email: Optional[str], exclude_id=None):
        clauses = []
        if username:
            clauses.append(User.username == username)
        if email:
            clauses.append(User.email == email)
        statement = select(User).where(or_(*clauses))
        if exclude_id:
            statement = statement.where(User.id != exclude_id)
        existing = (await session.execute(statement)).scalars().first()
        if existing is not None:
            raise ConflictError("User with email or username already exists")

    async def register(
        self,
        full_name: Optional[str],
        email: Optional[str],
        username: Optional[str],
        password: Optional[str],
        avatar_path: Optional[str],
        avatar_content_type: Optional[str] = "image/png",
        cover_path: Optional[str] = None,
        cover_content_type: Optional[str] = "image/png",
    ) -> UserView:
        try:
            full_name = InputValidator.sanitize_string(full_name, "fullName", max_length=255)
            email = InputValidator.validate_email(email)
            username = InputValidator.validate_username(username)
            password_hash = PasswordManager.hash_password(password)
            if not avatar_path:
                raise ValidationError("Avatar file is required", "avatar")
            InputValidator.validate_image_type(avatar_content_type, "avatar")
            if cover_path:
                InputValidator.validate_image_type(cover_content_type, "coverImage")

            async with self.database.session() as session:
                await self._ensure_unique(session, username, email)
        except Exception:
            cleanup_temp_files(avatar_path, cover_path)
            raise

        avatar = None
        cover = None
        try:
            avatar = await self.storage.upload(avatar_path)
            if cover_path:
                cover = await self.storage.upload(cover_path)
        except Exception:
            cleanup_temp_files(cover_path)
            await self._discard(avatar)
            raise

        user = User(
            full_name=full_name,
            email=email,
            username=username,
            password_hash=password_hash,
            avatar=avatar.url,
            cover_image=cover.url if cover else "",
        )
        try:
            async with self.database.transaction() as session:
                session.add(user)
        except IntegrityError:
            await self._discard(avatar, cover)
            raise ConflictError("User with email or username already exists")
        except SQLAlchemyError as e:
            await self._discard(avatar, cover)
            raise PersistenceError("register user", str(e))

        logger.info(f"Registered user {username}")
        return UserView.model_validate(user)

    def _issue_tokens(self, user: User) -> AuthTokens:
        return AuthTokens(
            access_token=self.tokens.create_access_token(user.id, user.username, user.email),
            refresh_token=self.tokens.create_refresh_token(user.id),
        )

    async def login(self, identifier: Optional[str], password: Optional[str]) -> LoginResult:
        """`identifier` is a handle or an email address"""
        if not identifier or not identifier.strip():
            raise ValidationError("username or email is required", "username")
        if not password:
            raise ValidationError("password is required", "password")
        identifier = identifier.strip().lower()

        async with self.database.session() as session:
            user = (
                await session.execute(
                    select(User).where(or_(User.username == identifier, User.email == identifier))
                )
            ).scalars().first()
        if user is None:
            raise NotFoundError("User", identifier)

        # bcrypt runs off the event loop and outside the write lock
        if not await asyncio.to_thread(
            PasswordManager.verify_password, password, user.password_hash
        ):
            raise AuthenticationError("Invalid user credentials")

        tokens = self._issue_tokens(user)
        async with self.database.transaction() as session:
            await session.execute(
                update(User).where(User.id == user.id).values(refresh_token=tokens.refresh_token)
            )
        user.refresh_token = tokens.refresh_token

        logger.info(f"User {user.username} logged in")
        return LoginResult(
            user=UserView.model_validate(user),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )

    async def logout(self, viewer: Viewer) -> None:
        user_id = viewer.require_user()
        async with self.database.transaction() as session:
            user = await get_or_404(session, User, user_id, "User")
            user.refresh_token = None
        logger.info(f"User {user_id} logged out")

    async def refresh(self, refresh_token: Optional[str]) -> AuthTokens:
        if not refresh_token:
            raise AuthenticationError("Unauthorized request")
        payload = self.tokens.verify_token(refresh_token, TokenType.REFRESH)

        async with self.database.transaction() as session:
            user = await session.get(User, payload["sub"])
            if user is None:
                raise AuthenticationError("Invalid refresh token")
            if user.refresh_token != refresh_token:
                raise AuthenticationError("Refresh token is expired or used")
            tokens = self._issue_tokens(user)
            user.refresh_token = tokens.refresh_token

        return tokens

    async def get_user(self, user_id: str) -> UserView:
        async with self.database.session() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise AuthenticationError("Invalid access token")
        return UserView.model_validate(user)

    async def change_password(self, viewer: Viewer, old_password: str, new_password: str) -> None:
        user_id = viewer.require_user()
        new_hash = await asyncio.to_thread(PasswordManager.hash_password, new_password)

        async with self.database.session() as session:
            user = await get_or_404(session, User, user_id, "User")
        if not await asyncio.to_thread(
            PasswordManager.verify_password, old_password, user.password_hash
        ):
            raise ValidationError("Invalid old password", "oldPassword")

        async with self.database.transaction() as session:
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(password_hash=new_hash, updated_at=utcnow())
            )
        logger.info(f"Password changed for {user_id}")

    async def update_account(
        self, viewer: Viewer, full_name: Optional[str], email: Optional[str]
    ) -> UserView:
        user_id = viewer.require_user()
        full_name = InputValidator.sanitize_string(full_name, "fullName", max_length=255)
        email = InputValidator.validate_email(email)

        try:
            async with self.database.transaction() as session:
                await self._ensure_unique(session, None, email, exclude_id=user_id)
                user = await get_or_404(session, User, user_id, "User")
                user.full_name = full_name
                user.email = email
                user.updated_at = utcnow()
        except IntegrityError:
            raise ConflictError("Email is already in use")
        return UserView.model_validate(user)

    async def update_avatar(
        self, viewer: Viewer, avatar_path: Optional[str], content_type: Optional[str]
    ) -> UserView:
        return await self._replace_image(viewer, "avatar", avatar_path, content_type)

    async def update_cover_image(
        self, viewer: Viewer, cover_path: Optional[str], content_type: Optional[str]
    ) -> UserView:
        return await self._replace_image(viewer, "cover_image", cover_path, content_type)

    async def _replace_image(
        self, viewer: Viewer, field: str, path: Optional[str], content_type: Optional[str]
    ) -> UserView:
        try:
            user_id = viewer.require_user()
            if not path:
                raise ValidationError(f"{field} file is missing", field)
            InputValidator.validate_image_type(content_type, field)
        except Exception:
            cleanup_temp_files(path)
            raise

        stored = await self.storage.upload(path)
        try:
            async with self.database.transaction() as session:
                user = await get_or_404(session, User, user_id, "User")
                previous = getattr(user, field)
                setattr(user, field, stored.url)
                user.updated_at = utcnow()
        except Exception:
            await self._discard(stored)
            raise

        if previous and not await self.storage.delete(previous):
            logger.warning(f"Previous {field} {previous} was not removed")
        return UserView.model_validate(user)

    async def get_channel_profile(self, handle: Optional[str], viewer: Viewer) -> ChannelProfile:
        handle = InputValidator.normalize_handle(handle)
        followed = (
            select(func.count(Subscription.id))
            .where(Subscription.subscriber_id == User.id)
            .scalar_subquery()
        )

        async with self.database.session() as session:
            row = (
                await session.execute(
                    select(
                        User,
                        subscriber_count(User.id),
                        followed,
                        viewer.subscribed_to(User.id),
                    ).where(User.username == handle)
                )
            ).first()

        if row is None:
            raise NotFoundError("Channel", handle)

        user, subscribers, subscribed_to, is_subscribed = row
        return ChannelProfile(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            avatar=user.avatar,
            cover_image=user.cover_image,
            created_at=user.created_at,
            subscribers_count=subscribers or 0,
            channels_subscribed_to_count=subscribed_to or 0,
            is_subscribed=bool(is_subscribed),
        )
