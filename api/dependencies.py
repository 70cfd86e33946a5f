"""
FastAPI dependencies: the shared database handle, media storage, the services
built on top of them, and caller identity.

A request is authenticated by an `Authorization: Bearer <token>` header or the
`accessToken` cookie. `get_viewer` degrades to an anonymous viewer when neither
carries a valid token; `get_current_user` rejects the request instead.
"""

from typing import Optional

from fastapi import Depends, Request

from core.auth import TokenManager, TokenType, get_token_manager
from core.database import Database, get_database
from core.exceptions import AuthenticationError
from core.logging_config import get_logger
from providers.media_provider import MediaStorage, create_media_storage
from services.feed_service import FeedService
from services.identity import Viewer
from services.playlist_service import PlaylistService
from services.post_service import PostService
from services.stats_service import StatsService
from services.subscription_service import SubscriptionService
from services.thread_service import ThreadService
from services.toggle_service import ToggleService
from services.user_service import UserService
from services.video_service import VideoService

logger = get_logger(__name__)

_media_storage: Optional[MediaStorage] = None


def get_db() -> Database:
    return get_database()


def get_media_storage() -> MediaStorage:
    global _media_storage
    if _media_storage is None:
        _media_storage = create_media_storage()
    return _media_storage


def get_tokens() -> TokenManager:
    return get_token_manager()


def get_feed_service(db: Database = Depends(get_db)) -> FeedService:
    return FeedService(db)


def get_thread_service(db: Database = Depends(get_db)) -> ThreadService:
    return ThreadService(db)


def get_toggle_service(db: Database = Depends(get_db)) -> ToggleService:
    return ToggleService(db)


def get_subscription_service(db: Database = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(db)


def get_stats_service(db: Database = Depends(get_db)) -> StatsService:
    return StatsService(db)


def get_post_service(db: Database = Depends(get_db)) -> PostService:
    return PostService(db)


def get_playlist_service(db: Database = Depends(get_db)) -> PlaylistService:
    return PlaylistService(db)


def get_video_service(
    db: Database = Depends(get_db), storage: MediaStorage = Depends(get_media_storage)
) -> VideoService:
    return VideoService(db, storage)


def get_user_service(
    db: Database = Depends(get_db),
    storage: MediaStorage = Depends(get_media_storage),
    tokens: TokenManager = Depends(get_tokens),
) -> UserService:
    return UserService(db, storage, tokens)


def extract_access_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get("accessToken") or None


async def get_viewer(
    request: Request, tokens: TokenManager = Depends(get_tokens)
) -> Viewer:
    """The signed-in caller, or an anonymous viewer"""
    token = extract_access_token(request)
    if not token:
        return Viewer.anonymous()
    try:
        payload = tokens.verify_token(token, TokenType.ACCESS)
    except AuthenticationError as e:
        logger.debug(f"Ignoring invalid access token: {e.message}")
        return Viewer.anonymous()
    return Viewer(payload["sub"])


async def get_current_user(
    request: Request,
    tokens: TokenManager = Depends(get_tokens),
    users: UserService = Depends(get_user_service),
) -> Viewer:
    """A signed-in caller whose account still exists"""
    token = extract_access_token(request)
    if not token:
        raise AuthenticationError("Unauthorized request")
    payload = tokens.verify_token(token, TokenType.ACCESS)
    user = await users.get_user(payload["sub"])
    request.state.user_id = user.id
    return Viewer(user.id)
