"""
Feed Service.

Builds the paginated video listings: the home feed, a channel's published
videos, and keyword search (which also returns matching channels with one
preview video each). Every row carries its owner's profile, subscriber count
and whether the viewer is subscribed, computed from the subscriptions table at
query time.

Filters are a tagged variant (`ByOwner`, `ByKeyword`, `Unfiltered`); each maps
to exactly one predicate, and every predicate requires `is_published`.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import Database
from core.exceptions import NotFoundError, ValidationError
from core.models import Like, User, Video
from core.schemas import ChannelPreview, FeedVideo, Page, VideoFeed, VideoView
from core.validation import InputValidator, PageRequest
from services.identity import Viewer
from services.queries import (
    channel_select,
    feed_select,
    tag_matches,
    to_channel_owner,
    to_feed_video,
)

logger = logging.getLogger(__name__)

MAX_CHANNEL_PREVIEWS = 20


@dataclass(frozen=True)
class ByOwner:
    handle: str


@dataclass(frozen=True)
class ByKeyword:
    keyword: str


@dataclass(frozen=True)
class Unfiltered:
    pass


FeedFilter = Union[ByOwner, ByKeyword, Unfiltered]


def feed_filter_from_params(user: Optional[str] = None, search: Optional[str] = None) -> FeedFilter:
    """Map the `user` / `search` query parameters onto one filter mode"""
    user = (user or "").replace("+", " ").strip()
    search = (search or "").replace("+", " ").strip()
    if user and search:
        raise ValidationError("Filter by user or by search keyword, not both", "search")
    if user:
        return ByOwner(InputValidator.normalize_handle(user))
    if search:
        return ByKeyword(search)
    return Unfiltered()


class SortField(str, Enum):
    CREATED_AT = "createdAt"
    VIEWS = "views"
    DURATION = "duration"
    TITLE = "title"

    @property
    def column(self):
        return {
            SortField.CREATED_AT: Video.created_at,
            SortField.VIEWS: Video.views,
            SortField.DURATION: Video.duration,
            SortField.TITLE: Video.title,
        }[self]


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class FeedSort:
    field: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.DESC

    @classmethod
    def of(cls, sort_by: Optional[str] = None, sort_type: Optional[str] = None) -> "FeedSort":
        try:
            field = SortField(sort_by) if sort_by else SortField.CREATED_AT
        except ValueError:
            raise ValidationError(
                f"sortBy must be one of: {', '.join(f.value for f in SortField)}", "sortBy"
            )
        order = SortOrder.ASC if (sort_type or "").lower() == "asc" else SortOrder.DESC
        return cls(field, order)

    def clauses(self):
        # id breaks ties so pages never overlap
        if self.order is SortOrder.ASC:
            return (self.field.column.asc(), Video.id.asc())
        return (self.field.column.desc(), Video.id.desc())


def _like_pattern(keyword: str) -> str:
    escaped = keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class FeedService:
    """Paginated video and channel listings"""

    def __init__(self, database: Database):
        self.database = database

    async def list_videos(
        self,
        feed_filter: FeedFilter,
        sort: FeedSort,
        page: PageRequest,
        viewer: Viewer,
    ) -> VideoFeed:
        async with self.database.session() as session:
            conditions = await self._predicate(session, feed_filter)

            total = (
                await session.execute(select(func.count(Video.id)).where(*conditions))
            ).scalar_one()

            rows = (
                await session.execute(
                    feed_select(viewer)
                    .where(*conditions)
                    .order_by(*sort.clauses())
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).all()

            channels: List[ChannelPreview] = []
            if isinstance(feed_filter, ByKeyword):
                channels = await self._channel_previews(
                    session, feed_filter.keyword, viewer, sort
                )

        logger.debug(
            f"Feed {type(feed_filter).__name__} page {page.page}: {len(rows)} of {total}"
        )
        feed = VideoFeed.build(
            [to_feed_video(row) for row in rows], total, page.page, page.page_size
        )
        feed.channels = channels
        return feed

    async def _predicate(self, session: AsyncSession, feed_filter: FeedFilter) -> list:
        published = Video.is_published == True  # noqa: E712

        if isinstance(feed_filter, ByOwner):
            owner_id = (
                await session.execute(
                    select(User.id).where(User.username == feed_filter.handle)
                )
            ).scalar_one_or_none()
            if owner_id is None:
                raise NotFoundError("User", feed_filter.handle)
            return [published, Video.owner_id == owner_id]

        if isinstance(feed_filter, ByKeyword):
            pattern = _like_pattern(feed_filter.keyword)
            return [
                published,
                or_(
                    Video.title.ilike(pattern, escape="\\"),
                    Video.description.ilike(pattern, escape="\\"),
                    tag_matches(pattern, self.database.backend),
                ),
            ]

        if isinstance(feed_filter, Unfiltered):
            return [published]

        raise TypeError(f"Unknown feed filter: {feed_filter!r}")

    async def _channel_previews(
        self, session: AsyncSession, keyword: str, viewer: Viewer, sort: FeedSort
    ) -> List[ChannelPreview]:
        pattern = _like_pattern(keyword)
        channel_rows = (
            await session.execute(
                channel_select(viewer)
                .where(
                    or_(
                        User.username.ilike(pattern, escape="\\"),
                        User.full_name.ilike(pattern, escape="\\"),
                    )
                )
                .order_by(User.username)
                .limit(MAX_CHANNEL_PREVIEWS)
            )
        ).all()

        previews = []
        for user, subscribers, is_subscribed in channel_rows:
            video_row = (
                await session.execute(
                    feed_select(viewer)
                    .where(Video.owner_id == user.id, Video.is_published == True)  # noqa: E712
                    .order_by(*sort.clauses())
                    .limit(1)
                )
            ).first()
            previews.append(
                ChannelPreview(
                    channel=to_channel_owner(user, subscribers, is_subscribed),
                    video=to_feed_video(video_row) if video_row else None,
                )
            )
        return previews

    async def list_liked_videos(self, viewer: Viewer, page: PageRequest) -> Page[FeedVideo]:
        """Videos the viewer liked, most recent like first"""
        user_id = viewer.require_user()
        conditions = [Like.liked_by == user_id, viewer.video_visibility()]

        async with self.database.session() as session:
            total = (
                await session.execute(
                    select(func.count(Like.id))
                    .join(Video, Video.id == Like.video_id)
                    .where(*conditions)
                )
            ).scalar_one()
            rows = (
                await session.execute(
                    feed_select(viewer)
                    .join(Like, Like.video_id == Video.id)
                    .where(*conditions)
                    .order_by(Like.created_at.desc(), Like.id.desc())
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).all()

        return Page[FeedVideo].build(
            [to_feed_video(row) for row in rows], total, page.page, page.page_size
        )

    async def list_channel_videos(self, viewer: Viewer) -> List[VideoView]:
        """All of the viewer's own videos, any publish state, newest first"""
        owner_id = viewer.require_user()
        async with self.database.session() as session:
            videos = (
                await session.execute(
                    select(Video)
                    .where(Video.owner_id == owner_id)
                    .order_by(Video.created_at.desc(), Video.id.desc())
                )
            ).scalars().all()
        return [VideoView.model_validate(video) for video in videos]
