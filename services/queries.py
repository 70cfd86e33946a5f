"""
Query fragments shared by the feed, thread and stats services.

These build the joined "video + owner + subscription info" rows that most
listings return, and turn result rows back into response models.
"""

from typing import Optional, Sequence

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.sql import Select

from core.exceptions import NotFoundError
from core.models import Like, Subscription, User, Video
from core.schemas import ChannelOwner, FeedVideo, UserSnippet
from services.identity import Viewer


def subscriber_count(channel_column):
    """Correlated COUNT(*) of subscriptions to `channel_column`"""
    counted = aliased(Subscription)
    return (
        select(func.count(counted.id))
        .where(counted.channel_id == channel_column)
        .scalar_subquery()
    )


def like_count(like_attribute: str, subject_column):
    counted = aliased(Like)
    return (
        select(func.count(counted.id))
        .where(getattr(counted, like_attribute) == subject_column)
        .scalar_subquery()
    )


def tag_matches(pattern: str, backend: str = "sqlite"):
    """EXISTS: some element of `videos.tags` matches the LIKE pattern"""
    if backend == "postgresql":
        elements = func.json_array_elements_text(Video.tags)
    else:
        elements = func.json_each(Video.tags)
    tag = elements.table_valued("value").alias("tag")
    return exists(
        select(1).select_from(tag).where(tag.c.value.ilike(pattern, escape="\\"))
    )


def feed_select(viewer: Viewer) -> Select:
    """
    SELECT video, owner, subscriber count, is_subscribed
    FROM videos JOIN users ON owner
    """
    return select(
        Video,
        User,
        subscriber_count(User.id).label("subscribers"),
        viewer.subscribed_to(User.id).label("is_subscribed"),
    ).join(User, User.id == Video.owner_id)


def channel_select(viewer: Viewer) -> Select:
    return select(
        User,
        subscriber_count(User.id).label("subscribers"),
        viewer.subscribed_to(User.id).label("is_subscribed"),
    )


def to_snippet(user: User) -> UserSnippet:
    return UserSnippet(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        avatar=user.avatar,
    )


def to_channel_owner(user: User, subscribers: Optional[int], is_subscribed) -> ChannelOwner:
    return ChannelOwner(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        avatar=user.avatar,
        created_at=user.created_at,
        subscribers=subscribers or 0,
        is_subscribed=bool(is_subscribed),
    )


def to_feed_video(row: Sequence) -> FeedVideo:
    video, owner, subscribers, is_subscribed = row[:4]
    return FeedVideo(
        id=video.id,
        title=video.title,
        thumbnail=video.thumbnail,
        duration=video.duration,
        views=video.views,
        tags=list(video.tags or []),
        created_at=video.created_at,
        owner=to_channel_owner(owner, subscribers, is_subscribed),
    )


async def get_or_404(session: AsyncSession, model, record_id: str, resource: str):
    record = await session.get(model, record_id)
    if record is None:
        raise NotFoundError(resource, record_id)
    return record


async def get_visible_video(session: AsyncSession, video_id: str, viewer: Viewer) -> Video:
    """Load a video, hiding unpublished videos from everybody but the owner"""
    video = await session.get(Video, video_id)
    if video is None or not viewer.can_view(video):
        raise NotFoundError("Video", video_id)
    return video
