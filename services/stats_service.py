"""
Channel Statistics and Watch History.

Watch history is stored per (video, viewer, local calendar day): re-watching a
video on the same local day replaces the earlier row, and every watch bumps the
video's view counter. "Local day" is derived from the browser's
`Date.getTimezoneOffset()` value, which is UTC minus local time in minutes, so
local time is `utc - offset`.

History pages are cut from the raw rows first and grouped by day afterwards,
so one day can be split across two pages.
"""

import logging
from datetime import datetime, timedelta
from itertools import groupby
from typing import Callable, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from core.database import Database
from core.exceptions import NotFoundError, PersistenceError
from core.models import Like, Subscription, User, Video, WatchHistory, utcnow
from core.schemas import ChannelStats, WatchDay, WatchedVideo, WatchHistoryPage, WatchRecord
from core.validation import InputValidator, PageRequest
from services.identity import Viewer
from services.queries import feed_select, get_or_404, to_feed_video

logger = logging.getLogger(__name__)


def local_day_bounds(moment: datetime, offset_minutes: int) -> Tuple[datetime, datetime]:
    """UTC [start, end) of the local calendar day containing the UTC `moment`"""
    offset = timedelta(minutes=offset_minutes)
    local = moment - offset
    local_midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    start = local_midnight + offset
    return start, start + timedelta(days=1)


class StatsService:
    """Channel rollups and day-bucketed watch history"""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utcnow):
        self.database = database
        self.clock = clock

    async def get_channel_stats(self, owner_id: str) -> ChannelStats:
        owner_id = InputValidator.validate_object_id(owner_id, "channelId")

        async with self.database.session() as session:
            await get_or_404(session, User, owner_id, "Channel")

            total_videos, total_views = (
                await session.execute(
                    select(func.count(Video.id), func.coalesce(func.sum(Video.views), 0))
                    .where(Video.owner_id == owner_id)
                )
            ).one()
            total_subscribers = (
                await session.execute(
                    select(func.count(Subscription.id)).where(
                        Subscription.channel_id == owner_id
                    )
                )
            ).scalar_one()
            owner_videos = select(Video.id).where(Video.owner_id == owner_id)
            total_video_likes = (
                await session.execute(
                    select(func.count(Like.id)).where(Like.video_id.in_(owner_videos))
                )
            ).scalar_one()

        return ChannelStats(
            total_videos=total_videos,
            total_subscribers=total_subscribers,
            total_views=int(total_views or 0),
            total_video_likes=total_video_likes,
        )

    async def get_watch_history(
        self, viewer: Viewer, timezone_offset, page: PageRequest
    ) -> WatchHistoryPage:
        user_id = viewer.require_user()
        offset = InputValidator.validate_timezone_offset(timezone_offset)
        conditions = [WatchHistory.watched_by == user_id, Video.is_published == True]  # noqa: E712

        async with self.database.session() as session:
            total = (
                await session.execute(
                    select(func.count(WatchHistory.id))
                    .join(Video, Video.id == WatchHistory.video_id)
                    .where(*conditions)
                )
            ).scalar_one()
            rows = (
                await session.execute(
                    feed_select(viewer)
                    .add_columns(WatchHistory.created_at)
                    .join(WatchHistory, WatchHistory.video_id == Video.id)
                    .where(*conditions)
                    .order_by(WatchHistory.created_at.desc(), WatchHistory.id.desc())
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).all()

        shift = timedelta(minutes=offset)
        watched = [
            WatchedVideo(**to_feed_video(row).model_dump(), watched_at=row[4])
            for row in rows
        ]
        days = [
            WatchDay(day=day, videos=list(videos))
            for day, videos in groupby(watched, key=lambda v: (v.watched_at - shift).date())
        ]

        return WatchHistoryPage(
            days=days,
            total=total,
            current_page=page.page,
            page_size=page.page_size,
            total_pages=page.total_pages(total),
        )

    async def record_watch(self, video_id: str, viewer: Viewer, timezone_offset) -> WatchRecord:
        """
        Record that the viewer watched a video now. An earlier watch of the same
        video on the same local day is replaced; the view counter always grows.
        """
        user_id = viewer.require_user()
        video_id = InputValidator.validate_object_id(video_id, "videoId")
        offset = InputValidator.validate_timezone_offset(timezone_offset)

        now = self.clock()
        day_start, day_end = local_day_bounds(now, offset)

        try:
            async with self.database.transaction() as session:
                video = await session.get(Video, video_id)
                if video is None or not video.is_published:
                    raise NotFoundError("Video", video_id)

                await session.execute(
                    delete(WatchHistory).where(
                        WatchHistory.video_id == video_id,
                        WatchHistory.watched_by == user_id,
                        WatchHistory.created_at >= day_start,
                        WatchHistory.created_at < day_end,
                    )
                )
                entry = WatchHistory(video_id=video_id, watched_by=user_id, created_at=now)
                session.add(entry)
                await session.execute(
                    update(Video).where(Video.id == video_id).values(views=Video.views + 1)
                )
                await session.flush()
                record = WatchRecord.model_validate(entry)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record watch of {video_id}: {e}")
            raise PersistenceError("record watch", str(e))

        logger.debug(f"Recorded watch of {video_id} by {user_id}")
        return record
