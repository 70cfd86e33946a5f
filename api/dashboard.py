"""
Channel Dashboard Endpoints: rollups and the owner's full video list.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_current_user, get_feed_service, get_stats_service
from api.responses import respond
from services.feed_service import FeedService
from services.identity import Viewer
from services.stats_service import StatsService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/stats")
async def channel_stats(
    viewer: Viewer = Depends(get_current_user),
    stats: StatsService = Depends(get_stats_service),
):
    return respond(
        await stats.get_channel_stats(viewer.user_id), "Channel stats fetched successfully"
    )


@router.get("/videos")
async def channel_videos(
    viewer: Viewer = Depends(get_current_user),
    feed: FeedService = Depends(get_feed_service),
):
    return respond(
        await feed.list_channel_videos(viewer), "Channel videos fetched successfully"
    )
