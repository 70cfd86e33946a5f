"""
Like Endpoints: toggles on videos, comments and posts, and the caller's liked
videos.
"""

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_feed_service, get_toggle_service
from api.responses import respond
from core.logging_config import get_logger, log_function_call
from core.validation import PageRequest
from services.feed_service import FeedService
from services.identity import Viewer
from services.toggle_service import ToggleKind, ToggleService

logger = get_logger(__name__)
router = APIRouter(prefix="/likes", tags=["Likes"])


async def _toggle(kind: ToggleKind, subject_id: str, viewer: Viewer, toggles: ToggleService):
    result = await toggles.toggle(kind, subject_id, viewer)
    message = "Liked successfully" if result.status == "added" else "Like removed successfully"
    return respond(result, message)


@router.post("/toggle/v/{video_id}")
@log_function_call(logger)
async def toggle_video_like(
    video_id: str,
    viewer: Viewer = Depends(get_current_user),
    toggles: ToggleService = Depends(get_toggle_service),
):
    return await _toggle(ToggleKind.VIDEO_LIKE, video_id, viewer, toggles)


@router.post("/toggle/c/{comment_id}")
@log_function_call(logger)
async def toggle_comment_like(
    comment_id: str,
    viewer: Viewer = Depends(get_current_user),
    toggles: ToggleService = Depends(get_toggle_service),
):
    return await _toggle(ToggleKind.COMMENT_LIKE, comment_id, viewer, toggles)


@router.post("/toggle/p/{post_id}")
@log_function_call(logger)
async def toggle_post_like(
    post_id: str,
    viewer: Viewer = Depends(get_current_user),
    toggles: ToggleService = Depends(get_toggle_service),
):
    return await _toggle(ToggleKind.POST_LIKE, post_id, viewer, toggles)


@router.get("/videos")
async def liked_videos(
    page: int = Query(1),
    limit: int = Query(10),
    viewer: Viewer = Depends(get_current_user),
    feed: FeedService = Depends(get_feed_service),
):
    videos = await feed.list_liked_videos(viewer, PageRequest.of(page, limit))
    return respond(videos, "Liked videos fetched successfully")
