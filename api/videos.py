"""
Video Endpoints.

Endpoints Provided:
- `GET /videos`: The feed. `user` filters by channel handle, `search` by
  keyword (and adds matching channels); `sortBy`/`sortType` pick the order.
- `POST /videos`: Multipart upload of a video file and thumbnail.
- `GET /videos/{video_id}`: A video with owner and like info.
- `GET /videos/{video_id}/preview`: The owner's view of a (possibly
  unpublished) video.
- `PATCH /videos/{video_id}`, `DELETE /videos/{video_id}`,
  `PATCH /videos/toggle/publish/{video_id}`: Owner-only changes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from api.dependencies import get_current_user, get_feed_service, get_video_service, get_viewer
from api.responses import respond, spool_upload
from core.logging_config import get_logger, log_function_call
from core.validation import PageRequest
from services.feed_service import FeedService, FeedSort, feed_filter_from_params
from services.identity import Viewer
from services.video_service import VideoService

logger = get_logger(__name__)
router = APIRouter(prefix="/videos", tags=["Videos"])


@router.get("")
async def list_videos(
    page: int = Query(1),
    limit: int = Query(10),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_type: Optional[str] = Query(None, alias="sortType"),
    user: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    viewer: Viewer = Depends(get_viewer),
    feed: FeedService = Depends(get_feed_service),
):
    result = await feed.list_videos(
        feed_filter_from_params(user, search),
        FeedSort.of(sort_by, sort_type),
        PageRequest.of(page, limit),
        viewer,
    )
    return respond(result, "Videos fetched successfully")


@router.post("")
@log_function_call(logger)
async def publish_video(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[List[str]] = Form(None),
    is_published: bool = Form(True, alias="isPublished"),
    video_file: Optional[UploadFile] = File(None, alias="videoFile"),
    thumbnail: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(get_current_user),
    videos: VideoService = Depends(get_video_service),
):
    video_path, video_type = await spool_upload(video_file)
    thumbnail_path, thumbnail_type = await spool_upload(thumbnail)
    video = await videos.publish_video(
        viewer,
        title,
        description,
        video_path,
        video_type,
        thumbnail_path,
        thumbnail_type,
        tags=tags,
        is_published=is_published,
    )
    return respond(video, "Video published successfully", 201)


@router.get("/{video_id}")
async def get_video(
    video_id: str,
    viewer: Viewer = Depends(get_viewer),
    videos: VideoService = Depends(get_video_service),
):
    return respond(await videos.get_video(video_id, viewer), "Video fetched successfully")


@router.get("/{video_id}/preview")
async def preview_video(
    video_id: str,
    viewer: Viewer = Depends(get_current_user),
    videos: VideoService = Depends(get_video_service),
):
    return respond(await videos.get_preview(video_id, viewer), "Video fetched successfully")


@router.patch("/toggle/publish/{video_id}")
async def toggle_publish(
    video_id: str,
    viewer: Viewer = Depends(get_current_user),
    videos: VideoService = Depends(get_video_service),
):
    video = await videos.toggle_publish(video_id, viewer)
    return respond(video, "Video publish status toggled successfully")


@router.patch("/{video_id}")
@log_function_call(logger)
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[List[str]] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(get_current_user),
    videos: VideoService = Depends(get_video_service),
):
    thumbnail_path, thumbnail_type = await spool_upload(thumbnail)
    video = await videos.update_video(
        video_id,
        viewer,
        title,
        description=description,
        tags=tags,
        thumbnail_path=thumbnail_path,
        thumbnail_content_type=thumbnail_type,
    )
    return respond(video, "Video updated successfully")


@router.delete("/{video_id}")
@log_function_call(logger)
async def delete_video(
    video_id: str,
    viewer: Viewer = Depends(get_current_user),
    videos: VideoService = Depends(get_video_service),
):
    video = await videos.delete_video(video_id, viewer)
    return respond(video, "Video deleted successfully")
