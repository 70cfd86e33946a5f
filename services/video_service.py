"""
Video Publishing and Management Service.

Uploads follow one order on every path: validate the request, push the files
to media storage, then write the row. A failed upload never leaves a row
behind, a failed write removes what was uploaded, and temporary files are gone
once a call returns, whatever the outcome.

Deleting a video also deletes its likes, comments (and the likes on those),
playlist entries and watch history in the same transaction.
"""

import logging
from typing import Iterable, Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from core.database import Database
from core.exceptions import NotFoundError, PersistenceError, StorageError, ValidationError
from core.models import Comment, Like, PlaylistVideo, User, Video, WatchHistory, utcnow
from core.schemas import LikeSummary, VideoDetail, VideoView
from core.validation import InputValidator
from providers.media_provider import MediaStorage, StoredMedia, cleanup_temp_files
from services.identity import Viewer
from services.queries import get_or_404, like_count, subscriber_count, to_channel_owner
from services.thread_service import delete_comment_rows

logger = logging.getLogger(__name__)


class VideoService:
    """Publishing, retrieval, editing and deletion of videos"""

    def __init__(self, database: Database, storage: MediaStorage):
        self.database = database
        self.storage = storage

    async def _discard_uploads(self, *uploads: Optional[StoredMedia]):
        for stored in uploads:
            if stored is not None and not await self.storage.delete(stored.url):
                logger.warning(f"Could not remove orphaned upload {stored.url}")

    async def publish_video(
        self,
        viewer: Viewer,
        title: Optional[str],
        description: Optional[str],
        video_path: Optional[str],
        video_content_type: Optional[str],
        thumbnail_path: Optional[str],
        thumbnail_content_type: Optional[str],
        tags: Union[None, str, Iterable[str]] = None,
        is_published: bool = True,
    ) -> VideoView:
        try:
            owner_id = viewer.require_user()
            title = InputValidator.sanitize_string(title, "title", max_length=255)
            description = (description or "").strip()
            tags = InputValidator.normalize_tags(tags)
            if not video_path:
                raise ValidationError("Video file is required", "videoFile")
            if not thumbnail_path:
                raise ValidationError("Thumbnail is required", "thumbnail")
            InputValidator.validate_video_type(video_content_type)
            InputValidator.validate_image_type(thumbnail_content_type, "thumbnail")
        except Exception:
            cleanup_temp_files(video_path, thumbnail_path)
            raise

        stored_video = None
        try:
            stored_video = await self.storage.upload(video_path)
            stored_thumbnail = await self.storage.upload(thumbnail_path)
        except StorageError:
            cleanup_temp_files(thumbnail_path)
            await self._discard_uploads(stored_video)
            raise

        video = Video(
            owner_id=owner_id,
            video_file=stored_video.url,
            thumbnail=stored_thumbnail.url,
            title=title,
            description=description,
            tags=tags,
            duration=stored_video.duration_seconds,
            is_published=bool(is_published),
        )
        try:
            async with self.database.transaction() as session:
                session.add(video)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save video '{title}': {e}")
            await self._discard_uploads(stored_video, stored_thumbnail)
            raise PersistenceError("publish video", str(e))

        logger.info(f"Video {video.id} published by {owner_id}")
        return VideoView.model_validate(video)

    async def get_video(self, video_id: str, viewer: Viewer) -> VideoDetail:
        """Video with owner, subscription info and likes; unpublished only for the owner"""
        video_id = InputValidator.validate_object_id(video_id, "videoId")

        async with self.database.session() as session:
            row = (
                await session.execute(
                    select(
                        Video,
                        User,
                        subscriber_count(User.id),
                        viewer.subscribed_to(User.id),
                        like_count("video_id", Video.id),
                        viewer.liked("video_id", Video.id),
                    )
                    .join(User, User.id == Video.owner_id)
                    .where(Video.id == video_id, viewer.video_visibility())
                )
            ).first()

        if row is None:
            raise NotFoundError("Video", video_id)

        video, owner, subscribers, is_subscribed, likes, is_liked = row
        return VideoDetail(
            video=VideoView.model_validate(video),
            owner=to_channel_owner(owner, subscribers, is_subscribed),
            likes=LikeSummary(total_likes=likes or 0, is_liked=bool(is_liked)),
            is_video_owner=viewer.owns(video.owner_id),
        )

    async def get_preview(self, video_id: str, viewer: Viewer) -> VideoView:
        """The owner's view of a video, published or not"""
        video = await self._owned_video(video_id, viewer, hide_from_others=True)
        return VideoView.model_validate(video)

    async def _owned_video(
        self, video_id: str, viewer: Viewer, hide_from_others: bool = False
    ) -> Video:
        viewer.require_user()
        video_id = InputValidator.validate_object_id(video_id, "videoId")
        async with self.database.session() as session:
            video = await session.get(Video, video_id)

        if video is None:
            raise NotFoundError("Video", video_id)
        if not viewer.owns(video.owner_id) and (hide_from_others or not video.is_published):
            raise NotFoundError("Video", video_id)
        viewer.require_owner(video.owner_id, "modify this video")
        return video

    async def update_video(
        self,
        video_id: str,
        viewer: Viewer,
        title: Optional[str],
        description: Optional[str] = None,
        tags: Union[None, str, Iterable[str]] = None,
        thumbnail_path: Optional[str] = None,
        thumbnail_content_type: Optional[str] = None,
    ) -> VideoView:
        try:
            video = await self._owned_video(video_id, viewer)
            title = InputValidator.sanitize_string(title, "title", max_length=255)
            if thumbnail_path:
                InputValidator.validate_image_type(thumbnail_content_type, "thumbnail", allow_gif=False)
        except Exception:
            cleanup_temp_files(thumbnail_path)
            raise

        stored_thumbnail = None
        if thumbnail_path:
            stored_thumbnail = await self.storage.upload(thumbnail_path)

        values = {"title": title, "updated_at": utcnow()}
        if description is not None:
            values["description"] = description.strip()
        if tags is not None:
            values["tags"] = InputValidator.normalize_tags(tags)
        if stored_thumbnail is not None:
            values["thumbnail"] = stored_thumbnail.url

        try:
            async with self.database.transaction() as session:
                current = await get_or_404(session, Video, video.id, "Video")
                for field, value in values.items():
                    setattr(current, field, value)
        except SQLAlchemyError as e:
            await self._discard_uploads(stored_thumbnail)
            raise PersistenceError("update video", str(e))

        if stored_thumbnail is not None and video.thumbnail:
            if not await self.storage.delete(video.thumbnail):
                logger.warning(f"Old thumbnail {video.thumbnail} was not removed")

        logger.info(f"Video {video.id} updated")
        return VideoView.model_validate(current)

    async def toggle_publish(self, video_id: str, viewer: Viewer) -> VideoView:
        video = await self._owned_video(video_id, viewer)
        try:
            async with self.database.transaction() as session:
                current = await get_or_404(session, Video, video.id, "Video")
                current.is_published = not current.is_published
                current.updated_at = utcnow()
        except SQLAlchemyError as e:
            raise PersistenceError("toggle publish", str(e))

        logger.info(f"Video {video.id} is_published={current.is_published}")
        return VideoView.model_validate(current)

    async def delete_video(self, video_id: str, viewer: Viewer) -> VideoView:
        video = await self._owned_video(video_id, viewer)

        try:
            async with self.database.transaction() as session:
                removed_comments = await delete_comment_rows(
                    session, [Comment.video_id == video.id]
                )
                await session.execute(delete(Like).where(Like.video_id == video.id))
                await session.execute(
                    delete(PlaylistVideo).where(PlaylistVideo.video_id == video.id)
                )
                await session.execute(
                    delete(WatchHistory).where(WatchHistory.video_id == video.id)
                )
                await session.execute(delete(Video).where(Video.id == video.id))
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete video {video.id}: {e}")
            raise PersistenceError("delete video", str(e))

        for url in (video.video_file, video.thumbnail):
            if not await self.storage.delete(url):
                logger.warning(f"Media {url} of deleted video {video.id} was not removed")

        logger.info(f"Deleted video {video.id} and {removed_comments} comments")
        return VideoView.model_validate(video)
