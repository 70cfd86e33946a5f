"""
Playlist Service.

Membership lives in `playlist_videos`, one row per (playlist, video) with a
unique constraint, so adding and removing a video are a single guarded insert
and a single conditional delete. Rows are listed in insertion order.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.database import Database
from core.exceptions import ConflictError, NotFoundError, PersistenceError
from core.models import Playlist, PlaylistVideo, User, Video, utcnow
from core.schemas import PlaylistDetail, PlaylistRecord
from core.validation import InputValidator
from services.identity import Viewer
from services.queries import feed_select, get_or_404, get_visible_video, to_feed_video

logger = logging.getLogger(__name__)


def video_total():
    return (
        select(func.count(PlaylistVideo.id))
        .where(PlaylistVideo.playlist_id == Playlist.id)
        .scalar_subquery()
    )


class PlaylistService:
    def __init__(self, database: Database):
        self.database = database

    async def create_playlist(
        self, name: str, description: Optional[str], viewer: Viewer
    ) -> PlaylistRecord:
        owner_id = viewer.require_user()
        name = InputValidator.sanitize_string(name, "name", max_length=255)

        playlist = Playlist(owner_id=owner_id, name=name, description=(description or "").strip())
        try:
            async with self.database.transaction() as session:
                session.add(playlist)
        except SQLAlchemyError as e:
            raise PersistenceError("create playlist", str(e))

        logger.info(f"Playlist {playlist.id} created by {owner_id}")
        return PlaylistRecord.model_validate(playlist)

    async def list_user_playlists(self, user_id: str) -> List[PlaylistRecord]:
        user_id = InputValidator.validate_object_id(user_id, "userId")
        async with self.database.session() as session:
            await get_or_404(session, User, user_id, "User")
            rows = (
                await session.execute(
                    select(Playlist, video_total())
                    .where(Playlist.owner_id == user_id)
                    .order_by(Playlist.created_at.desc(), Playlist.id.desc())
                )
            ).all()

        return [
            PlaylistRecord.model_validate(playlist).model_copy(update={"total_videos": total})
            for playlist, total in rows
        ]

    async def get_playlist(self, playlist_id: str, viewer: Viewer) -> PlaylistDetail:
        playlist_id = InputValidator.validate_object_id(playlist_id, "playlistId")
        async with self.database.session() as session:
            playlist = await get_or_404(session, Playlist, playlist_id, "Playlist")
            rows = (
                await session.execute(
                    feed_select(viewer)
                    .join(PlaylistVideo, PlaylistVideo.video_id == Video.id)
                    .where(PlaylistVideo.playlist_id == playlist_id, viewer.video_visibility())
                    .order_by(PlaylistVideo.id.asc())
                )
            ).all()

        videos = [to_feed_video(row) for row in rows]
        return PlaylistDetail(
            **PlaylistRecord.model_validate(playlist).model_dump(exclude={"total_videos"}),
            total_videos=len(videos),
            videos=videos,
        )

    async def _owned_playlist(self, session, playlist_id: str, viewer: Viewer, action: str) -> Playlist:
        playlist = await get_or_404(session, Playlist, playlist_id, "Playlist")
        viewer.require_owner(playlist.owner_id, action)
        return playlist

    async def update_playlist(
        self,
        playlist_id: str,
        viewer: Viewer,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PlaylistRecord:
        viewer.require_user()
        playlist_id = InputValidator.validate_object_id(playlist_id, "playlistId")
        if name is not None:
            name = InputValidator.sanitize_string(name, "name", max_length=255)

        try:
            async with self.database.transaction() as session:
                playlist = await self._owned_playlist(
                    session, playlist_id, viewer, "edit this playlist"
                )
                if name is not None:
                    playlist.name = name
                if description is not None:
                    playlist.description = description.strip()
                playlist.updated_at = utcnow()
        except SQLAlchemyError as e:
            raise PersistenceError("update playlist", str(e))

        return PlaylistRecord.model_validate(playlist)

    async def delete_playlist(self, playlist_id: str, viewer: Viewer) -> PlaylistRecord:
        viewer.require_user()
        playlist_id = InputValidator.validate_object_id(playlist_id, "playlistId")

        try:
            async with self.database.transaction() as session:
                playlist = await self._owned_playlist(
                    session, playlist_id, viewer, "delete this playlist"
                )
                record = PlaylistRecord.model_validate(playlist)
                await session.execute(
                    delete(PlaylistVideo).where(PlaylistVideo.playlist_id == playlist_id)
                )
                await session.execute(delete(Playlist).where(Playlist.id == playlist_id))
        except SQLAlchemyError as e:
            raise PersistenceError("delete playlist", str(e))

        logger.info(f"Playlist {playlist_id} deleted")
        return record

    async def add_video(self, playlist_id: str, video_id: str, viewer: Viewer) -> PlaylistRecord:
        viewer.require_user()
        playlist_id = InputValidator.validate_object_id(playlist_id, "playlistId")
        video_id = InputValidator.validate_object_id(video_id, "videoId")

        try:
            async with self.database.transaction() as session:
                playlist = await self._owned_playlist(
                    session, playlist_id, viewer, "modify this playlist"
                )
                await get_visible_video(session, video_id, viewer)
                session.add(PlaylistVideo(playlist_id=playlist_id, video_id=video_id))
                await session.flush()
                playlist.updated_at = utcnow()
        except IntegrityError:
            raise ConflictError("Video is already in this playlist")
        except SQLAlchemyError as e:
            raise PersistenceError("add video to playlist", str(e))

        logger.info(f"Video {video_id} added to playlist {playlist_id}")
        return await self._record(playlist_id)

    async def remove_video(
        self, playlist_id: str, video_id: str, viewer: Viewer
    ) -> PlaylistRecord:
        viewer.require_user()
        playlist_id = InputValidator.validate_object_id(playlist_id, "playlistId")
        video_id = InputValidator.validate_object_id(video_id, "videoId")

        try:
            async with self.database.transaction() as session:
                playlist = await self._owned_playlist(
                    session, playlist_id, viewer, "modify this playlist"
                )
                result = await session.execute(
                    delete(PlaylistVideo).where(
                        PlaylistVideo.playlist_id == playlist_id,
                        PlaylistVideo.video_id == video_id,
                    )
                )
                if result.rowcount == 0:
                    raise NotFoundError("Video in playlist", video_id)
                playlist.updated_at = utcnow()
        except SQLAlchemyError as e:
            raise PersistenceError("remove video from playlist", str(e))

        logger.info(f"Video {video_id} removed from playlist {playlist_id}")
        return await self._record(playlist_id)

    async def _record(self, playlist_id: str) -> PlaylistRecord:
        async with self.database.session() as session:
            playlist, total = (
                await session.execute(
                    select(Playlist, video_total()).where(Playlist.id == playlist_id)
                )
            ).one()
        return PlaylistRecord.model_validate(playlist).model_copy(update={"total_videos": total})
