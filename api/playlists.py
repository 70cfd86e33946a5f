"""
Playlist Endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import get_current_user, get_playlist_service, get_viewer
from api.responses import respond
from core.logging_config import get_logger, log_function_call
from core.schemas import APIModel
from services.identity import Viewer
from services.playlist_service import PlaylistService

logger = get_logger(__name__)
router = APIRouter(prefix="/playlists", tags=["Playlists"])


class PlaylistRequest(APIModel):
    name: Optional[str] = None
    description: Optional[str] = None


@router.post("")
@log_function_call(logger)
async def create_playlist(
    body: PlaylistRequest,
    viewer: Viewer = Depends(get_current_user),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.create_playlist(body.name, body.description, viewer)
    return respond(playlist, "Playlist created successfully", 201)


@router.get("/user/{user_id}")
async def list_user_playlists(
    user_id: str, playlists: PlaylistService = Depends(get_playlist_service)
):
    return respond(
        await playlists.list_user_playlists(user_id), "Playlists fetched successfully"
    )


@router.patch("/add/{video_id}/{playlist_id}")
@log_function_call(logger)
async def add_video(
    video_id: str,
    playlist_id: str,
    viewer: Viewer = Depends(get_current_user),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.add_video(playlist_id, video_id, viewer)
    return respond(playlist, "Video added to playlist")


@router.patch("/remove/{video_id}/{playlist_id}")
@log_function_call(logger)
async def remove_video(
    video_id: str,
    playlist_id: str,
    viewer: Viewer = Depends(get_current_user),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.remove_video(playlist_id, video_id, viewer)
    return respond(playlist, "Video removed from playlist")


@router.get("/{playlist_id}")
async def get_playlist(
    playlist_id: str,
    viewer: Viewer = Depends(get_viewer),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    return respond(
        await playlists.get_playlist(playlist_id, viewer), "Playlist fetched successfully"
    )


@router.patch("/{playlist_id}")
@log_function_call(logger)
async def update_playlist(
    playlist_id: str,
    body: PlaylistRequest,
    viewer: Viewer = Depends(get_current_user),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.update_playlist(
        playlist_id, viewer, name=body.name, description=body.description
    )
    return respond(playlist, "Playlist updated successfully")


@router.delete("/{playlist_id}")
@log_function_call(logger)
async def delete_playlist(
    playlist_id: str,
    viewer: Viewer = Depends(get_current_user),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.delete_playlist(playlist_id, viewer)
    return respond(playlist, "Playlist deleted successfully")
