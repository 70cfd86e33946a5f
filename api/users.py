"""
User, Session and Channel Endpoints.

Endpoints Provided:
- `POST /users/register`: Multipart registration with avatar and optional cover.
- `POST /users/login`, `/logout`, `/refresh-token`: Session lifecycle. Tokens
  are returned in the body and set as http-only cookies.
- `POST /users/change-password`, `GET /users/current-user`,
  `PATCH /users/update-account`, `/avatar`, `/cover-image`: Own account.
- `GET /users/c/{username}`: Public channel profile.
- `GET /users/history`, `POST /users/history/{video_id}`: Watch history.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import EmailStr

from api.dependencies import (
    get_current_user,
    get_stats_service,
    get_user_service,
    get_viewer,
)
from api.responses import respond, spool_upload
from core.logging_config import get_logger, log_function_call
from core.schemas import APIModel
from core.validation import PageRequest
from services.identity import Viewer
from services.stats_service import StatsService
from services.user_service import UserService

logger = get_logger(__name__)
router = APIRouter(prefix="/users", tags=["Users"])

COOKIE_OPTIONS = {"httponly": True, "secure": True, "samesite": "none"}


class LoginRequest(APIModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(APIModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(APIModel):
    old_password: str
    new_password: str


class UpdateAccountRequest(APIModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None


def _with_session_cookies(response: JSONResponse, access_token: str, refresh_token: str):
    response.set_cookie("accessToken", access_token, **COOKIE_OPTIONS)
    response.set_cookie("refreshToken", refresh_token, **COOKIE_OPTIONS)
    return response


@router.post("/register")
@log_function_call(logger)
async def register_user(
    full_name: Optional[str] = Form(None, alias="fullName"),
    email: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    users: UserService = Depends(get_user_service),
):
    avatar_path, avatar_type = await spool_upload(avatar)
    cover_path, cover_type = await spool_upload(cover_image)
    user = await users.register(
        full_name,
        email,
        username,
        password,
        avatar_path,
        avatar_type,
        cover_path,
        cover_type,
    )
    return respond(user, "User registered successfully", 201)


@router.post("/login")
@log_function_call(logger)
async def login_user(body: LoginRequest, users: UserService = Depends(get_user_service)):
    result = await users.login(body.username or body.email, body.password)
    response = respond(result, "User logged in successfully")
    return _with_session_cookies(response, result.access_token, result.refresh_token)


@router.post("/logout")
async def logout_user(
    viewer: Viewer = Depends(get_current_user), users: UserService = Depends(get_user_service)
):
    await users.logout(viewer)
    response = respond({}, "User logged out")
    response.delete_cookie("accessToken", **COOKIE_OPTIONS)
    response.delete_cookie("refreshToken", **COOKIE_OPTIONS)
    return response


@router.post("/refresh-token")
async def refresh_access_token(
    request: Request,
    body: Optional[RefreshRequest] = None,
    users: UserService = Depends(get_user_service),
):
    token = request.cookies.get("refreshToken") or (body.refresh_token if body else None)
    tokens = await users.refresh(token)
    response = respond(tokens, "Access token refreshed")
    return _with_session_cookies(response, tokens.access_token, tokens.refresh_token)


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    viewer: Viewer = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    await users.change_password(viewer, body.old_password, body.new_password)
    return respond({}, "Password changed successfully")


@router.get("/current-user")
async def current_user(
    viewer: Viewer = Depends(get_current_user), users: UserService = Depends(get_user_service)
):
    return respond(await users.get_user(viewer.user_id), "User fetched successfully")


@router.patch("/update-account")
async def update_account(
    body: UpdateAccountRequest,
    viewer: Viewer = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    user = await users.update_account(viewer, body.full_name, body.email)
    return respond(user, "Account details updated successfully")


@router.patch("/avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    path, content_type = await spool_upload(avatar)
    user = await users.update_avatar(viewer, path, content_type)
    return respond(user, "Avatar image updated successfully")


@router.patch("/cover-image")
async def update_cover_image(
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    viewer: Viewer = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    path, content_type = await spool_upload(cover_image)
    user = await users.update_cover_image(viewer, path, content_type)
    return respond(user, "Cover image updated successfully")


@router.get("/c/{username}")
async def channel_profile(
    username: str,
    viewer: Viewer = Depends(get_viewer),
    users: UserService = Depends(get_user_service),
):
    profile = await users.get_channel_profile(username, viewer)
    return respond(profile, "User channel fetched successfully")


@router.get("/history")
async def watch_history(
    tz_offset: Optional[int] = Query(None, alias="tzOffset"),
    page: int = Query(1),
    limit: int = Query(10),
    viewer: Viewer = Depends(get_current_user),
    stats: StatsService = Depends(get_stats_service),
):
    history = await stats.get_watch_history(viewer, tz_offset, PageRequest.of(page, limit))
    return respond(history, "Watch history fetched successfully")


@router.post("/history/{video_id}")
async def record_watch(
    video_id: str,
    tz_offset: Optional[int] = Query(None, alias="tzOffset"),
    viewer: Viewer = Depends(get_current_user),
    stats: StatsService = Depends(get_stats_service),
):
    record = await stats.record_watch(video_id, viewer, tz_offset)
    return respond(record, "Video added to watch history", 201)
