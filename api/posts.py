"""
Community Post Endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_post_service, get_viewer
from api.responses import respond
from core.logging_config import get_logger, log_function_call
from core.schemas import APIModel
from core.validation import PageRequest
from services.identity import Viewer
from services.post_service import PostService

logger = get_logger(__name__)
router = APIRouter(prefix="/posts", tags=["Posts"])


class PostRequest(APIModel):
    content: Optional[str] = None


@router.post("")
@log_function_call(logger)
async def create_post(
    body: PostRequest,
    viewer: Viewer = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    post = await posts.create_post(body.content, viewer)
    return respond(post, "Post created successfully", 201)


@router.get("/user/{user_id}")
async def list_user_posts(
    user_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    viewer: Viewer = Depends(get_viewer),
    posts: PostService = Depends(get_post_service),
):
    result = await posts.list_user_posts(user_id, PageRequest.of(page, limit), viewer)
    return respond(result, "Posts fetched successfully")


@router.get("/{post_id}")
async def get_post(
    post_id: str,
    viewer: Viewer = Depends(get_viewer),
    posts: PostService = Depends(get_post_service),
):
    return respond(await posts.get_post(post_id, viewer), "Post fetched successfully")


@router.patch("/{post_id}")
@log_function_call(logger)
async def update_post(
    post_id: str,
    body: PostRequest,
    viewer: Viewer = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    post = await posts.update_post(post_id, body.content, viewer)
    return respond(post, "Post updated successfully")


@router.delete("/{post_id}")
@log_function_call(logger)
async def delete_post(
    post_id: str,
    viewer: Viewer = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    post = await posts.delete_post(post_id, viewer)
    return respond(post, "Post deleted successfully")
