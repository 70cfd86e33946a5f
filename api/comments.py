"""
Comment Endpoints.

Top-level comments live under `/comments/{video_id}` and
`/comments/post/{post_id}`; a thread's replies under
`/comments/replies/{comment_id}`; edits and deletes under
`/comments/c/{comment_id}`. Listings are oldest first.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_thread_service, get_viewer
from api.responses import respond
from core.logging_config import get_logger, log_function_call
from core.schemas import APIModel
from core.validation import PageRequest
from services.identity import Viewer
from services.thread_service import ThreadService

logger = get_logger(__name__)
router = APIRouter(prefix="/comments", tags=["Comments"])


class CommentRequest(APIModel):
    content: Optional[str] = None


class ReplyRequest(CommentRequest):
    replying_to: Optional[str] = None


@router.get("/post/{post_id}")
async def list_post_comments(
    post_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    viewer: Viewer = Depends(get_viewer),
    threads: ThreadService = Depends(get_thread_service),
):
    comments = await threads.list_post_comments(post_id, PageRequest.of(page, limit), viewer)
    return respond(comments, "Comments fetched successfully")


@router.post("/post/{post_id}")
@log_function_call(logger)
async def add_post_comment(
    post_id: str,
    body: CommentRequest,
    viewer: Viewer = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
):
    comment = await threads.add_post_comment(post_id, body.content, viewer)
    return respond(comment, "Comment added successfully", 201)


@router.get("/replies/{comment_id}")
async def list_replies(
    comment_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    viewer: Viewer = Depends(get_viewer),
    threads: ThreadService = Depends(get_thread_service),
):
    replies = await threads.list_replies(comment_id, PageRequest.of(page, limit), viewer)
    return respond(replies, "Replies fetched successfully")


@router.post("/replies/{comment_id}")
@log_function_call(logger)
async def add_reply(
    comment_id: str,
    body: ReplyRequest,
    viewer: Viewer = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
):
    reply = await threads.add_reply(comment_id, body.content, viewer, body.replying_to)
    return respond(reply, "Reply added successfully", 201)


@router.patch("/c/{comment_id}")
@log_function_call(logger)
async def update_comment(
    comment_id: str,
    body: CommentRequest,
    viewer: Viewer = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
):
    comment = await threads.update_comment(comment_id, body.content, viewer)
    return respond(comment, "Comment updated successfully")


@router.delete("/c/{comment_id}")
@log_function_call(logger)
async def delete_comment(
    comment_id: str,
    viewer: Viewer = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
):
    comment = await threads.delete_comment(comment_id, viewer)
    return respond(comment, "Comment deleted successfully")


@router.get("/{video_id}")
async def list_video_comments(
    video_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    viewer: Viewer = Depends(get_viewer),
    threads: ThreadService = Depends(get_thread_service),
):
    comments = await threads.list_video_comments(video_id, PageRequest.of(page, limit), viewer)
    return respond(comments, "Comments fetched successfully")


@router.post("/{video_id}")
@log_function_call(logger)
async def add_video_comment(
    video_id: str,
    body: CommentRequest,
    viewer: Viewer = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
):
    comment = await threads.add_video_comment(video_id, body.content, viewer)
    return respond(comment, "Comment added successfully", 201)
