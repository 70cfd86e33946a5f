"""
Community posts: short text updates on a channel, with likes and comments.
"""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from core.database import Database
from core.exceptions import NotFoundError, PersistenceError
from core.models import Comment, Like, Post, User, utcnow
from core.schemas import Page, PostRecord, PostView
from core.validation import InputValidator, PageRequest
from services.identity import Viewer
from services.queries import get_or_404, like_count, to_snippet
from services.thread_service import delete_comment_rows

logger = logging.getLogger(__name__)


def comment_count():
    counted = aliased(Comment)
    return (
        select(func.count(counted.id))
        .where(counted.post_id == Post.id)
        .scalar_subquery()
    )


class PostService:
    def __init__(self, database: Database):
        self.database = database

    def _post_select(self, viewer: Viewer):
        return select(
            Post,
            User,
            like_count("post_id", Post.id),
            comment_count(),
            viewer.liked("post_id", Post.id),
        ).join(User, User.id == Post.owner_id)

    @staticmethod
    def _to_view(row, viewer: Viewer) -> PostView:
        post, owner, likes, comments, is_liked = row
        return PostView(
            id=post.id,
            content=post.content,
            created_at=post.created_at,
            updated_at=post.updated_at,
            owner=to_snippet(owner),
            total_likes=likes or 0,
            total_comments=comments or 0,
            is_liked=bool(is_liked),
            is_post_owner=viewer.owns(post.owner_id),
        )

    async def create_post(self, content: str, viewer: Viewer) -> PostRecord:
        owner_id = viewer.require_user()
        content = InputValidator.validate_content(content)

        post = Post(owner_id=owner_id, content=content)
        try:
            async with self.database.transaction() as session:
                session.add(post)
        except SQLAlchemyError as e:
            raise PersistenceError("create post", str(e))

        logger.info(f"Post {post.id} created by {owner_id}")
        return PostRecord.model_validate(post)

    async def get_post(self, post_id: str, viewer: Viewer) -> PostView:
        post_id = InputValidator.validate_object_id(post_id, "postId")
        async with self.database.session() as session:
            row = (
                await session.execute(self._post_select(viewer).where(Post.id == post_id))
            ).first()
        if row is None:
            raise NotFoundError("Post", post_id)
        return self._to_view(row, viewer)

    async def list_user_posts(
        self, user_id: str, page: PageRequest, viewer: Viewer
    ) -> Page[PostView]:
        """A user's posts, newest first"""
        user_id = InputValidator.validate_object_id(user_id, "userId")
        async with self.database.session() as session:
            await get_or_404(session, User, user_id, "User")
            total = (
                await session.execute(
                    select(func.count(Post.id)).where(Post.owner_id == user_id)
                )
            ).scalar_one()
            rows = (
                await session.execute(
                    self._post_select(viewer)
                    .where(Post.owner_id == user_id)
                    .order_by(Post.created_at.desc(), Post.id.desc())
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).all()

        return Page[PostView].build(
            [self._to_view(row, viewer) for row in rows], total, page.page, page.page_size
        )

    async def update_post(self, post_id: str, content: str, viewer: Viewer) -> PostRecord:
        viewer.require_user()
        post_id = InputValidator.validate_object_id(post_id, "postId")
        content = InputValidator.validate_content(content)

        try:
            async with self.database.transaction() as session:
                post = await get_or_404(session, Post, post_id, "Post")
                viewer.require_owner(post.owner_id, "edit this post")
                post.content = content
                post.updated_at = utcnow()
        except SQLAlchemyError as e:
            raise PersistenceError("update post", str(e))

        logger.info(f"Post {post_id} updated")
        return PostRecord.model_validate(post)

    async def delete_post(self, post_id: str, viewer: Viewer) -> PostRecord:
        """Delete a post with its comments and every like on either"""
        viewer.require_user()
        post_id = InputValidator.validate_object_id(post_id, "postId")

        try:
            async with self.database.transaction() as session:
                post = await get_or_404(session, Post, post_id, "Post")
                viewer.require_owner(post.owner_id, "delete this post")
                record = PostRecord.model_validate(post)

                await delete_comment_rows(session, [Comment.post_id == post_id])
                await session.execute(delete(Like).where(Like.post_id == post_id))
                await session.execute(delete(Post).where(Post.id == post_id))
        except SQLAlchemyError as e:
            raise PersistenceError("delete post", str(e))

        logger.info(f"Post {post_id} deleted")
        return record
