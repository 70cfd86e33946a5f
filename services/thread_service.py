"""
Comment Thread Service.

Comments hang off exactly one video or post. A thread is one top-level comment
(`parent_id IS NULL`) plus a flat list of replies whose `parent_id` is that
root; each reply also names the specific comment it answers through
`replying_to_id`, which is the root or another reply in the same thread.

Listings are oldest first. Every row carries the owner snippet, like and reply
counts and the viewer-relative flags. Subject lookup always happens first, so
"subject not found" (an error) is never confused with "no comments yet" (an
empty page).
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from core.database import Database
from core.exceptions import PersistenceError, ValidationError
from core.models import Comment, Like, Post, User, utcnow
from core.schemas import CommentRecord, CommentView, Page, RepliedComment, UserSnippet
from core.validation import InputValidator, PageRequest
from services.identity import Viewer
from services.queries import get_or_404, get_visible_video, like_count, to_snippet

logger = logging.getLogger(__name__)

Reply = aliased(Comment, name="reply")
Target = aliased(Comment, name="target")
TargetOwner = aliased(User, name="target_owner")


def reply_count():
    """Correlated count of replies whose thread root is the outer comment"""
    return (
        select(func.count(Reply.id))
        .where(Reply.parent_id == Comment.id)
        .correlate(Comment)
        .scalar_subquery()
    )


class ThreadService:
    """Comment threads on videos and posts"""

    def __init__(self, database: Database):
        self.database = database

    # Queries ---------------------------------------------------------------

    def _comment_select(self, viewer: Viewer):
        return select(
            Comment,
            User,
            like_count("comment_id", Comment.id).label("likes_count"),
            reply_count().label("replies_count"),
            viewer.liked("comment_id", Comment.id).label("is_liked"),
        ).join(User, User.id == Comment.owner_id)

    async def _page(
        self,
        session: AsyncSession,
        conditions: list,
        page: PageRequest,
        viewer: Viewer,
        subject_owner_id: str,
        with_targets: bool = False,
        thread_owner: Optional[UserSnippet] = None,
    ) -> Page[CommentView]:
        total = (
            await session.execute(select(func.count(Comment.id)).where(*conditions))
        ).scalar_one()

        statement = self._comment_select(viewer)
        if with_targets:
            statement = (
                statement.add_columns(Target, TargetOwner)
                .outerjoin(Target, Target.id == Comment.replying_to_id)
                .outerjoin(TargetOwner, TargetOwner.id == Target.owner_id)
            )
        rows = (
            await session.execute(
                statement.where(*conditions)
                .order_by(Comment.created_at.asc(), Comment.id.asc())
                .offset(page.skip)
                .limit(page.limit)
            )
        ).all()

        items = []
        for row in rows:
            comment, owner, likes, replies, is_liked = row[:5]
            view = CommentView(
                id=comment.id,
                content=comment.content,
                created_at=comment.created_at,
                updated_at=comment.updated_at,
                owner=to_snippet(owner),
                likes_count=likes or 0,
                replies_count=replies or 0,
                is_liked=bool(is_liked),
                is_comment_owner=viewer.owns(comment.owner_id),
                is_subject_owner=viewer.owns(subject_owner_id),
                parent_id=comment.parent_id,
            )
            if with_targets:
                target, target_owner = row[5], row[6]
                if target is not None and target_owner is not None:
                    view.replying_to = RepliedComment(
                        id=target.id,
                        content=target.content,
                        owner=to_snippet(target_owner),
                    )
                view.thread_owner = thread_owner
            items.append(view)

        return Page[CommentView].build(items, total, page.page, page.page_size)

    async def list_video_comments(
        self, video_id: str, page: PageRequest, viewer: Viewer
    ) -> Page[CommentView]:
        video_id = InputValidator.validate_object_id(video_id, "videoId")
        async with self.database.session() as session:
            video = await get_visible_video(session, video_id, viewer)
            return await self._page(
                session,
                [Comment.video_id == video.id, Comment.parent_id.is_(None)],
                page,
                viewer,
                video.owner_id,
            )

    async def list_post_comments(
        self, post_id: str, page: PageRequest, viewer: Viewer
    ) -> Page[CommentView]:
        post_id = InputValidator.validate_object_id(post_id, "postId")
        async with self.database.session() as session:
            post = await get_or_404(session, Post, post_id, "Post")
            return await self._page(
                session,
                [Comment.post_id == post.id, Comment.parent_id.is_(None)],
                page,
                viewer,
                post.owner_id,
            )

    async def list_replies(
        self, comment_id: str, page: PageRequest, viewer: Viewer
    ) -> Page[CommentView]:
        """Replies of the thread `comment_id` belongs to, oldest first"""
        comment_id = InputValidator.validate_object_id(comment_id, "commentId")
        async with self.database.session() as session:
            root = await self._thread_root(session, comment_id)
            subject_owner_id = await self._subject_owner(session, root, viewer)
            root_owner = await session.get(User, root.owner_id)
            return await self._page(
                session,
                [Comment.parent_id == root.id],
                page,
                viewer,
                subject_owner_id,
                with_targets=True,
                thread_owner=to_snippet(root_owner) if root_owner else None,
            )

    async def _thread_root(self, session: AsyncSession, comment_id: str) -> Comment:
        comment = await get_or_404(session, Comment, comment_id, "Comment")
        if comment.parent_id is None:
            return comment
        return await get_or_404(session, Comment, comment.parent_id, "Comment")

    async def _subject_owner(
        self, session: AsyncSession, comment: Comment, viewer: Viewer
    ) -> str:
        """Owner of the video/post a comment belongs to; enforces video visibility"""
        if comment.video_id is not None:
            video = await get_visible_video(session, comment.video_id, viewer)
            return video.owner_id
        if comment.post_id is not None:
            post = await get_or_404(session, Post, comment.post_id, "Post")
            return post.owner_id
        raise ValidationError("Comment is not attached to a video or post", "commentId")

    # Commands --------------------------------------------------------------

    async def _insert(self, session: AsyncSession, comment: Comment) -> CommentRecord:
        session.add(comment)
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Failed to save comment: {e}")
            raise PersistenceError("add comment", str(e))
        return CommentRecord.model_validate(comment)

    async def add_video_comment(
        self, video_id: str, content: str, viewer: Viewer
    ) -> CommentRecord:
        user_id = viewer.require_user()
        video_id = InputValidator.validate_object_id(video_id, "videoId")
        content = InputValidator.validate_content(content)

        async with self.database.session() as session:
            video = await get_visible_video(session, video_id, viewer)
            record = await self._insert(
                session, Comment(content=content, owner_id=user_id, video_id=video.id)
            )
        logger.info(f"Comment {record.id} added to video {video_id}")
        return record

    async def add_post_comment(
        self, post_id: str, content: str, viewer: Viewer
    ) -> CommentRecord:
        user_id = viewer.require_user()
        post_id = InputValidator.validate_object_id(post_id, "postId")
        content = InputValidator.validate_content(content)

        async with self.database.session() as session:
            post = await get_or_404(session, Post, post_id, "Post")
            record = await self._insert(
                session, Comment(content=content, owner_id=user_id, post_id=post.id)
            )
        logger.info(f"Comment {record.id} added to post {post_id}")
        return record

    async def add_reply(
        self,
        parent_id: str,
        content: str,
        viewer: Viewer,
        replying_to_id: Optional[str] = None,
    ) -> CommentRecord:
        """
        Reply inside the thread `parent_id` belongs to. `replying_to_id`
        defaults to `parent_id` and must be the root or one of its replies.
        """
        user_id = viewer.require_user()
        parent_id = InputValidator.validate_object_id(parent_id, "commentId")
        if replying_to_id:
            replying_to_id = InputValidator.validate_object_id(replying_to_id, "replyingTo")
        content = InputValidator.validate_content(content)

        async with self.database.session() as session:
            root = await self._thread_root(session, parent_id)
            await self._subject_owner(session, root, viewer)

            target_id = replying_to_id or parent_id
            if target_id != root.id:
                target = await get_or_404(session, Comment, target_id, "Comment")
                if target.parent_id != root.id:
                    raise ValidationError(
                        "The comment being answered is not part of this thread", "replyingTo"
                    )

            record = await self._insert(
                session,
                Comment(
                    content=content,
                    owner_id=user_id,
                    video_id=root.video_id,
                    post_id=root.post_id,
                    parent_id=root.id,
                    replying_to_id=target_id,
                ),
            )
        logger.info(f"Reply {record.id} added to thread {record.parent_id}")
        return record

    async def update_comment(
        self, comment_id: str, content: str, viewer: Viewer
    ) -> CommentRecord:
        viewer.require_user()
        comment_id = InputValidator.validate_object_id(comment_id, "commentId")
        content = InputValidator.validate_content(content)

        async with self.database.session() as session:
            comment = await get_or_404(session, Comment, comment_id, "Comment")
            viewer.require_owner(comment.owner_id, "edit this comment")

            comment.content = content
            comment.updated_at = utcnow()
            try:
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError("update comment", str(e))
            return CommentRecord.model_validate(comment)

    async def delete_comment(self, comment_id: str, viewer: Viewer) -> CommentRecord:
        """Delete a comment, its replies and every like on them"""
        viewer.require_user()
        comment_id = InputValidator.validate_object_id(comment_id, "commentId")

        async with self.database.session() as session:
            comment = await get_or_404(session, Comment, comment_id, "Comment")
            viewer.require_owner(comment.owner_id, "delete this comment")
            record = CommentRecord.model_validate(comment)

            try:
                removed = await delete_comment_rows(
                    session, [Comment.id == comment.id, Comment.parent_id == comment.id]
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError("delete comment", str(e))

        logger.info(f"Deleted comment {comment_id} and {removed - 1} replies")
        return record


async def delete_comment_rows(session: AsyncSession, conditions: List) -> int:
    """
    Delete the comments matching any of `conditions` together with the likes
    on them. Returns the number of comments removed. The caller commits.
    """
    doomed = select(Comment.id).where(or_(*conditions))
    ids: List[str] = list((await session.execute(doomed)).scalars().all())
    if not ids:
        return 0

    await session.execute(delete(Like).where(Like.comment_id.in_(ids)))
    # replies first, their parent_id references the roots
    await session.execute(
        delete(Comment).where(Comment.id.in_(ids), Comment.parent_id.is_not(None))
    )
    await session.execute(delete(Comment).where(Comment.id.in_(ids)))
    return len(ids)
