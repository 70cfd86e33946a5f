"""
Like and Subscription Toggles.

A toggle flips the existence of a (subject, caller) relation: delete it when
present, create it when absent. Each attempt runs in one transaction and the
unique constraints on `likes` and `subscriptions` make a lost race visible:
a concurrent insert fails with `IntegrityError`, a concurrent delete removes
zero rows. Either way the attempt is rolled back and replayed against the
state the other caller left behind.
"""

import logging
from enum import Enum
from typing import Any, Dict, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.database import Database
from core.exceptions import ConflictError, PersistenceError, ValidationError
from core.models import Comment, Like, Post, Subscription, User
from core.schemas import ToggleResult
from core.validation import InputValidator
from services.identity import Viewer
from services.queries import get_or_404, get_visible_video

logger = logging.getLogger(__name__)

MAX_TOGGLE_ATTEMPTS = 3


class ToggleKind(str, Enum):
    VIDEO_LIKE = "video-like"
    COMMENT_LIKE = "comment-like"
    POST_LIKE = "post-like"
    SUBSCRIPTION = "subscription"


class _LostRace(Exception):
    """A concurrent toggle changed the relation under this attempt"""


_LIKE_COLUMNS = {
    ToggleKind.VIDEO_LIKE: "video_id",
    ToggleKind.COMMENT_LIKE: "comment_id",
    ToggleKind.POST_LIKE: "post_id",
}


def _relation(row) -> Dict[str, Any]:
    return {
        key: value
        for key, value in row.model_dump().items()
        if value is not None
    }


class ToggleService:
    """Create-if-absent / delete-if-present for likes and subscriptions"""

    def __init__(self, database: Database):
        self.database = database

    async def toggle(self, kind: ToggleKind, subject_id: str, viewer: Viewer) -> ToggleResult:
        user_id = viewer.require_user()
        kind = ToggleKind(kind)
        subject_id = InputValidator.validate_object_id(
            subject_id, "channelId" if kind is ToggleKind.SUBSCRIPTION else "subjectId"
        )

        if kind is ToggleKind.SUBSCRIPTION and subject_id == user_id:
            raise ValidationError("You cannot subscribe to your own channel", "channelId")

        await self._check_subject(kind, subject_id, viewer)

        for attempt in range(1, MAX_TOGGLE_ATTEMPTS + 1):
            try:
                status, relation = await self._attempt(kind, subject_id, user_id)
            except (IntegrityError, _LostRace) as e:
                logger.info(
                    f"Toggle {kind.value} on {subject_id} raced (attempt {attempt}): "
                    f"{type(e).__name__}"
                )
                continue
            except SQLAlchemyError as e:
                logger.error(f"Toggle {kind.value} on {subject_id} failed: {e}")
                raise PersistenceError(f"toggle {kind.value}", str(e))

            logger.debug(f"Toggle {kind.value} on {subject_id} by {user_id}: {status}")
            return ToggleResult(
                status=status, kind=kind.value, subject_id=subject_id, relation=relation
            )

        raise ConflictError(
            f"Could not toggle {kind.value} after {MAX_TOGGLE_ATTEMPTS} attempts"
        )

    async def _check_subject(self, kind: ToggleKind, subject_id: str, viewer: Viewer):
        async with self.database.session() as session:
            if kind is ToggleKind.VIDEO_LIKE:
                await get_visible_video(session, subject_id, viewer)
            elif kind is ToggleKind.COMMENT_LIKE:
                await get_or_404(session, Comment, subject_id, "Comment")
            elif kind is ToggleKind.POST_LIKE:
                await get_or_404(session, Post, subject_id, "Post")
            else:
                await get_or_404(session, User, subject_id, "Channel")

    async def _attempt(
        self, kind: ToggleKind, subject_id: str, user_id: str
    ) -> Tuple[str, Dict[str, Any]]:
        """One check-and-flip inside a single transaction"""
        if kind is ToggleKind.SUBSCRIPTION:
            model = Subscription
            key = (Subscription.channel_id == subject_id, Subscription.subscriber_id == user_id)
            fields = {"channel_id": subject_id, "subscriber_id": user_id}
        else:
            model = Like
            column = getattr(Like, _LIKE_COLUMNS[kind])
            key = (column == subject_id, Like.liked_by == user_id)
            fields = {_LIKE_COLUMNS[kind]: subject_id, "liked_by": user_id}

        async with self.database.transaction() as session:
            existing = (
                await session.execute(select(model).where(*key))
            ).scalars().first()

            if existing is not None:
                relation = _relation(existing)
                result = await session.execute(delete(model).where(model.id == existing.id))
                if result.rowcount != 1:
                    raise _LostRace()
                return "removed", relation

            row = model(**fields)
            session.add(row)
            await session.flush()
            return "added", _relation(row)
