"""
Caller identity as seen by the query and command services.

A `Viewer` is either a signed-in user or anonymous. Services use it for three
things: ownership checks before a mutation, the viewer-relative booleans on
joined rows (`isLiked`, `isSubscribed`, `isCommentOwner`, ...), and hiding
unpublished videos from everybody except their owner.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, false, literal, select
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement

from core.exceptions import AuthenticationError, AuthorizationError
from core.models import Like, Subscription, Video


@dataclass(frozen=True)
class Viewer:
    user_id: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Viewer":
        return cls(None)

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    def require_user(self) -> str:
        if self.user_id is None:
            raise AuthenticationError("Unauthorized request")
        return self.user_id

    def owns(self, owner_id: Optional[str]) -> bool:
        return self.user_id is not None and self.user_id == owner_id

    def require_owner(self, owner_id: str, action: str = "modify this resource"):
        self.require_user()
        if not self.owns(owner_id):
            raise AuthorizationError(f"You are not allowed to {action}")

    def can_view(self, video: Video) -> bool:
        return bool(video.is_published) or self.owns(video.owner_id)

    # SQL helpers ------------------------------------------------------------

    def flag(self, owner_column) -> ColumnElement:
        """`owner_column == viewer`, false for anonymous viewers"""
        if self.user_id is None:
            return literal(False)
        return owner_column == self.user_id

    def video_visibility(self) -> ColumnElement:
        """Published, or owned by the viewer"""
        if self.user_id is None:
            return Video.is_published == True  # noqa: E712
        return (Video.is_published == True) | (Video.owner_id == self.user_id)  # noqa: E712

    def subscribed_to(self, channel_column) -> ColumnElement:
        """EXISTS(subscription viewer -> channel_column)"""
        if self.user_id is None:
            return false()
        subscription = aliased(Subscription)
        return (
            select(subscription.id)
            .where(
                and_(
                    subscription.channel_id == channel_column,
                    subscription.subscriber_id == self.user_id,
                )
            )
            .exists()
        )

    def liked(self, like_attribute: str, subject_column) -> ColumnElement:
        """EXISTS(like by viewer on subject_column); `like_attribute` names the Like column"""
        if self.user_id is None:
            return false()
        like = aliased(Like)
        return (
            select(like.id)
            .where(
                and_(
                    getattr(like, like_attribute) == subject_column,
                    like.liked_by == self.user_id,
                )
            )
            .exists()
        )
