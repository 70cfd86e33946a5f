"""
Subscription listings: who follows a channel and which channels a user follows.
Toggling a subscription lives in `services/toggle_service.py`.
"""

import logging

from sqlalchemy import and_, func, select

from core.database import Database
from core.models import Subscription, User
from core.schemas import Page, SubscriptionEntry
from core.validation import InputValidator, PageRequest
from services.identity import Viewer
from services.queries import channel_select, get_or_404, to_channel_owner

logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(self, database: Database):
        self.database = database

    async def is_subscribed(self, channel_id: str, viewer: Viewer) -> bool:
        channel_id = InputValidator.validate_object_id(channel_id, "channelId")
        if viewer.is_anonymous:
            return False
        async with self.database.session() as session:
            await get_or_404(session, User, channel_id, "Channel")
            found = (
                await session.execute(
                    select(Subscription.id).where(
                        and_(
                            Subscription.channel_id == channel_id,
                            Subscription.subscriber_id == viewer.user_id,
                        )
                    )
                )
            ).first()
        return found is not None

    async def list_channel_subscribers(
        self, channel_id: str, page: PageRequest, viewer: Viewer
    ) -> Page[SubscriptionEntry]:
        """Users subscribed to `channel_id`, most recent first"""
        channel_id = InputValidator.validate_object_id(channel_id, "channelId")
        return await self._list(
            Subscription.channel_id == channel_id,
            Subscription.subscriber_id,
            channel_id,
            page,
            viewer,
        )

    async def list_subscribed_channels(
        self, subscriber_id: str, page: PageRequest, viewer: Viewer
    ) -> Page[SubscriptionEntry]:
        """Channels `subscriber_id` follows, most recent first"""
        subscriber_id = InputValidator.validate_object_id(subscriber_id, "subscriberId")
        return await self._list(
            Subscription.subscriber_id == subscriber_id,
            Subscription.channel_id,
            subscriber_id,
            page,
            viewer,
        )

    async def _list(self, condition, other_side, user_id, page, viewer) -> Page[SubscriptionEntry]:
        async with self.database.session() as session:
            await get_or_404(session, User, user_id, "User")

            total = (
                await session.execute(select(func.count(Subscription.id)).where(condition))
            ).scalar_one()
            rows = (
                await session.execute(
                    channel_select(viewer)
                    .add_columns(Subscription.created_at)
                    .join(Subscription, other_side == User.id)
                    .where(condition)
                    .order_by(Subscription.created_at.desc(), Subscription.id.desc())
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).all()

        items = [
            SubscriptionEntry(
                subscribed_at=subscribed_at,
                channel=to_channel_owner(user, subscribers, is_subscribed),
            )
            for user, subscribers, is_subscribed, subscribed_at in rows
        ]
        return Page[SubscriptionEntry].build(items, total, page.page, page.page_size)
