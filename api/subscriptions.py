"""
Subscription Endpoints.

- `POST /subscriptions/c/{channel_id}`: Toggle the caller's subscription.
- `GET /subscriptions/c/{channel_id}`: The channel's subscribers.
- `GET /subscriptions/u/{subscriber_id}`: Channels a user follows.
- `GET /subscriptions/status/{channel_id}`: Whether the caller is subscribed.
"""

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_current_user,
    get_subscription_service,
    get_toggle_service,
    get_viewer,
)
from api.responses import respond
from core.logging_config import get_logger, log_function_call
from core.validation import PageRequest
from services.identity import Viewer
from services.subscription_service import SubscriptionService
from services.toggle_service import ToggleKind, ToggleService

logger = get_logger(__name__)
router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.post("/c/{channel_id}")
@log_function_call(logger)
async def toggle_subscription(
    channel_id: str,
    viewer: Viewer = Depends(get_current_user),
    toggles: ToggleService = Depends(get_toggle_service),
):
    result = await toggles.toggle(ToggleKind.SUBSCRIPTION, channel_id, viewer)
    message = "Subscribed successfully" if result.status == "added" else "Unsubscribed successfully"
    return respond(result, message)


@router.get("/c/{channel_id}")
async def channel_subscribers(
    channel_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    viewer: Viewer = Depends(get_viewer),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    subscribers = await subscriptions.list_channel_subscribers(
        channel_id, PageRequest.of(page, limit), viewer
    )
    return respond(subscribers, "Subscribers fetched successfully")


@router.get("/u/{subscriber_id}")
async def subscribed_channels(
    subscriber_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    viewer: Viewer = Depends(get_viewer),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    channels = await subscriptions.list_subscribed_channels(
        subscriber_id, PageRequest.of(page, limit), viewer
    )
    return respond(channels, "Subscribed channels fetched successfully")


@router.get("/status/{channel_id}")
async def subscription_status(
    channel_id: str,
    viewer: Viewer = Depends(get_viewer),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    subscribed = await subscriptions.is_subscribed(channel_id, viewer)
    return respond({"isSubscribed": subscribed}, "Subscription status fetched successfully")
