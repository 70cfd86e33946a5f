"""
Response models for the VideoTube API.

Services return these models; routers wrap them in `ApiResponse`. Field names
are snake_case in Python and camelCase on the wire.
"""

import math
from datetime import date, datetime
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class APIModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(APIModel):
    """The `{statusCode, data, message, success}` envelope"""

    status_code: int
    data: Any = None
    message: str = "Success"
    success: bool = True

    @classmethod
    def of(cls, data: Any, message: str = "Success", status_code: int = 200) -> "ApiResponse":
        return cls(
            status_code=status_code,
            data=data,
            message=message,
            success=status_code < 400,
        )


class Page(APIModel, Generic[T]):
    items: List[T] = Field(default_factory=list)
    total: int = 0
    current_page: int = 1
    page_size: int = 10
    total_pages: int = 0

    @classmethod
    def build(cls, items: List[T], total: int, page: int, page_size: int):
        return cls(
            items=items,
            total=total,
            current_page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )


# --- users -----------------------------------------------------------------


class UserSnippet(APIModel):
    id: str
    username: str
    full_name: str
    avatar: str


class ChannelOwner(UserSnippet):
    created_at: datetime
    subscribers: int = 0
    is_subscribed: bool = False


class UserView(APIModel):
    """A user record without credentials"""

    id: str
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str
    created_at: datetime
    updated_at: datetime


class ChannelProfile(APIModel):
    id: str
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str
    created_at: datetime
    subscribers_count: int
    channels_subscribed_to_count: int
    is_subscribed: bool


class AuthTokens(APIModel):
    access_token: str
    refresh_token: str


class LoginResult(AuthTokens):
    user: UserView


# --- videos ----------------------------------------------------------------


class VideoView(APIModel):
    id: str
    owner_id: str
    video_file: str
    thumbnail: str
    title: str
    description: str
    tags: List[str]
    duration: int
    views: int
    is_published: bool
    created_at: datetime
    updated_at: datetime


class FeedVideo(APIModel):
    id: str
    title: str
    thumbnail: str
    duration: int
    views: int
    tags: List[str]
    created_at: datetime
    owner: ChannelOwner


class ChannelPreview(APIModel):
    channel: ChannelOwner
    video: Optional[FeedVideo] = None


class VideoFeed(Page[FeedVideo]):
    channels: List[ChannelPreview] = Field(default_factory=list)


class LikeSummary(APIModel):
    total_likes: int = 0
    is_liked: bool = False


class VideoDetail(APIModel):
    video: VideoView
    owner: ChannelOwner
    likes: LikeSummary
    is_video_owner: bool = False


# --- comments --------------------------------------------------------------


class RepliedComment(APIModel):
    id: str
    content: str
    owner: UserSnippet


class CommentView(APIModel):
    id: str
    content: str
    created_at: datetime
    updated_at: datetime
    owner: UserSnippet
    likes_count: int = 0
    replies_count: int = 0
    is_liked: bool = False
    is_comment_owner: bool = False
    is_subject_owner: bool = False
    parent_id: Optional[str] = None
    replying_to: Optional[RepliedComment] = None
    thread_owner: Optional[UserSnippet] = None


class CommentRecord(APIModel):
    id: str
    content: str
    owner_id: str
    video_id: Optional[str] = None
    post_id: Optional[str] = None
    parent_id: Optional[str] = None
    replying_to_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# --- likes / subscriptions -------------------------------------------------


class ToggleResult(APIModel):
    status: str  # "added" | "removed"
    kind: str
    subject_id: str
    relation: dict


class SubscriptionEntry(APIModel):
    subscribed_at: datetime
    channel: ChannelOwner


# --- posts -----------------------------------------------------------------


class PostRecord(APIModel):
    id: str
    owner_id: str
    content: str
    created_at: datetime
    updated_at: datetime


class PostView(APIModel):
    id: str
    content: str
    created_at: datetime
    updated_at: datetime
    owner: UserSnippet
    total_likes: int = 0
    total_comments: int = 0
    is_liked: bool = False
    is_post_owner: bool = False


# --- playlists -------------------------------------------------------------


class PlaylistRecord(APIModel):
    id: str
    owner_id: str
    name: str
    description: str
    created_at: datetime
    updated_at: datetime
    total_videos: int = 0


class PlaylistDetail(PlaylistRecord):
    videos: List[FeedVideo] = Field(default_factory=list)


# --- dashboard / history ---------------------------------------------------


class ChannelStats(APIModel):
    total_videos: int = 0
    total_subscribers: int = 0
    total_views: int = 0
    total_video_likes: int = 0


class WatchedVideo(FeedVideo):
    watched_at: datetime


class WatchDay(APIModel):
    day: date = Field(alias="date")
    videos: List[WatchedVideo] = Field(default_factory=list)


class WatchHistoryPage(APIModel):
    days: List[WatchDay] = Field(default_factory=list)
    total: int = 0
    current_page: int = 1
    page_size: int = 10
    total_pages: int = 0


class WatchRecord(APIModel):
    id: str
    video_id: str
    watched_by: str
    created_at: datetime
