"""
Core data models for the VideoTube API

SQLModel tables for users, videos, posts, comments, likes, subscriptions,
playlists and watch history. Relations are plain foreign-key columns; joined
views are assembled by the services.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field


def new_object_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every table stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def timestamp_field(**kwargs):
    # Plain DateTime column: values are naive UTC on every backend
    return Field(default_factory=utcnow, sa_type=DateTime, **kwargs)


class User(SQLModel, table=True):
    """
    Account and channel. `username` is the public handle, stored lower-cased.
    """

    __tablename__ = "users"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=32)
    username: str = Field(index=True, unique=True, max_length=64)
    email: str = Field(index=True, unique=True, max_length=255)
    full_name: str = Field(max_length=255)
    avatar: str = Field(max_length=1024)
    cover_image: str = Field(default="", max_length=1024)
    password_hash: str = Field(max_length=255)
    refresh_token: Optional[str] = Field(default=None, max_length=1024)
    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()


class Video(SQLModel, table=True):
    __tablename__ = "videos"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=32)
    owner_id: str = Field(foreign_key="users.id", index=True, max_length=32)
    video_file: str = Field(max_length=1024)
    thumbnail: str = Field(max_length=1024)
    title: str = Field(max_length=255)
    description: str = Field(default="")
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    duration: int = Field(default=0)  # seconds
    views: int = Field(default=0)
    is_published: bool = Field(default=True, index=True)
    created_at: datetime = timestamp_field(index=True)
    updated_at: datetime = timestamp_field()


class Post(SQLModel, table=True):
    __tablename__ = "posts"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=32)
    owner_id: str = Field(foreign_key="users.id", index=True, max_length=32)
    content: str
    created_at: datetime = timestamp_field(index=True)
    updated_at: datetime = timestamp_field()


class Comment(SQLModel, table=True):
    """
    A comment on exactly one video or post. Replies point at the thread root
    through `parent_id` and at the specific comment answered through
    `replying_to_id`.
    """

    __tablename__ = "comments"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=32)
    content: str
    owner_id: str = Field(foreign_key="users.id", index=True, max_length=32)
    video_id: Optional[str] = Field(default=None, foreign_key="videos.id", index=True, max_length=32)
    post_id: Optional[str] = Field(default=None, foreign_key="posts.id", index=True, max_length=32)
    parent_id: Optional[str] = Field(default=None, foreign_key="comments.id", index=True, max_length=32)
    replying_to_id: Optional[str] = Field(default=None, max_length=32)
    created_at: datetime = timestamp_field(index=True)
    updated_at: datetime = timestamp_field()


class Like(SQLModel, table=True):
    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("video_id", "liked_by", name="uq_like_video"),
        UniqueConstraint("comment_id", "liked_by", name="uq_like_comment"),
        UniqueConstraint("post_id", "liked_by", name="uq_like_post"),
    )

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=32)
    video_id: Optional[str] = Field(default=None, foreign_key="videos.id", index=True, max_length=32)
    comment_id: Optional[str] = Field(default=None, foreign_key="comments.id", index=True, max_length=32)
    post_id: Optional[str] = Field(default=None, foreign_key="posts.id", index=True, max_length=32)
    liked_by: str = Field(foreign_key="users.id", index=True, max_length=32)
    created_at: datetime = timestamp_field()


class Subscription(SQLModel, table=True):
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "channel_id", name="uq_subscription"),
        CheckConstraint("subscriber_id <> channel_id", name="ck_no_self_subscription"),
    )

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=32)
    subscriber_id: str = Field(foreign_key="users.id", index=True, max_length=32)
    channel_id: str = Field(foreign_key="users.id", index=True, max_length=32)
    created_at: datetime = timestamp_field()


class Playlist(SQLModel, table=True):
    __tablename__ = "playlists"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=32)
    owner_id: str = Field(foreign_key="users.id", index=True, max_length=32)
    name: str = Field(max_length=255)
    description: str = Field(default="")
    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()


class PlaylistVideo(SQLModel, table=True):
    """Playlist membership; the autoincrement id is the display order"""

    __tablename__ = "playlist_videos"
    __table_args__ = (
        UniqueConstraint("playlist_id", "video_id", name="uq_playlist_video"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    playlist_id: str = Field(foreign_key="playlists.id", index=True, max_length=32)
    video_id: str = Field(foreign_key="videos.id", index=True, max_length=32)
    added_at: datetime = timestamp_field()


class WatchHistory(SQLModel, table=True):
    __tablename__ = "watch_history"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=32)
    video_id: str = Field(foreign_key="videos.id", index=True, max_length=32)
    watched_by: str = Field(foreign_key="users.id", index=True, max_length=32)
    created_at: datetime = timestamp_field(index=True)
