"""
Unit tests for the PostService
"""
import pytest
from sqlalchemy import func, select

from core.exceptions import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from core.models import Comment, Like, Post, new_object_id
from core.validation import PageRequest
from services.post_service import PostService


@pytest.fixture
def posts(database):
    return PostService(database)


@pytest.mark.unit
class TestPostService:
    async def test_create_and_get(self, posts, make_user, as_viewer):
        author = await make_user("writer")

        record = await posts.create_post("  Hello subscribers  ", as_viewer(author))
        assert record.content == "Hello subscribers"
        assert record.owner_id == author.id

        view = await posts.get_post(record.id, as_viewer(author))
        assert view.owner.username == "writer"
        assert view.is_post_owner is True
        assert view.total_likes == 0
        assert view.total_comments == 0

    async def test_create_requires_content_and_login(self, posts, make_user, as_viewer):
        author = await make_user()
        with pytest.raises(ValidationError):
            await posts.create_post("", as_viewer(author))
        with pytest.raises(AuthenticationError):
            await posts.create_post("hi", as_viewer(None))

    async def test_counts_and_like_flag(
        self, posts, database, make_user, make_post, make_comment, as_viewer
    ):
        author = await make_user()
        fan = await make_user()
        post = await make_post(author)
        await make_comment(fan, post_id=post.id)
        async with database.transaction() as session:
            session.add(Like(post_id=post.id, liked_by=fan.id))

        view = await posts.get_post(post.id, as_viewer(fan))
        assert view.total_likes == 1
        assert view.total_comments == 1
        assert view.is_liked is True
        assert view.is_post_owner is False

    async def test_list_user_posts_newest_first(self, posts, make_user, as_viewer):
        author = await make_user()
        first = await posts.create_post("first", as_viewer(author))
        second = await posts.create_post("second", as_viewer(author))

        page = await posts.list_user_posts(author.id, PageRequest.of(1, 10), as_viewer(None))
        assert [p.id for p in page.items] == [second.id, first.id]
        assert page.total == 2

    async def test_list_for_unknown_user(self, posts, as_viewer):
        with pytest.raises(NotFoundError):
            await posts.list_user_posts(new_object_id(), PageRequest.of(1, 10), as_viewer(None))

    async def test_only_owner_may_update(self, posts, make_user, make_post, as_viewer):
        """B cannot edit A's post; A can, and updatedAt moves forward"""
        alice = await make_user()
        bob = await make_user()
        post = await make_post(alice, "original")

        with pytest.raises(AuthorizationError):
            await posts.update_post(post.id, "defaced", as_viewer(bob))
        unchanged = await posts.get_post(post.id, as_viewer(alice))
        assert unchanged.content == "original"

        record = await posts.update_post(post.id, "edited", as_viewer(alice))
        assert record.content == "edited"
        assert record.updated_at > post.updated_at

    async def test_update_missing_post(self, posts, make_user, as_viewer):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await posts.update_post(new_object_id(), "text", as_viewer(user))

    async def test_delete_cascades_comments_and_likes(
        self, posts, database, make_user, make_post, make_comment, as_viewer
    ):
        author = await make_user()
        fan = await make_user()
        post = await make_post(author)
        root = await make_comment(fan, post_id=post.id)
        await make_comment(author, post_id=post.id, parent_id=root.id, replying_to_id=root.id)
        async with database.transaction() as session:
            session.add(Like(post_id=post.id, liked_by=fan.id))
            session.add(Like(comment_id=root.id, liked_by=author.id))

        with pytest.raises(AuthorizationError):
            await posts.delete_post(post.id, as_viewer(fan))

        record = await posts.delete_post(post.id, as_viewer(author))
        assert record.id == post.id

        async with database.session() as session:
            for model in (Post, Comment, Like):
                count = (await session.execute(select(func.count(model.id)))).scalar_one()
                assert count == 0
