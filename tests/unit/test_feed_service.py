"""
Unit tests for the FeedService

Covers filter modes, sorting, pagination arithmetic and the owner/subscription
info joined onto every row.
"""
import pytest

from core.exceptions import NotFoundError, ValidationError
from core.models import Like, Subscription
from core.validation import PageRequest
from services.feed_service import (
    ByKeyword,
    ByOwner,
    FeedService,
    FeedSort,
    SortField,
    SortOrder,
    Unfiltered,
    feed_filter_from_params,
)


@pytest.fixture
def feed(database):
    return FeedService(database)


class TestFeedFilterFromParams:
    """Test mapping of query parameters onto filter variants"""

    def test_no_params_is_unfiltered(self):
        assert feed_filter_from_params(None, None) == Unfiltered()
        assert feed_filter_from_params("", "  ") == Unfiltered()

    def test_user_param_is_normalised_handle(self):
        assert feed_filter_from_params("Some+Channel", None) == ByOwner("some channel")

    def test_search_param(self):
        assert feed_filter_from_params(None, "cats") == ByKeyword("cats")

    def test_both_params_rejected(self):
        with pytest.raises(ValidationError):
            feed_filter_from_params("someone", "cats")


class TestFeedSort:
    def test_defaults(self):
        sort = FeedSort.of()
        assert sort.field is SortField.CREATED_AT
        assert sort.order is SortOrder.DESC

    def test_ascending_views(self):
        sort = FeedSort.of("views", "asc")
        assert sort.field is SortField.VIEWS
        assert sort.order is SortOrder.ASC

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            FeedSort.of("likes")


@pytest.mark.unit
class TestListVideos:
    """Test FeedService.list_videos"""

    async def test_pagination_scenario(self, feed, make_user, make_video, as_viewer):
        """25 videos at 10 per page: 10, 10, 5, then an empty page"""
        owners = [await make_user() for _ in range(3)]
        for i in range(25):
            await make_video(owners[i % 3])

        sizes = []
        for page in range(1, 5):
            result = await feed.list_videos(
                Unfiltered(), FeedSort(), PageRequest.of(page, 10), as_viewer(None)
            )
            assert result.total == 25
            assert result.total_pages == 3
            sizes.append(len(result.items))

        assert sizes == [10, 10, 5, 0]

    async def test_pages_cover_every_item_once(self, feed, make_user, make_video, as_viewer):
        owner = await make_user()
        # identical view counts force the id tie-break
        videos = [await make_video(owner, views=7) for _ in range(23)]

        seen = []
        sort = FeedSort(SortField.VIEWS, SortOrder.ASC)
        for page in range(1, 4):
            result = await feed.list_videos(
                Unfiltered(), sort, PageRequest.of(page, 10), as_viewer(None)
            )
            seen.extend(item.id for item in result.items)

        assert len(seen) == 23
        assert set(seen) == {v.id for v in videos}

    async def test_unpublished_videos_never_listed(self, feed, make_user, make_video, as_viewer):
        owner = await make_user("owner")
        published = await make_video(owner)
        await make_video(owner, published=False)

        for viewer in (as_viewer(None), as_viewer(owner)):
            result = await feed.list_videos(
                ByOwner("owner"), FeedSort(), PageRequest.of(1, 10), viewer
            )
            assert [item.id for item in result.items] == [published.id]

    async def test_by_owner_unknown_handle(self, feed, as_viewer):
        with pytest.raises(NotFoundError):
            await feed.list_videos(
                ByOwner("nobody"), FeedSort(), PageRequest.of(1, 10), as_viewer(None)
            )

    async def test_sort_by_title_ascending(self, feed, make_user, make_video, as_viewer):
        owner = await make_user()
        await make_video(owner, title="Charlie")
        await make_video(owner, title="alpha")
        await make_video(owner, title="Bravo")

        result = await feed.list_videos(
            Unfiltered(), FeedSort(SortField.TITLE, SortOrder.ASC), PageRequest.of(1, 10), as_viewer(None)
        )
        titles = [item.title for item in result.items]
        assert titles == sorted(titles)

    async def test_owner_info_and_subscription_flag(
        self, feed, database, make_user, make_video, as_viewer
    ):
        owner = await make_user("channel")
        fan = await make_user("fan")
        await make_video(owner)
        async with database.transaction() as session:
            session.add(Subscription(subscriber_id=fan.id, channel_id=owner.id))

        result = await feed.list_videos(
            Unfiltered(), FeedSort(), PageRequest.of(1, 10), as_viewer(fan)
        )
        row = result.items[0]
        assert row.owner.username == "channel"
        assert row.owner.subscribers == 1
        assert row.owner.is_subscribed is True

        anonymous = await feed.list_videos(
            Unfiltered(), FeedSort(), PageRequest.of(1, 10), as_viewer(None)
        )
        assert anonymous.items[0].owner.is_subscribed is False
        assert anonymous.items[0].owner.subscribers == 1

    async def test_keyword_search_matches_title_description_and_tags(
        self, feed, make_user, make_video, as_viewer
    ):
        owner = await make_user()
        by_title = await make_video(owner, title="Cooking PASTA at home")
        by_description = await make_video(owner, description="a quick pasta recipe")
        by_tag = await make_video(owner, tags=["italian", "pasta"])
        await make_video(owner, title="Gardening")

        result = await feed.list_videos(
            ByKeyword("pasta"), FeedSort(), PageRequest.of(1, 10), as_viewer(None)
        )
        assert {item.id for item in result.items} == {by_title.id, by_description.id, by_tag.id}

    async def test_keyword_wildcards_are_literal(self, feed, make_user, make_video, as_viewer):
        owner = await make_user()
        match = await make_video(owner, title="100% real")
        await make_video(owner, title="100 real")

        result = await feed.list_videos(
            ByKeyword("100%"), FeedSort(), PageRequest.of(1, 10), as_viewer(None)
        )
        assert [item.id for item in result.items] == [match.id]

    @pytest.mark.parametrize("keyword", ["[", "]", '"', '", "'])
    async def test_keyword_ignores_tag_json_punctuation(
        self, feed, make_user, make_video, as_viewer, keyword
    ):
        owner = await make_user()
        await make_video(owner, title="plain", description="nothing", tags=["music", "live"])

        result = await feed.list_videos(
            ByKeyword(keyword), FeedSort(), PageRequest.of(1, 10), as_viewer(None)
        )
        assert result.total == 0
        assert result.items == []

    async def test_keyword_matches_part_of_a_single_tag(
        self, feed, make_user, make_video, as_viewer
    ):
        owner = await make_user()
        tagged = await make_video(owner, title="plain", description="nothing", tags=["Synthwave"])
        await make_video(owner, title="other", description="nothing", tags=["jazz"])

        result = await feed.list_videos(
            ByKeyword("WAVE"), FeedSort(), PageRequest.of(1, 10), as_viewer(None)
        )
        assert [item.id for item in result.items] == [tagged.id]

    async def test_keyword_search_returns_channel_previews(
        self, feed, make_user, make_video, as_viewer
    ):
        chef = await make_user("pastachef", full_name="Pasta Chef")
        preview = await make_video(chef, title="Knife skills")
        await make_user("quietpasta")

        result = await feed.list_videos(
            ByKeyword("pasta"), FeedSort(), PageRequest.of(1, 10), as_viewer(None)
        )
        channels = {c.channel.username: c for c in result.channels}
        assert set(channels) == {"pastachef", "quietpasta"}
        assert channels["pastachef"].video.id == preview.id
        assert channels["quietpasta"].video is None

    async def test_unfiltered_has_no_channels(self, feed, make_user, make_video, as_viewer):
        owner = await make_user()
        await make_video(owner)
        result = await feed.list_videos(
            Unfiltered(), FeedSort(), PageRequest.of(1, 10), as_viewer(None)
        )
        assert result.channels == []


@pytest.mark.unit
class TestLikedAndChannelVideos:
    async def test_liked_videos_newest_like_first(
        self, feed, database, make_user, make_video, as_viewer
    ):
        owner = await make_user()
        fan = await make_user()
        first = await make_video(owner)
        second = await make_video(owner)
        hidden = await make_video(owner, published=False)
        async with database.transaction() as session:
            session.add(Like(video_id=first.id, liked_by=fan.id))
        async with database.transaction() as session:
            session.add(Like(video_id=second.id, liked_by=fan.id))
        async with database.transaction() as session:
            session.add(Like(video_id=hidden.id, liked_by=fan.id))

        result = await feed.list_liked_videos(as_viewer(fan), PageRequest.of(1, 10))
        assert result.total == 2
        assert [item.id for item in result.items] == [second.id, first.id]

    async def test_liked_videos_empty_is_success(self, feed, make_user, as_viewer):
        fan = await make_user()
        result = await feed.list_liked_videos(as_viewer(fan), PageRequest.of(1, 10))
        assert result.items == []
        assert result.total == 0

    async def test_channel_videos_include_unpublished(
        self, feed, make_user, make_video, as_viewer
    ):
        owner = await make_user()
        other = await make_user()
        published = await make_video(owner)
        draft = await make_video(owner, published=False)
        await make_video(other)

        videos = await feed.list_channel_videos(as_viewer(owner))
        assert [v.id for v in videos] == [draft.id, published.id]
