"""Tests for the Interaction Engine against the in-memory primary store."""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, Mock, patch

from interaction_service.application.interactions import InteractionService
from interaction_service.domain.models import (
    CommentDetails,
    EventKind,
    LikeDetails,
    LikeOutcome,
)
from interaction_service.exceptions import (
    CommentNotFound,
    ContentTooLong,
    DuplicateLike,
    NotFoundOrForbidden,
    PostNotFound,
    StoreUnavailable,
)
from interaction_service.infrastructure.database.memory import MemoryLikeRepository


@pytest.fixture
def producer():
    """Kafka producer double that records publishes."""
    mock = Mock()
    mock.publish_post_upserted = AsyncMock(return_value=True)
    mock.publish_post_deleted = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def service(store, producer):
    return InteractionService(store, producer)


# ============================================================================
# Posts
# ============================================================================

class TestCreatePost:
    """Test post creation."""

    @pytest.mark.asyncio
    async def test_create_post_starts_empty(self, service, store, producer):
        post = await service.create_post("u-alice", "hello world")

        assert post.content == "hello world"
        assert post.likes_count == 0
        assert post.comments == []
        assert store.state.posts[post.id].user_id == "u-alice"
        producer.publish_post_upserted.assert_awaited_once_with(post.id, "u-alice")

    @pytest.mark.asyncio
    async def test_content_at_limit_is_accepted(self, service):
        post = await service.create_post("u-alice", "x" * 280)
        assert len(post.content) == 280

    @pytest.mark.asyncio
    async def test_content_over_limit_is_rejected_without_writes(self, service, store, producer):
        with pytest.raises(ContentTooLong):
            await service.create_post("u-alice", "x" * 281)

        assert store.state.posts == {}
        producer.publish_post_upserted.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_limit_counts_code_points(self, service):
        post = await service.create_post("u-alice", "你好" * 140)
        assert len(post.content) == 280


class TestUpdatePost:
    """Test post updates."""

    @pytest.mark.asyncio
    async def test_author_can_update(self, service, store):
        post = await service.create_post("u-alice", "draft")

        content = await service.update_post(post.id, "u-alice", "final")

        assert content == "final"
        assert store.state.posts[post.id].content == "final"

    @pytest.mark.asyncio
    async def test_non_author_gets_not_found_or_forbidden(self, service, store):
        post = await service.create_post("u-alice", "mine")

        with pytest.raises(NotFoundOrForbidden):
            await service.update_post(post.id, "u-bob", "hijacked")

        assert store.state.posts[post.id].content == "mine"

    @pytest.mark.asyncio
    async def test_missing_post_is_indistinguishable_from_forbidden(self, service):
        with pytest.raises(NotFoundOrForbidden) as missing:
            await service.update_post("000000000000000000000000", "u-alice", "text")

        assert missing.value.status == 404
        assert missing.value.message == "Post not found"

    @pytest.mark.asyncio
    async def test_update_over_limit_is_rejected(self, service, store):
        post = await service.create_post("u-alice", "short")

        with pytest.raises(ContentTooLong):
            await service.update_post(post.id, "u-alice", "y" * 281)

        assert store.state.posts[post.id].content == "short"


class TestDeletePost:
    """Test cascading post deletion."""

    @pytest.mark.asyncio
    async def test_delete_cascades_to_comments_likes_and_events(self, service, store, producer):
        post = await service.create_post("u-alice", "doomed")
        comment = await service.add_comment(post.id, "u-bob", "nice")
        await service.like_post(post.id, "u-bob")
        await service.like_post(post.id, "u-carol")
        await service.like_comment(comment.id, "u-alice")

        # An unrelated post keeps its data
        other = await service.create_post("u-bob", "survivor")
        await service.like_post(other.id, "u-alice")

        await service.delete_post(post.id, "u-alice")

        state = store.state
        assert post.id not in state.posts
        assert comment.id not in state.comments
        assert all(like.target_id not in (post.id, comment.id) for like in state.likes.values())
        assert all(event.post_id != post.id for event in state.events.values())

        assert other.id in state.posts
        assert len(state.likes) == 1
        assert len(state.events) == 1
        producer.publish_post_deleted.assert_awaited_once_with(post.id, "u-alice")

    @pytest.mark.asyncio
    async def test_non_author_cannot_delete(self, service, store):
        post = await service.create_post("u-alice", "keep me")

        with pytest.raises(NotFoundOrForbidden):
            await service.delete_post(post.id, "u-bob")

        assert post.id in store.state.posts

    @pytest.mark.asyncio
    async def test_delete_missing_post(self, service, producer):
        with pytest.raises(NotFoundOrForbidden):
            await service.delete_post("000000000000000000000000", "u-alice")
        producer.publish_post_deleted.assert_not_awaited()


# ============================================================================
# Likes
# ============================================================================

class TestLikes:
    """Test idempotent like/unlike."""

    @pytest.mark.asyncio
    async def test_like_applies_and_notifies_author(self, service, store):
        post = await service.create_post("u-alice", "likeable")

        outcome = await service.like_post(post.id, "u-bob")

        assert outcome == LikeOutcome.APPLIED
        assert store.state.posts[post.id].likes_count == 1
        events = list(store.state.events.values())
        assert len(events) == 1
        assert events[0].kind == EventKind.LIKE
        assert events[0].sender_id == "u-bob"
        assert events[0].receiver_id == "u-alice"
        assert events[0].details == LikeDetails(post_id=post.id)

    @pytest.mark.asyncio
    async def test_double_like_is_no_state_change(self, service, store):
        post = await service.create_post("u-alice", "likeable")

        first = await service.like_post(post.id, "u-bob")
        second = await service.like_post(post.id, "u-bob")

        assert first == LikeOutcome.APPLIED
        assert second == LikeOutcome.NO_STATE_CHANGE
        assert store.state.posts[post.id].likes_count == 1
        assert len(store.state.likes) == 1
        assert len(store.state.events) == 1

    @pytest.mark.asyncio
    async def test_unlike_like_unlike_round_trip(self, service, store):
        post = await service.create_post("u-alice", "likeable")

        assert await service.unlike_post(post.id, "u-bob") == LikeOutcome.NO_STATE_CHANGE
        assert await service.like_post(post.id, "u-bob") == LikeOutcome.APPLIED
        assert await service.unlike_post(post.id, "u-bob") == LikeOutcome.APPLIED

        state = store.state
        assert state.posts[post.id].likes_count == 0
        assert state.likes == {}
        assert state.events == {}

    @pytest.mark.asyncio
    async def test_self_like_counts_without_event(self, service, store):
        post = await service.create_post("u-alice", "me me me")

        assert await service.like_post(post.id, "u-alice") == LikeOutcome.APPLIED

        assert store.state.posts[post.id].likes_count == 1
        assert store.state.events == {}

    @pytest.mark.asyncio
    async def test_like_missing_post(self, service):
        with pytest.raises(PostNotFound):
            await service.like_post("000000000000000000000000", "u-bob")

    @pytest.mark.asyncio
    async def test_concurrent_likes_by_different_users(self, service, store):
        post = await service.create_post("u-alice", "popular")

        outcomes = await asyncio.gather(
            service.like_post(post.id, "u-bob"),
            service.like_post(post.id, "u-carol"),
        )

        assert outcomes == [LikeOutcome.APPLIED, LikeOutcome.APPLIED]
        assert store.state.posts[post.id].likes_count == 2
        assert len(store.state.likes) == 2

    @pytest.mark.asyncio
    async def test_concurrent_likes_by_same_user_apply_once(self, service, store):
        post = await service.create_post("u-alice", "popular")

        outcomes = await asyncio.gather(*[service.like_post(post.id, "u-bob") for _ in range(5)])

        assert outcomes.count(LikeOutcome.APPLIED) == 1
        assert store.state.posts[post.id].likes_count == 1

    @pytest.mark.asyncio
    async def test_likes_count_matches_like_records(self, service, store):
        post = await service.create_post("u-alice", "counted")
        for user_id in ("u-bob", "u-carol", "u-alice"):
            await service.like_post(post.id, user_id)
        await service.unlike_post(post.id, "u-carol")

        count = sum(1 for like in store.state.likes.values() if like.target_id == post.id)
        assert store.state.posts[post.id].likes_count == count == 2

    @pytest.mark.asyncio
    async def test_unique_index_conflict_reports_no_state_change(self, service, store):
        post = await service.create_post("u-alice", "raced")

        with patch.object(
            MemoryLikeRepository,
            "insert",
            AsyncMock(side_effect=DuplicateLike("u-bob", post.id))
        ):
            outcome = await service.like_post(post.id, "u-bob")

        assert outcome == LikeOutcome.NO_STATE_CHANGE
        assert store.state.posts[post.id].likes_count == 0
        assert store.state.events == {}


class TestCommentLikes:
    """Test likes on comments."""

    @pytest.mark.asyncio
    async def test_comment_like_notifies_comment_author(self, service, store):
        post = await service.create_post("u-alice", "thread")
        comment = await service.add_comment(post.id, "u-bob", "reply")

        outcome = await service.like_comment(comment.id, "u-carol")

        assert outcome == LikeOutcome.APPLIED
        assert store.state.comments[comment.id].likes_count == 1
        like_events = [e for e in store.state.events.values() if e.kind == EventKind.LIKE]
        assert len(like_events) == 1
        assert like_events[0].receiver_id == "u-bob"
        assert like_events[0].details == LikeDetails(post_id=post.id, comment_id=comment.id)

    @pytest.mark.asyncio
    async def test_unlike_comment_removes_its_event_only(self, service, store):
        post = await service.create_post("u-alice", "thread")
        comment = await service.add_comment(post.id, "u-alice", "own reply")
        await service.like_post(post.id, "u-bob")
        await service.like_comment(comment.id, "u-bob")

        assert await service.unlike_comment(comment.id, "u-bob") == LikeOutcome.APPLIED

        events = list(store.state.events.values())
        assert len(events) == 1
        assert events[0].details == LikeDetails(post_id=post.id)
        assert store.state.comments[comment.id].likes_count == 0
        assert store.state.posts[post.id].likes_count == 1

    @pytest.mark.asyncio
    async def test_like_missing_comment(self, service):
        with pytest.raises(CommentNotFound):
            await service.like_comment("000000000000000000000000", "u-bob")


# ============================================================================
# Comments
# ============================================================================

class TestComments:
    """Test commenting."""

    @pytest.mark.asyncio
    async def test_comment_appends_and_notifies(self, service, store):
        post = await service.create_post("u-alice", "discuss")

        comment = await service.add_comment(post.id, "u-bob", "first")

        stored = store.state.posts[post.id]
        assert stored.comments == [comment.id]
        assert stored.comment_count == 1

        events = list(store.state.events.values())
        assert len(events) == 1
        assert events[0].kind == EventKind.COMMENT
        assert events[0].sender_id == "u-bob"
        assert events[0].receiver_id == "u-alice"
        assert events[0].details == CommentDetails(post_id=post.id, comment_id=comment.id)

    @pytest.mark.asyncio
    async def test_author_comment_creates_no_event(self, service, store):
        post = await service.create_post("u-alice", "discuss")

        await service.add_comment(post.id, "u-alice", "replying to myself")

        assert store.state.posts[post.id].comment_count == 1
        assert store.state.events == {}

    @pytest.mark.asyncio
    async def test_comment_order_is_preserved(self, service, store):
        post = await service.create_post("u-alice", "discuss")
        ids = [(await service.add_comment(post.id, "u-bob", f"c{i}")).id for i in range(3)]

        assert store.state.posts[post.id].comments == ids

    @pytest.mark.asyncio
    async def test_comment_on_missing_post(self, service, store):
        with pytest.raises(PostNotFound):
            await service.add_comment("000000000000000000000000", "u-bob", "hello?")
        assert store.state.comments == {}

    @pytest.mark.asyncio
    async def test_long_comment_leaves_no_partial_records(self, service, store):
        post = await service.create_post("u-alice", "discuss")

        with pytest.raises(ContentTooLong):
            await service.add_comment(post.id, "u-bob", "z" * 281)

        assert store.state.comments == {}
        assert store.state.posts[post.id].comment_count == 0
        assert store.state.events == {}


# ============================================================================
# Atomicity
# ============================================================================

class TestAtomicity:
    """Test that a failing unit leaves no partial writes."""

    @pytest.mark.asyncio
    async def test_failure_mid_unit_rolls_back(self, store):
        service = InteractionService(store)
        post = await service.create_post("u-alice", "fragile")

        async def explode(uow):
            await uow.posts.increment_likes(post.id, 5)
            raise StoreUnavailable()

        with pytest.raises(StoreUnavailable):
            await store.atomic(explode)

        assert store.state.posts[post.id].likes_count == 0

    @pytest.mark.asyncio
    async def test_works_without_kafka(self, store):
        service = InteractionService(store)
        post = await service.create_post("u-alice", "offline")
        await service.delete_post(post.id, "u-alice")
        assert store.state.posts == {}


# ============================================================================
# Reads
# ============================================================================

class TestReads:
    """Test listing and lookups."""

    @pytest.mark.asyncio
    async def test_list_posts_newest_first_with_authors_and_comments(self, service, store):
        older = await service.create_post("u-alice", "older")
        newer = await service.create_post("u-bob", "newer")
        store.state.posts[older.id].created_at = newer.created_at - timedelta(minutes=5)
        await service.add_comment(older.id, "u-carol", "late reply")

        page = await service.list_posts(page=1, page_size=10)

        assert page.total == 2
        assert [view.post.id for view in page.posts] == [newer.id, older.id]
        assert page.posts[0].author.user_name == "Bob"
        older_view = page.posts[1]
        assert [c.comment.content for c in older_view.comments] == ["late reply"]
        assert older_view.comments[0].author.account_name == "carol"

    @pytest.mark.asyncio
    async def test_list_posts_paginates(self, service):
        for i in range(5):
            await service.create_post("u-alice", f"post {i}")

        page = await service.list_posts(page=2, page_size=2)

        assert page.total == 5
        assert len(page.posts) == 2

    @pytest.mark.asyncio
    async def test_unknown_author_has_no_summary(self, service):
        post = await service.create_post("u-ghost", "boo")

        view = await service.get_post(post.id)

        assert view.author is None

    @pytest.mark.asyncio
    async def test_get_author(self, service):
        author = await service.get_author("u-carol")

        assert author.user_name == "Carol"
        assert await service.get_author("u-ghost") is None

    @pytest.mark.asyncio
    async def test_get_missing_post(self, service):
        with pytest.raises(PostNotFound):
            await service.get_post("000000000000000000000000")

    @pytest.mark.asyncio
    async def test_list_events_for_receiver(self, service):
        post = await service.create_post("u-alice", "notify me")
        await service.like_post(post.id, "u-bob")
        await service.add_comment(post.id, "u-carol", "hi")

        events = await service.list_events("u-alice")

        assert {e.kind for e in events} == {EventKind.LIKE, EventKind.COMMENT}
        assert await service.list_events("u-bob") == []
