"""Tests for the MongoDB repositories and transactional store with mocked motor objects."""

import pytest
from unittest.mock import AsyncMock, MagicMock, Mock

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from interaction_service.domain.models import EventKind, Like, TargetKind, utcnow
from interaction_service.exceptions import DuplicateLike, StoreUnavailable
from interaction_service.infrastructure.database.repositories import (
    MongoEventRepository,
    MongoLikeRepository,
    MongoPrimaryStore,
    MongoUnitOfWork,
    MongoUserRepository,
)


def cursor_of(docs):
    cursor = Mock()
    cursor.to_list = AsyncMock(return_value=docs)
    return cursor


def user_doc(_id, user_name="Dana"):
    return {
        "_id": _id,
        "user_name": user_name,
        "account_name": user_name.lower(),
        "created_at": utcnow(),
    }


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def collection():
    return Mock()


# ============================================================================
# Repositories
# ============================================================================

class TestMongoRepositories:
    """Test query shapes and driver error mapping."""

    @pytest.mark.asyncio
    async def test_duplicate_key_becomes_duplicate_like(self, collection, session):
        collection.insert_one = AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key"))
        likes = MongoLikeRepository(collection, session)

        with pytest.raises(DuplicateLike) as error:
            await likes.insert(Like(user_id="u-bob", target_id="p1", target_kind=TargetKind.POST))

        assert error.value.user_id == "u-bob"
        assert collection.insert_one.await_args.kwargs["session"] is session

    @pytest.mark.asyncio
    async def test_delete_like_event_for_post_excludes_comment_likes(self, collection, session):
        collection.delete_one = AsyncMock(return_value=Mock(deleted_count=1))
        events = MongoEventRepository(collection, session)

        assert await events.delete_like_event("u-bob", "u-alice", "p1") is True

        query = collection.delete_one.await_args.args[0]
        assert query["kind"] == EventKind.LIKE.value
        assert query["details.post_id"] == "p1"
        assert query["details.comment_id"] == {"$exists": False}

    @pytest.mark.asyncio
    async def test_delete_like_event_for_comment_matches_comment_id(self, collection, session):
        collection.delete_one = AsyncMock(return_value=Mock(deleted_count=0))
        events = MongoEventRepository(collection, session)

        assert await events.delete_like_event("u-alice", "u-bob", "p1", "c1") is False

        query = collection.delete_one.await_args.args[0]
        assert query["details.comment_id"] == "c1"

    @pytest.mark.asyncio
    async def test_delete_events_by_post_filters_kinds(self, collection, session):
        collection.delete_many = AsyncMock(return_value=Mock(deleted_count=3))
        events = MongoEventRepository(collection, session)

        deleted = await events.delete_by_post("p1", [EventKind.LIKE, EventKind.COMMENT])

        assert deleted == 3
        query = collection.delete_many.await_args.args[0]
        assert query == {"details.post_id": "p1", "kind": {"$in": ["like", "comment"]}}
        assert collection.delete_many.await_args.kwargs["session"] is session

    @pytest.mark.asyncio
    async def test_find_users_matches_object_id_keys(self, collection, session):
        uid = ObjectId()
        collection.find = Mock(return_value=cursor_of([user_doc(uid)]))
        users = MongoUserRepository(collection, session)

        found = await users.find_by_ids([str(uid), "u-plain"])

        assert found[str(uid)].user_name == "Dana"
        keys = collection.find.call_args.args[0]["_id"]["$in"]
        assert uid in keys
        assert str(uid) in keys
        assert "u-plain" in keys

    @pytest.mark.asyncio
    async def test_find_users_empty_input_skips_query(self, collection, session):
        collection.find = Mock()
        users = MongoUserRepository(collection, session)

        assert await users.find_by_ids([]) == {}
        collection.find.assert_not_called()


# ============================================================================
# Transactional store
# ============================================================================

class TestMongoPrimaryStore:
    """Test the transaction wrapper around a unit of work."""

    def make_store(self, with_transaction):
        session = MagicMock()
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=False)
        session.with_transaction = with_transaction

        mongodb = Mock()
        mongodb.db = MagicMock()
        mongodb.client.start_session = AsyncMock(return_value=session)
        return MongoPrimaryStore(mongodb), session

    @pytest.mark.asyncio
    async def test_operation_runs_with_session_bound_unit(self):
        async def run(callback, **kwargs):
            return await callback(session)

        store, session = self.make_store(AsyncMock(side_effect=run))

        async def operation(uow):
            assert isinstance(uow, MongoUnitOfWork)
            assert uow.posts.session is session
            return "done"

        assert await store.atomic(operation) == "done"
        kwargs = session.with_transaction.await_args.kwargs
        assert kwargs["read_concern"].level == "snapshot"
        assert kwargs["write_concern"].document == {"w": "majority"}

    @pytest.mark.asyncio
    async def test_driver_error_becomes_store_unavailable(self):
        store, _ = self.make_store(AsyncMock(side_effect=PyMongoError("no primary")))

        with pytest.raises(StoreUnavailable):
            await store.atomic(AsyncMock())

    @pytest.mark.asyncio
    async def test_domain_error_propagates_unchanged(self):
        async def run(callback, **kwargs):
            return await callback(session)

        store, session = self.make_store(AsyncMock(side_effect=run))

        async def operation(uow):
            raise DuplicateLike("u-bob", "p1")

        with pytest.raises(DuplicateLike):
            await store.atomic(operation)

    def test_reader_has_no_session(self):
        store, _ = self.make_store(AsyncMock())

        assert store.reader().likes.session is None
