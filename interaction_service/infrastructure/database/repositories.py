"""
Repository implementations - MongoDB data access layer
"""
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar
import logging

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from ...config import settings
from ...domain.models import (
    Comment,
    Event,
    EventKind,
    Like,
    Post,
    TargetKind,
    User,
    details_from_dict,
    details_to_dict,
    utcnow,
)
from ...domain.repositories import (
    ICommentRepository,
    IEventRepository,
    ILikeRepository,
    IPostRepository,
    IPrimaryStore,
    IUnitOfWork,
    IUserRepository,
)
from ...exceptions import DuplicateLike, StoreUnavailable
from .connection import MongoDB

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _post_from_doc(doc: Optional[Dict[str, Any]]) -> Optional[Post]:
    if not doc:
        return None
    return Post(
        id=doc["_id"],
        user_id=doc["user_id"],
        content=doc["content"],
        comments=list(doc.get("comments", [])),
        comment_count=doc.get("comment_count", 0),
        likes_count=doc.get("likes_count", 0),
        created_at=doc["created_at"],
        updated_at=doc.get("updated_at", doc["created_at"]),
    )


def _comment_from_doc(doc: Optional[Dict[str, Any]]) -> Optional[Comment]:
    if not doc:
        return None
    return Comment(
        id=doc["_id"],
        user_id=doc["user_id"],
        post_id=doc["post_id"],
        content=doc["content"],
        comments=list(doc.get("comments", [])),
        likes_count=doc.get("likes_count", 0),
        created_at=doc["created_at"],
    )


def _like_from_doc(doc: Optional[Dict[str, Any]]) -> Optional[Like]:
    if not doc:
        return None
    return Like(
        id=doc["_id"],
        user_id=doc["user_id"],
        target_id=doc["target_id"],
        target_kind=TargetKind(doc["target_kind"]),
        created_at=doc["created_at"],
    )


def _event_from_doc(doc: Dict[str, Any]) -> Event:
    kind = EventKind(doc["kind"])
    return Event(
        id=doc["_id"],
        sender_id=doc["sender_id"],
        receiver_id=doc["receiver_id"],
        kind=kind,
        details=details_from_dict(kind, doc.get("details", {})),
        created_at=doc["created_at"],
    )


def _user_from_doc(doc: Dict[str, Any]) -> User:
    return User(
        id=str(doc["_id"]),
        user_name=doc["user_name"],
        account_name=doc["account_name"],
        avatar_url=doc.get("avatar_url"),
        bio=doc.get("bio") or "",
        is_public=doc.get("is_public", True),
        followers_count=doc.get("followers_count", 0),
        following_count=doc.get("following_count", 0),
        created_at=doc["created_at"],
    )


class _SessionBound:
    """Every call passes the unit's session (None outside a unit)"""

    def __init__(self, collection: AsyncIOMotorCollection, session: Optional[AsyncIOMotorClientSession]):
        self.collection = collection
        self.session = session


class MongoPostRepository(_SessionBound, IPostRepository):
    """Post repository implementation using MongoDB"""

    async def insert(self, post: Post) -> None:
        await self.collection.insert_one(
            {
                "_id": post.id,
                "user_id": post.user_id,
                "content": post.content,
                "comments": list(post.comments),
                "comment_count": post.comment_count,
                "likes_count": post.likes_count,
                "created_at": post.created_at,
                "updated_at": post.updated_at,
            },
            session=self.session,
        )

    async def find_by_id(self, post_id: str) -> Optional[Post]:
        doc = await self.collection.find_one({"_id": post_id}, session=self.session)
        return _post_from_doc(doc)

    async def update_content(self, post_id: str, user_id: str, content: str) -> Optional[Post]:
        # Author is part of the filter so mismatch and absence look the same
        doc = await self.collection.find_one_and_update(
            {"_id": post_id, "user_id": user_id},
            {"$set": {"content": content, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=self.session,
        )
        return _post_from_doc(doc)

    async def delete_owned(self, post_id: str, user_id: str) -> Optional[Post]:
        doc = await self.collection.find_one_and_delete(
            {"_id": post_id, "user_id": user_id},
            session=self.session,
        )
        return _post_from_doc(doc)

    async def increment_likes(self, post_id: str, delta: int) -> None:
        await self.collection.update_one(
            {"_id": post_id},
            {"$inc": {"likes_count": delta}},
            session=self.session,
        )

    async def append_comment(self, post_id: str, comment_id: str) -> None:
        await self.collection.update_one(
            {"_id": post_id},
            {"$push": {"comments": comment_id}, "$inc": {"comment_count": 1}},
            session=self.session,
        )

    async def count(self) -> int:
        return await self.collection.count_documents({}, session=self.session)

    async def find_page(self, skip: int, limit: int) -> List[Post]:
        cursor = (
            self.collection.find({}, session=self.session)
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [_post_from_doc(doc) for doc in docs]

    async def find_ranked(self, limit: int) -> List[Post]:
        cursor = (
            self.collection.find({}, session=self.session)
            .sort([
                ("likes_count", DESCENDING),
                ("comment_count", DESCENDING),
                ("created_at", DESCENDING),
            ])
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [_post_from_doc(doc) for doc in docs]

    async def find_all(self) -> List[Post]:
        docs = await self.collection.find({}, session=self.session).to_list(length=None)
        return [_post_from_doc(doc) for doc in docs]


class MongoCommentRepository(_SessionBound, ICommentRepository):
    """Comment repository implementation using MongoDB"""

    async def insert(self, comment: Comment) -> None:
        await self.collection.insert_one(
            {
                "_id": comment.id,
                "user_id": comment.user_id,
                "post_id": comment.post_id,
                "content": comment.content,
                "comments": list(comment.comments),
                "likes_count": comment.likes_count,
                "created_at": comment.created_at,
            },
            session=self.session,
        )

    async def find_by_id(self, comment_id: str) -> Optional[Comment]:
        doc = await self.collection.find_one({"_id": comment_id}, session=self.session)
        return _comment_from_doc(doc)

    async def find_by_ids(self, comment_ids: Iterable[str]) -> List[Comment]:
        ids = list(comment_ids)
        if not ids:
            return []
        docs = await self.collection.find({"_id": {"$in": ids}}, session=self.session).to_list(length=None)
        return [_comment_from_doc(doc) for doc in docs]

    async def find_ids_by_post(self, post_id: str) -> List[str]:
        docs = await self.collection.find(
            {"post_id": post_id}, {"_id": 1}, session=self.session
        ).to_list(length=None)
        return [doc["_id"] for doc in docs]

    async def delete_by_post(self, post_id: str) -> int:
        result = await self.collection.delete_many({"post_id": post_id}, session=self.session)
        return result.deleted_count

    async def increment_likes(self, comment_id: str, delta: int) -> None:
        await self.collection.update_one(
            {"_id": comment_id},
            {"$inc": {"likes_count": delta}},
            session=self.session,
        )


class MongoLikeRepository(_SessionBound, ILikeRepository):
    """Like repository implementation using MongoDB"""

    async def find(self, user_id: str, target_id: str, target_kind: TargetKind) -> Optional[Like]:
        doc = await self.collection.find_one(
            {"user_id": user_id, "target_id": target_id, "target_kind": target_kind.value},
            session=self.session,
        )
        return _like_from_doc(doc)

    async def insert(self, like: Like) -> None:
        try:
            await self.collection.insert_one(
                {
                    "_id": like.id,
                    "user_id": like.user_id,
                    "target_id": like.target_id,
                    "target_kind": like.target_kind.value,
                    "created_at": like.created_at,
                },
                session=self.session,
            )
        except DuplicateKeyError as e:
            raise DuplicateLike(like.user_id, like.target_id) from e

    async def delete(self, like_id: str) -> bool:
        result = await self.collection.delete_one({"_id": like_id}, session=self.session)
        return result.deleted_count > 0

    async def delete_by_targets(self, target_ids: Sequence[str], target_kind: TargetKind) -> int:
        if not target_ids:
            return 0
        result = await self.collection.delete_many(
            {"target_id": {"$in": list(target_ids)}, "target_kind": target_kind.value},
            session=self.session,
        )
        return result.deleted_count


class MongoEventRepository(_SessionBound, IEventRepository):
    """Notification event repository implementation using MongoDB"""

    async def insert(self, event: Event) -> None:
        await self.collection.insert_one(
            {
                "_id": event.id,
                "sender_id": event.sender_id,
                "receiver_id": event.receiver_id,
                "kind": event.kind.value,
                "details": details_to_dict(event.details),
                "created_at": event.created_at,
            },
            session=self.session,
        )

    async def delete_like_event(
        self,
        sender_id: str,
        receiver_id: str,
        post_id: str,
        comment_id: Optional[str] = None
    ) -> bool:
        query = {
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "kind": EventKind.LIKE.value,
            "details.post_id": post_id,
            "details.comment_id": comment_id if comment_id else {"$exists": False},
        }
        result = await self.collection.delete_one(query, session=self.session)
        return result.deleted_count > 0

    async def delete_by_post(self, post_id: str, kinds: Sequence[EventKind]) -> int:
        result = await self.collection.delete_many(
            {"details.post_id": post_id, "kind": {"$in": [k.value for k in kinds]}},
            session=self.session,
        )
        return result.deleted_count

    async def find_by_receiver(self, receiver_id: str, limit: int = 50) -> List[Event]:
        cursor = (
            self.collection.find({"receiver_id": receiver_id}, session=self.session)
            .sort("created_at", DESCENDING)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [_event_from_doc(doc) for doc in docs]


class MongoUserRepository(_SessionBound, IUserRepository):
    """Read-only user repository implementation using MongoDB"""

    async def find_by_ids(self, user_ids: Iterable[str]) -> Dict[str, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        # User documents are keyed by ObjectId; match the string form too
        keys: List[Any] = list(ids)
        keys.extend(ObjectId(i) for i in ids if ObjectId.is_valid(i))
        docs = await self.collection.find({"_id": {"$in": keys}}, session=self.session).to_list(length=None)
        return {str(doc["_id"]): _user_from_doc(doc) for doc in docs}

    async def find_all(self) -> List[User]:
        docs = await self.collection.find({}, session=self.session).to_list(length=None)
        return [_user_from_doc(doc) for doc in docs]


class MongoUnitOfWork(IUnitOfWork):
    """Repositories sharing one client session"""

    def __init__(self, db: AsyncIOMotorDatabase, session: Optional[AsyncIOMotorClientSession] = None):
        self.posts = MongoPostRepository(db["posts"], session)
        self.comments = MongoCommentRepository(db["comments"], session)
        self.likes = MongoLikeRepository(db["likes"], session)
        self.events = MongoEventRepository(db["events"], session)
        self.users = MongoUserRepository(db["users"], session)


class MongoPrimaryStore(IPrimaryStore):
    """Primary store backed by MongoDB multi-document transactions"""

    def __init__(self, mongodb: MongoDB):
        self.mongodb = mongodb

    async def atomic(self, operation: Callable[[IUnitOfWork], Awaitable[T]]) -> T:
        async def callback(session: AsyncIOMotorClientSession) -> T:
            return await operation(MongoUnitOfWork(self.mongodb.db, session))

        try:
            async with await self.mongodb.client.start_session() as session:
                # with_transaction re-runs callback on TransientTransactionError
                return await session.with_transaction(
                    callback,
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                    max_commit_time_ms=settings.MONGODB_TRANSACTION_TIMEOUT_MS,
                )
        except PyMongoError as e:
            logger.error(f"Atomic unit failed: {e}")
            raise StoreUnavailable() from e

    def reader(self) -> IUnitOfWork:
        return MongoUnitOfWork(self.mongodb.db)
