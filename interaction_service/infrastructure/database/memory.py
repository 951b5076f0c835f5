"""
In-process primary store

Serializes atomic units behind an asyncio lock and commits by swapping in a
copy of the state the unit worked on, so an aborted unit leaves no trace
and readers always see a whole committed state. Intended for local
development and tests; every unit copies the full state.
"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar
import asyncio
import copy
import logging

from ...domain.models import Comment, Event, EventKind, Like, Post, TargetKind, User, utcnow
from ...domain.repositories import (
    ICommentRepository,
    IEventRepository,
    ILikeRepository,
    IPostRepository,
    IPrimaryStore,
    IUnitOfWork,
    IUserRepository,
)
from ...exceptions import DuplicateLike

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class MemoryState:
    posts: Dict[str, Post] = field(default_factory=dict)
    comments: Dict[str, Comment] = field(default_factory=dict)
    likes: Dict[str, Like] = field(default_factory=dict)
    events: Dict[str, Event] = field(default_factory=dict)
    users: Dict[str, User] = field(default_factory=dict)


class MemoryPostRepository(IPostRepository):

    def __init__(self, state: MemoryState):
        self.state = state

    async def insert(self, post: Post) -> None:
        self.state.posts[post.id] = copy.deepcopy(post)

    async def find_by_id(self, post_id: str) -> Optional[Post]:
        return copy.deepcopy(self.state.posts.get(post_id))

    async def update_content(self, post_id: str, user_id: str, content: str) -> Optional[Post]:
        post = self.state.posts.get(post_id)
        if not post or post.user_id != user_id:
            return None
        post.content = content
        post.updated_at = utcnow()
        return copy.deepcopy(post)

    async def delete_owned(self, post_id: str, user_id: str) -> Optional[Post]:
        post = self.state.posts.get(post_id)
        if not post or post.user_id != user_id:
            return None
        return self.state.posts.pop(post_id)

    async def increment_likes(self, post_id: str, delta: int) -> None:
        post = self.state.posts.get(post_id)
        if post:
            post.likes_count += delta

    async def append_comment(self, post_id: str, comment_id: str) -> None:
        post = self.state.posts.get(post_id)
        if post:
            post.comments.append(comment_id)
            post.comment_count += 1

    async def count(self) -> int:
        return len(self.state.posts)

    async def find_page(self, skip: int, limit: int) -> List[Post]:
        ordered = sorted(self.state.posts.values(), key=lambda p: p.created_at, reverse=True)
        return copy.deepcopy(ordered[skip:skip + limit])

    async def find_ranked(self, limit: int) -> List[Post]:
        ordered = sorted(
            self.state.posts.values(),
            key=lambda p: (p.likes_count, p.comment_count, p.created_at),
            reverse=True,
        )
        return copy.deepcopy(ordered[:limit])

    async def find_all(self) -> List[Post]:
        return copy.deepcopy(list(self.state.posts.values()))


class MemoryCommentRepository(ICommentRepository):

    def __init__(self, state: MemoryState):
        self.state = state

    async def insert(self, comment: Comment) -> None:
        self.state.comments[comment.id] = copy.deepcopy(comment)

    async def find_by_id(self, comment_id: str) -> Optional[Comment]:
        return copy.deepcopy(self.state.comments.get(comment_id))

    async def find_by_ids(self, comment_ids: Iterable[str]) -> List[Comment]:
        return [
            copy.deepcopy(self.state.comments[cid])
            for cid in comment_ids
            if cid in self.state.comments
        ]

    async def find_ids_by_post(self, post_id: str) -> List[str]:
        return [c.id for c in self.state.comments.values() if c.post_id == post_id]

    async def delete_by_post(self, post_id: str) -> int:
        doomed = await self.find_ids_by_post(post_id)
        for comment_id in doomed:
            del self.state.comments[comment_id]
        return len(doomed)

    async def increment_likes(self, comment_id: str, delta: int) -> None:
        comment = self.state.comments.get(comment_id)
        if comment:
            comment.likes_count += delta


class MemoryLikeRepository(ILikeRepository):

    def __init__(self, state: MemoryState):
        self.state = state

    def _match(self, user_id: str, target_id: str, target_kind: TargetKind) -> Optional[Like]:
        for like in self.state.likes.values():
            if like.user_id == user_id and like.target_id == target_id and like.target_kind == target_kind:
                return like
        return None

    async def find(self, user_id: str, target_id: str, target_kind: TargetKind) -> Optional[Like]:
        return copy.deepcopy(self._match(user_id, target_id, target_kind))

    async def insert(self, like: Like) -> None:
        if self._match(like.user_id, like.target_id, like.target_kind):
            raise DuplicateLike(like.user_id, like.target_id)
        self.state.likes[like.id] = copy.deepcopy(like)

    async def delete(self, like_id: str) -> bool:
        return self.state.likes.pop(like_id, None) is not None

    async def delete_by_targets(self, target_ids: Sequence[str], target_kind: TargetKind) -> int:
        targets = set(target_ids)
        doomed = [
            like.id for like in self.state.likes.values()
            if like.target_id in targets and like.target_kind == target_kind
        ]
        for like_id in doomed:
            del self.state.likes[like_id]
        return len(doomed)


class MemoryEventRepository(IEventRepository):

    def __init__(self, state: MemoryState):
        self.state = state

    async def insert(self, event: Event) -> None:
        self.state.events[event.id] = copy.deepcopy(event)

    async def delete_like_event(
        self,
        sender_id: str,
        receiver_id: str,
        post_id: str,
        comment_id: Optional[str] = None
    ) -> bool:
        for event in list(self.state.events.values()):
            if (
                event.kind == EventKind.LIKE
                and event.sender_id == sender_id
                and event.receiver_id == receiver_id
                and event.details.post_id == post_id
                and event.details.comment_id == comment_id
            ):
                del self.state.events[event.id]
                return True
        return False

    async def delete_by_post(self, post_id: str, kinds: Sequence[EventKind]) -> int:
        doomed = [
            event.id for event in self.state.events.values()
            if event.kind in kinds and event.post_id == post_id
        ]
        for event_id in doomed:
            del self.state.events[event_id]
        return len(doomed)

    async def find_by_receiver(self, receiver_id: str, limit: int = 50) -> List[Event]:
        events = [e for e in self.state.events.values() if e.receiver_id == receiver_id]
        events.sort(key=lambda e: e.created_at, reverse=True)
        return copy.deepcopy(events[:limit])


class MemoryUserRepository(IUserRepository):

    def __init__(self, state: MemoryState):
        self.state = state

    async def find_by_ids(self, user_ids: Iterable[str]) -> Dict[str, User]:
        return {
            uid: copy.deepcopy(self.state.users[uid])
            for uid in set(user_ids)
            if uid in self.state.users
        }

    async def find_all(self) -> List[User]:
        return copy.deepcopy(list(self.state.users.values()))


class MemoryUnitOfWork(IUnitOfWork):

    def __init__(self, state: MemoryState):
        self.posts = MemoryPostRepository(state)
        self.comments = MemoryCommentRepository(state)
        self.likes = MemoryLikeRepository(state)
        self.events = MemoryEventRepository(state)
        self.users = MemoryUserRepository(state)


class InMemoryPrimaryStore(IPrimaryStore):
    """Primary store kept in process memory"""

    def __init__(self):
        self._state = MemoryState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> MemoryState:
        """Latest committed state"""
        return self._state

    async def atomic(self, operation: Callable[[IUnitOfWork], Awaitable[T]]) -> T:
        async with self._lock:
            working = copy.deepcopy(self._state)
            result = await operation(MemoryUnitOfWork(working))
            self._state = working
            return result

    def reader(self) -> IUnitOfWork:
        return MemoryUnitOfWork(self._state)

    async def add_users(self, users: Iterable[User]) -> None:
        """Load user records, which this service never writes itself"""
        async with self._lock:
            working = copy.deepcopy(self._state)
            for user in users:
                working.users[user.id] = copy.deepcopy(user)
            self._state = working
        logger.info(f"Loaded users into memory store, total {len(self._state.users)}")
