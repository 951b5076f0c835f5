"""
Repository interfaces - Define contracts for data access
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .models import Comment, Event, EventKind, Like, Post, TargetKind, User

T = TypeVar("T")


class IPostRepository(ABC):
    """Post repository interface"""

    @abstractmethod
    async def insert(self, post: Post) -> None:
        """Insert a new post"""
        pass

    @abstractmethod
    async def find_by_id(self, post_id: str) -> Optional[Post]:
        """Find post by ID"""
        pass

    @abstractmethod
    async def update_content(self, post_id: str, user_id: str, content: str) -> Optional[Post]:
        """Update content of a post owned by user_id; None if no such post"""
        pass

    @abstractmethod
    async def delete_owned(self, post_id: str, user_id: str) -> Optional[Post]:
        """Delete a post owned by user_id and return it; None if no such post"""
        pass

    @abstractmethod
    async def increment_likes(self, post_id: str, delta: int) -> None:
        """Adjust the like counter"""
        pass

    @abstractmethod
    async def append_comment(self, post_id: str, comment_id: str) -> None:
        """Append a comment reference and bump comment_count"""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Count all posts"""
        pass

    @abstractmethod
    async def find_page(self, skip: int, limit: int) -> List[Post]:
        """Posts newest first"""
        pass

    @abstractmethod
    async def find_ranked(self, limit: int) -> List[Post]:
        """Posts by likes_count, comment_count, created_at (all descending)"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Post]:
        """All posts, for bulk re-sync"""
        pass


class ICommentRepository(ABC):
    """Comment repository interface"""

    @abstractmethod
    async def insert(self, comment: Comment) -> None:
        pass

    @abstractmethod
    async def find_by_id(self, comment_id: str) -> Optional[Comment]:
        pass

    @abstractmethod
    async def find_by_ids(self, comment_ids: Iterable[str]) -> List[Comment]:
        pass

    @abstractmethod
    async def find_ids_by_post(self, post_id: str) -> List[str]:
        pass

    @abstractmethod
    async def delete_by_post(self, post_id: str) -> int:
        pass

    @abstractmethod
    async def increment_likes(self, comment_id: str, delta: int) -> None:
        pass


class ILikeRepository(ABC):
    """Like repository interface"""

    @abstractmethod
    async def find(self, user_id: str, target_id: str, target_kind: TargetKind) -> Optional[Like]:
        pass

    @abstractmethod
    async def insert(self, like: Like) -> None:
        """Insert a like; raises DuplicateLike on (user, target) conflict"""
        pass

    @abstractmethod
    async def delete(self, like_id: str) -> bool:
        pass

    @abstractmethod
    async def delete_by_targets(self, target_ids: Sequence[str], target_kind: TargetKind) -> int:
        pass


class IEventRepository(ABC):
    """Notification event repository interface"""

    @abstractmethod
    async def insert(self, event: Event) -> None:
        pass

    @abstractmethod
    async def delete_like_event(
        self,
        sender_id: str,
        receiver_id: str,
        post_id: str,
        comment_id: Optional[str] = None
    ) -> bool:
        """Delete the like event matching a like being withdrawn"""
        pass

    @abstractmethod
    async def delete_by_post(self, post_id: str, kinds: Sequence[EventKind]) -> int:
        pass

    @abstractmethod
    async def find_by_receiver(self, receiver_id: str, limit: int = 50) -> List[Event]:
        pass


class IUserRepository(ABC):
    """Read-only user repository interface"""

    @abstractmethod
    async def find_by_ids(self, user_ids: Iterable[str]) -> Dict[str, User]:
        pass

    @abstractmethod
    async def find_all(self) -> List[User]:
        pass


class IUnitOfWork(ABC):
    """Repositories bound to one atomic unit (or to plain reads)"""

    posts: IPostRepository
    comments: ICommentRepository
    likes: ILikeRepository
    events: IEventRepository
    users: IUserRepository


class IPrimaryStore(ABC):
    """Transactional document store"""

    @abstractmethod
    async def atomic(self, operation: Callable[[IUnitOfWork], Awaitable[T]]) -> T:
        """
        Run operation as one all-or-nothing unit

        The operation may be re-run from the start if the store detects a
        transient conflict. Exceptions raised by the operation abort the
        unit and propagate unchanged; store failures surface as
        StoreUnavailable.
        """
        pass

    @abstractmethod
    def reader(self) -> IUnitOfWork:
        """Repositories for lock-free reads outside any unit"""
        pass


@dataclass
class BulkResult:
    """Outcome of one bulk upsert"""
    total: int
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


class ISearchIndex(ABC):
    """Search index adapter contract"""

    @abstractmethod
    async def ping(self) -> bool:
        """Short-timeout connectivity probe"""
        pass

    @abstractmethod
    async def index_exists(self, name: str) -> bool:
        pass

    @abstractmethod
    async def create_index(self, name: str, body: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def bulk_upsert(
        self,
        index: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]],
        refresh: bool = True
    ) -> BulkResult:
        pass

    @abstractmethod
    async def delete_document(self, index: str, doc_id: str) -> None:
        pass

    @abstractmethod
    async def search(
        self,
        index: str,
        query: Dict[str, Any],
        offset: int,
        size: int
    ) -> Dict[str, Any]:
        """Raw search response with hits.total.value and hits.hits"""
        pass
