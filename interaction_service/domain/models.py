"""
Domain models - Core business entities
"""
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId

from ..exceptions import ContentTooLong


def new_id() -> str:
    """Generate a new entity identifier"""
    return str(ObjectId())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TargetKind(str, Enum):
    """What a Like points at"""
    POST = "post"
    COMMENT = "comment"


class EventKind(str, Enum):
    """Notification event type"""
    LIKE = "like"
    COMMENT = "comment"
    FOLLOW = "follow"
    FRIEND_REQUEST = "friend_request"


class LikeOutcome(str, Enum):
    """Result of an idempotent like/unlike"""
    APPLIED = "applied"
    NO_STATE_CHANGE = "no_state_change"


@dataclass
class User:
    """User domain model (owned by the account service, read-only here)"""
    id: str
    user_name: str
    account_name: str
    avatar_url: Optional[str] = None
    bio: str = ""
    is_public: bool = True
    followers_count: int = 0
    following_count: int = 0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class UserSummary:
    """Author display fields embedded in post listings"""
    id: str
    user_name: str
    account_name: str
    avatar_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            user_name=user.user_name,
            account_name=user.account_name,
            avatar_url=user.avatar_url,
        )


@dataclass
class Post:
    """Post domain model"""
    user_id: str
    content: str
    id: str = field(default_factory=new_id)
    comments: List[str] = field(default_factory=list)
    comment_count: int = 0
    likes_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Comment:
    """Comment domain model; children form a shallow tree under a post"""
    user_id: str
    post_id: str
    content: str
    id: str = field(default_factory=new_id)
    comments: List[str] = field(default_factory=list)
    likes_count: int = 0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Like:
    """Like domain model, unique per (user_id, target_id, target_kind)"""
    user_id: str
    target_id: str
    target_kind: TargetKind
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


# Event details: one payload type per EventKind

@dataclass(frozen=True)
class LikeDetails:
    post_id: str
    comment_id: Optional[str] = None


@dataclass(frozen=True)
class CommentDetails:
    post_id: str
    comment_id: str


@dataclass(frozen=True)
class FollowDetails:
    follow_id: Optional[str] = None


@dataclass(frozen=True)
class FriendRequestDetails:
    request_id: Optional[str] = None


EventDetails = Union[LikeDetails, CommentDetails, FollowDetails, FriendRequestDetails]

DETAILS_BY_KIND = {
    EventKind.LIKE: LikeDetails,
    EventKind.COMMENT: CommentDetails,
    EventKind.FOLLOW: FollowDetails,
    EventKind.FRIEND_REQUEST: FriendRequestDetails,
}


def details_to_dict(details: EventDetails) -> Dict[str, Any]:
    return {k: v for k, v in asdict(details).items() if v is not None}


def details_from_dict(kind: EventKind, data: Dict[str, Any]) -> EventDetails:
    details_cls = DETAILS_BY_KIND[kind]
    return details_cls(**{f.name: data.get(f.name) for f in fields(details_cls)})


@dataclass
class Event:
    """Notification event domain model"""
    sender_id: str
    receiver_id: str
    kind: EventKind
    details: EventDetails
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        expected = DETAILS_BY_KIND[self.kind]
        if not isinstance(self.details, expected):
            raise TypeError(
                f"{self.kind.value} event requires {expected.__name__}, "
                f"got {type(self.details).__name__}"
            )

    @classmethod
    def notify(
        cls,
        sender_id: str,
        receiver_id: str,
        kind: EventKind,
        details: EventDetails
    ) -> Optional["Event"]:
        """Build an event, or None when the user would notify themselves"""
        if sender_id == receiver_id:
            return None
        return cls(sender_id=sender_id, receiver_id=receiver_id, kind=kind, details=details)

    @property
    def post_id(self) -> Optional[str]:
        return getattr(self.details, "post_id", None)


# Read models

@dataclass
class CommentView:
    comment: Comment
    author: Optional[UserSummary]


@dataclass
class PostView:
    post: Post
    author: Optional[UserSummary]
    comments: List[CommentView] = field(default_factory=list)


@dataclass
class PostPage:
    posts: List[PostView]
    total: int


@dataclass
class HotPost:
    """Denormalized entry of the cached hot list"""
    id: str
    content: str
    likes_count: int
    comment_count: int
    created_at: datetime
    author: Optional[UserSummary] = None

    @classmethod
    def from_post(cls, post: Post, author: Optional[UserSummary]) -> "HotPost":
        return cls(
            id=post.id,
            content=post.content,
            likes_count=post.likes_count,
            comment_count=post.comment_count,
            created_at=post.created_at,
            author=author,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HotPost":
        author = data.get("author")
        return cls(
            id=data["id"],
            content=data["content"],
            likes_count=data["likes_count"],
            comment_count=data["comment_count"],
            created_at=datetime.fromisoformat(data["created_at"]),
            author=UserSummary(**author) if author else None,
        )


@dataclass
class SearchHit:
    id: str
    score: float
    source: Dict[str, Any]


@dataclass
class SearchPage:
    hits: List[SearchHit]
    total: int
    page: int
    page_size: int


def validate_content(content: str, limit: int) -> None:
    """Reject content longer than limit code points"""
    if len(content) > limit:
        raise ContentTooLong(len(content), limit)
