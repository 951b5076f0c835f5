"""
Pydantic schemas for Interaction Service
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from .domain.models import (
    CommentView,
    Event,
    EventKind,
    HotPost,
    LikeOutcome,
    PostView,
    SearchPage,
    TargetKind,
    UserSummary,
    details_to_dict,
)


class CurrentUser(BaseModel):
    """Authenticated caller, taken from the JWT subject"""
    id: str


# Requests
# Content length is enforced by the service so the error carries its code.

class PostCreate(BaseModel):
    """Post creation request"""
    content: str = Field(..., min_length=1)


class PostUpdate(BaseModel):
    """Post update request"""
    content: str = Field(..., min_length=1)


class CommentCreate(BaseModel):
    """Comment creation request"""
    content: str = Field(..., min_length=1)


# Responses

class UserSummaryResponse(BaseModel):
    id: str
    user_name: str
    account_name: str
    avatar_url: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: Optional[UserSummary]) -> Optional["UserSummaryResponse"]:
        if summary is None:
            return None
        return cls(
            id=summary.id,
            user_name=summary.user_name,
            account_name=summary.account_name,
            avatar_url=summary.avatar_url,
        )


class CommentResponse(BaseModel):
    """Comment response"""
    id: str
    post_id: str
    user_id: str
    content: str
    likes_count: int = 0
    created_at: datetime
    author: Optional[UserSummaryResponse] = None

    @classmethod
    def from_view(cls, view: CommentView) -> "CommentResponse":
        comment = view.comment
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            user_id=comment.user_id,
            content=comment.content,
            likes_count=comment.likes_count,
            created_at=comment.created_at,
            author=UserSummaryResponse.from_summary(view.author),
        )


class PostResponse(BaseModel):
    """Post response with author and comments"""
    id: str
    user_id: str
    content: str
    likes_count: int = 0
    comment_count: int = 0
    created_at: datetime
    updated_at: datetime
    author: Optional[UserSummaryResponse] = None
    comments: List[CommentResponse] = []

    @classmethod
    def from_view(cls, view: PostView) -> "PostResponse":
        post = view.post
        return cls(
            id=post.id,
            user_id=post.user_id,
            content=post.content,
            likes_count=post.likes_count,
            comment_count=post.comment_count,
            created_at=post.created_at,
            updated_at=post.updated_at,
            author=UserSummaryResponse.from_summary(view.author),
            comments=[CommentResponse.from_view(c) for c in view.comments],
        )


class PostListResponse(BaseModel):
    """Post list response"""
    posts: List[PostResponse]
    total: int
    page: int
    page_size: int
    has_more: bool


class PostUpdateResponse(BaseModel):
    id: str
    content: str


class LikeResponse(BaseModel):
    """Like action response"""
    target_id: str
    target_kind: TargetKind
    outcome: LikeOutcome


class HotPostResponse(BaseModel):
    id: str
    content: str
    likes_count: int
    comment_count: int
    created_at: datetime
    author: Optional[UserSummaryResponse] = None

    @classmethod
    def from_hot_post(cls, hot: HotPost) -> "HotPostResponse":
        return cls(
            id=hot.id,
            content=hot.content,
            likes_count=hot.likes_count,
            comment_count=hot.comment_count,
            created_at=hot.created_at,
            author=UserSummaryResponse.from_summary(hot.author),
        )


class HotPostsResponse(BaseModel):
    """Hot posts snapshot; empty while the cache is being rebuilt"""
    posts: List[HotPostResponse]
    count: int


class SearchHitResponse(BaseModel):
    id: str
    score: float
    source: Dict[str, Any]


class SearchResponse(BaseModel):
    """Search results page"""
    hits: List[SearchHitResponse]
    total: int
    page: int
    page_size: int

    @classmethod
    def from_page(cls, page: SearchPage) -> "SearchResponse":
        return cls(
            hits=[SearchHitResponse(id=h.id, score=h.score, source=h.source) for h in page.hits],
            total=page.total,
            page=page.page,
            page_size=page.page_size,
        )


class EventResponse(BaseModel):
    """Notification event"""
    id: str
    sender_id: str
    receiver_id: str
    kind: EventKind
    details: Dict[str, Any]
    created_at: datetime

    @classmethod
    def from_event(cls, event: Event) -> "EventResponse":
        return cls(
            id=event.id,
            sender_id=event.sender_id,
            receiver_id=event.receiver_id,
            kind=event.kind,
            details=details_to_dict(event.details),
            created_at=event.created_at,
        )


class EventListResponse(BaseModel):
    events: List[EventResponse]


class MessageResponse(BaseModel):
    """Generic message response"""
    message: str
    success: bool = True


class ErrorResponse(BaseModel):
    """Error body rendered for every InteractionError"""
    code: int
    message: str
