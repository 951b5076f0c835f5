"""
Interaction Engine - posts, likes and comments

Every mutation runs as one atomic unit against the primary store, so a post
is never visible with a like counter that disagrees with its Like records
or with notification events pointing at deleted content.
"""
from typing import Dict, Iterable, List, Optional, Tuple
import asyncio
import logging

from ..config import settings
from ..domain.models import (
    Comment,
    CommentDetails,
    CommentView,
    Event,
    EventKind,
    Like,
    LikeDetails,
    LikeOutcome,
    Post,
    PostPage,
    PostView,
    TargetKind,
    UserSummary,
    validate_content,
)
from ..domain.repositories import IPrimaryStore, IUnitOfWork
from ..exceptions import CommentNotFound, DuplicateLike, NotFoundOrForbidden, PostNotFound
from ..kafka_producer import KafkaProducerManager

logger = logging.getLogger(__name__)

CASCADE_EVENT_KINDS = (EventKind.LIKE, EventKind.COMMENT)


class InteractionService:
    """Interaction service - handles post, like and comment logic"""

    def __init__(
        self,
        store: IPrimaryStore,
        kafka_producer: Optional[KafkaProducerManager] = None
    ):
        self.store = store
        self.kafka = kafka_producer

    # Posts

    async def create_post(self, user_id: str, content: str) -> Post:
        """
        Create a post with no comments and no likes

        Raises:
            ContentTooLong: content exceeds the length bound
        """
        validate_content(content, settings.CONTENT_MAX_LENGTH)
        post = Post(user_id=user_id, content=content)

        async def operation(uow: IUnitOfWork) -> Post:
            await uow.posts.insert(post)
            return post

        await self.store.atomic(operation)
        logger.info(f"Post {post.id} created by user {user_id}")

        if self.kafka:
            await self.kafka.publish_post_upserted(post.id, user_id)
        return post

    async def update_post(self, post_id: str, user_id: str, content: str) -> str:
        """
        Replace the content of a post owned by user_id

        Returns:
            The updated content

        Raises:
            ContentTooLong: content exceeds the length bound
            NotFoundOrForbidden: post is missing or user_id is not the author
        """
        validate_content(content, settings.CONTENT_MAX_LENGTH)

        async def operation(uow: IUnitOfWork) -> Post:
            post = await uow.posts.update_content(post_id, user_id, content)
            if post is None:
                raise NotFoundOrForbidden()
            return post

        post = await self.store.atomic(operation)
        logger.info(f"Post {post_id} updated by user {user_id}")

        if self.kafka:
            await self.kafka.publish_post_upserted(post_id, user_id)
        return post.content

    async def delete_post(self, post_id: str, user_id: str) -> None:
        """
        Delete a post with its comments, likes and notification events

        Raises:
            NotFoundOrForbidden: post is missing or user_id is not the author
        """
        async def operation(uow: IUnitOfWork) -> Tuple[int, int, int]:
            post = await uow.posts.delete_owned(post_id, user_id)
            if post is None:
                raise NotFoundOrForbidden()

            comment_ids = await uow.comments.find_ids_by_post(post_id)
            comments_deleted = await uow.comments.delete_by_post(post_id)
            likes_deleted = await uow.likes.delete_by_targets([post_id], TargetKind.POST)
            likes_deleted += await uow.likes.delete_by_targets(comment_ids, TargetKind.COMMENT)
            events_deleted = await uow.events.delete_by_post(post_id, CASCADE_EVENT_KINDS)
            return comments_deleted, likes_deleted, events_deleted

        comments_deleted, likes_deleted, events_deleted = await self.store.atomic(operation)
        logger.info(
            f"Post {post_id} deleted with {comments_deleted} comments, "
            f"{likes_deleted} likes, {events_deleted} events"
        )

        if self.kafka:
            await self.kafka.publish_post_deleted(post_id, user_id)

    # Likes

    async def like_post(self, post_id: str, user_id: str) -> LikeOutcome:
        """Like a post; liking twice is a no-op"""
        return await self._like(TargetKind.POST, post_id, user_id)

    async def unlike_post(self, post_id: str, user_id: str) -> LikeOutcome:
        """Withdraw a like; unliking a post not liked is a no-op"""
        return await self._unlike(TargetKind.POST, post_id, user_id)

    async def like_comment(self, comment_id: str, user_id: str) -> LikeOutcome:
        return await self._like(TargetKind.COMMENT, comment_id, user_id)

    async def unlike_comment(self, comment_id: str, user_id: str) -> LikeOutcome:
        return await self._unlike(TargetKind.COMMENT, comment_id, user_id)

    async def _resolve_target(
        self,
        uow: IUnitOfWork,
        target_kind: TargetKind,
        target_id: str
    ) -> Tuple[str, LikeDetails]:
        """Owner of the target and the details of its like event"""
        if target_kind == TargetKind.POST:
            post = await uow.posts.find_by_id(target_id)
            if post is None:
                raise PostNotFound(target_id)
            return post.user_id, LikeDetails(post_id=post.id)

        comment = await uow.comments.find_by_id(target_id)
        if comment is None:
            raise CommentNotFound(target_id)
        return comment.user_id, LikeDetails(post_id=comment.post_id, comment_id=comment.id)

    async def _adjust_likes(
        self,
        uow: IUnitOfWork,
        target_kind: TargetKind,
        target_id: str,
        delta: int
    ) -> None:
        if target_kind == TargetKind.POST:
            await uow.posts.increment_likes(target_id, delta)
        else:
            await uow.comments.increment_likes(target_id, delta)

    async def _like(self, target_kind: TargetKind, target_id: str, user_id: str) -> LikeOutcome:
        async def operation(uow: IUnitOfWork) -> LikeOutcome:
            owner_id, details = await self._resolve_target(uow, target_kind, target_id)
            if await uow.likes.find(user_id, target_id, target_kind):
                return LikeOutcome.NO_STATE_CHANGE

            await uow.likes.insert(Like(user_id=user_id, target_id=target_id, target_kind=target_kind))
            await self._adjust_likes(uow, target_kind, target_id, 1)

            event = Event.notify(user_id, owner_id, EventKind.LIKE, details)
            if event:
                await uow.events.insert(event)
            return LikeOutcome.APPLIED

        try:
            outcome = await self.store.atomic(operation)
        except DuplicateLike:
            # A concurrent like by the same user committed first
            logger.info(f"Concurrent duplicate like on {target_kind.value} {target_id} by user {user_id}")
            return LikeOutcome.NO_STATE_CHANGE

        logger.info(f"Like {outcome.value}: user {user_id} on {target_kind.value} {target_id}")
        return outcome

    async def _unlike(self, target_kind: TargetKind, target_id: str, user_id: str) -> LikeOutcome:
        async def operation(uow: IUnitOfWork) -> LikeOutcome:
            owner_id, details = await self._resolve_target(uow, target_kind, target_id)
            like = await uow.likes.find(user_id, target_id, target_kind)
            if like is None:
                return LikeOutcome.NO_STATE_CHANGE

            await uow.likes.delete(like.id)
            await self._adjust_likes(uow, target_kind, target_id, -1)
            await uow.events.delete_like_event(user_id, owner_id, details.post_id, details.comment_id)
            return LikeOutcome.APPLIED

        outcome = await self.store.atomic(operation)
        logger.info(f"Unlike {outcome.value}: user {user_id} on {target_kind.value} {target_id}")
        return outcome

    # Comments

    async def add_comment(self, post_id: str, user_id: str, content: str) -> Comment:
        """
        Add a comment to a post and notify the post author

        Raises:
            ContentTooLong: content exceeds the length bound
            PostNotFound: the post no longer exists
        """
        validate_content(content, settings.CONTENT_MAX_LENGTH)

        async def operation(uow: IUnitOfWork) -> Comment:
            post = await uow.posts.find_by_id(post_id)
            if post is None:
                raise PostNotFound(post_id)

            comment = Comment(user_id=user_id, post_id=post_id, content=content)
            await uow.comments.insert(comment)
            await uow.posts.append_comment(post_id, comment.id)

            event = Event.notify(
                user_id,
                post.user_id,
                EventKind.COMMENT,
                CommentDetails(post_id=post_id, comment_id=comment.id),
            )
            if event:
                await uow.events.insert(event)
            return comment

        comment = await self.store.atomic(operation)
        logger.info(f"Comment {comment.id} added to post {post_id} by user {user_id}")
        return comment

    # Reads

    async def list_posts(self, page: int = 1, page_size: int = 10) -> PostPage:
        """Posts newest first with authors and comments resolved"""
        reader = self.store.reader()
        skip = (page - 1) * page_size

        total, posts = await asyncio.gather(
            reader.posts.count(),
            reader.posts.find_page(skip, page_size),
        )
        views = await self._build_views(reader, posts)
        return PostPage(posts=views, total=total)

    async def get_post(self, post_id: str) -> PostView:
        """Single post with author and comments resolved"""
        reader = self.store.reader()
        post = await reader.posts.find_by_id(post_id)
        if post is None:
            raise PostNotFound(post_id)
        views = await self._build_views(reader, [post])
        return views[0]

    async def list_events(self, receiver_id: str, limit: int = 50) -> List[Event]:
        """Notifications for a user, newest first"""
        return await self.store.reader().events.find_by_receiver(receiver_id, limit)

    async def get_author(self, user_id: str) -> Optional[UserSummary]:
        """Summary of one user, None when unknown"""
        authors = await self._summaries(self.store.reader(), [user_id])
        return authors.get(user_id)

    async def _build_views(self, reader: IUnitOfWork, posts: List[Post]) -> List[PostView]:
        comment_ids = [cid for post in posts for cid in post.comments]
        comments = {c.id: c for c in await reader.comments.find_by_ids(comment_ids)}

        user_ids = {post.user_id for post in posts}
        user_ids.update(c.user_id for c in comments.values())
        authors = await self._summaries(reader, user_ids)

        views = []
        for post in posts:
            comment_views = [
                CommentView(comment=comments[cid], author=authors.get(comments[cid].user_id))
                for cid in post.comments
                if cid in comments
            ]
            views.append(PostView(post=post, author=authors.get(post.user_id), comments=comment_views))
        return views

    async def _summaries(self, reader: IUnitOfWork, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        users = await reader.users.find_by_ids(user_ids)
        return {uid: UserSummary.from_user(user) for uid, user in users.items()}
