"""
Search Sync Service - keeps the search index in step with the primary store

The index is a derived view: every failure here is logged and degrades
search instead of reaching request handlers. Only the read methods raise,
and only IndexUnavailable, so the API can answer "search temporarily
unavailable" without hanging.
"""
from typing import Any, Dict, Iterable, List, Optional
import asyncio
import logging

from ..config import settings
from ..domain.models import Post, SearchHit, SearchPage, User
from ..domain.repositories import BulkResult, IPrimaryStore, ISearchIndex
from ..exceptions import IndexUnavailable
from ..infrastructure.search.mappings import POSTS_INDEX, USERS_INDEX

logger = logging.getLogger(__name__)

POST_SEARCH_FIELDS = ["content", "content.english", "user_name", "user_name.english"]
USER_SEARCH_FIELDS = [
    "user_name", "user_name.english",
    "account_name", "account_name.english",
    "bio", "bio.english",
]


def post_document(post: Post, author: Optional[User]) -> Dict[str, Any]:
    """Project a post into its search document"""
    return {
        "content": post.content,
        "user_id": post.user_id,
        "user_name": author.user_name if author else None,
        "likes_count": post.likes_count,
        "comment_count": post.comment_count,
        "created_at": post.created_at.isoformat(),
    }


def user_document(user: User) -> Dict[str, Any]:
    """Project a user into its search document"""
    return {
        "user_name": user.user_name,
        "account_name": user.account_name,
        "bio": user.bio or "",
        "is_public": user.is_public,
        "avatar_url": user.avatar_url,
        "followers_count": user.followers_count,
        "following_count": user.following_count,
        "created_at": user.created_at.isoformat(),
    }


class SearchSyncService:
    """Materializes posts and users into the search index"""

    def __init__(self, store: IPrimaryStore, index: ISearchIndex):
        self.store = store
        self.index = index
        self.available = False

    def status(self) -> Dict[str, Any]:
        return {"available": self.available, "mode": "normal" if self.available else "degraded"}

    async def bootstrap(self, max_retries: int = settings.SEARCH_BOOTSTRAP_RETRIES) -> bool:
        """
        Connect to the index, ensure schemas exist and re-sync everything

        Waits 2^(attempt-1) seconds between failed attempts. Never raises:
        after the last attempt the service stays in degraded mode and the
        application keeps serving from the primary store.

        Returns:
            True if the index is ready, False if running degraded
        """
        for attempt in range(1, max_retries + 1):
            try:
                logger.info(f"Connecting to search index (attempt {attempt}/{max_retries})...")
                if not await self.index.ping():
                    raise IndexUnavailable("Search index did not answer ping")

                await self._ensure_index(settings.ELASTICSEARCH_POSTS_INDEX, POSTS_INDEX)
                await self._ensure_index(settings.ELASTICSEARCH_USERS_INDEX, USERS_INDEX)
                self.available = True

                await self.resync_all()
                logger.info("Search index setup completed")
                return True

            except Exception as e:
                logger.error(f"Search index setup failed (attempt {attempt}/{max_retries}): {e}")
                self.available = False

                if attempt >= max_retries:
                    logger.warning("Max retries reached, continuing without search")
                    return False

                wait_seconds = 2 ** (attempt - 1)
                logger.info(f"Retrying search index setup in {wait_seconds}s")
                await asyncio.sleep(wait_seconds)

        return False

    async def _ensure_index(self, name: str, body: Dict[str, Any]) -> None:
        if await self.index.index_exists(name):
            logger.info(f"Index '{name}' already exists")
            return
        logger.info(f"Creating index '{name}'...")
        await self.index.create_index(name, body)
        logger.info(f"Index '{name}' created")

    async def resync_all(self) -> None:
        """Bulk re-sync every post and user; batches fail independently"""
        reader = self.store.reader()
        posts = await reader.posts.find_all()
        users = await reader.users.find_all()
        users_by_id = {user.id: user for user in users}

        await self.bulk_sync_posts(posts, users_by_id)
        await self.bulk_sync_users(users)

    async def bulk_sync_posts(
        self,
        posts: List[Post],
        authors: Optional[Dict[str, User]] = None
    ) -> BulkResult:
        """One bulk upsert of post documents; failures are logged, not raised"""
        if not posts:
            return BulkResult(total=0)

        if authors is None:
            authors = await self.store.reader().users.find_by_ids(p.user_id for p in posts)

        documents = [(post.id, post_document(post, authors.get(post.user_id))) for post in posts]
        return await self._bulk(settings.ELASTICSEARCH_POSTS_INDEX, documents, "posts")

    async def bulk_sync_users(self, users: Iterable[User]) -> BulkResult:
        """One bulk upsert of user documents; failures are logged, not raised"""
        documents = [(user.id, user_document(user)) for user in users]
        if not documents:
            return BulkResult(total=0)
        return await self._bulk(settings.ELASTICSEARCH_USERS_INDEX, documents, "users")

    async def _bulk(self, index: str, documents, label: str) -> BulkResult:
        logger.info(f"Syncing {len(documents)} {label} to search index...")
        try:
            result = await self.index.bulk_upsert(index, documents, refresh=True)
        except IndexUnavailable as e:
            logger.error(f"Bulk sync of {label} failed: {e}")
            return BulkResult(total=len(documents), failed=len(documents))

        if result.ok:
            logger.info(f"Synced {result.total} {label}")
        else:
            logger.error(f"Bulk sync of {label}: {result.failed}/{result.total} documents failed")
        return result

    async def upsert_post(self, post_id: str) -> None:
        """Refresh one post document from the primary store"""
        if not self.available:
            logger.debug(f"Search degraded, skipping sync of post {post_id}")
            return

        try:
            reader = self.store.reader()
            post = await reader.posts.find_by_id(post_id)
            if post is None:
                await self.index.delete_document(settings.ELASTICSEARCH_POSTS_INDEX, post_id)
                return
            authors = await reader.users.find_by_ids([post.user_id])
            await self.bulk_sync_posts([post], authors)
        except Exception as e:
            logger.error(f"Failed to sync post {post_id}: {e}")

    async def delete_post(self, post_id: str) -> None:
        """Drop one post document"""
        if not self.available:
            logger.debug(f"Search degraded, skipping removal of post {post_id}")
            return

        try:
            await self.index.delete_document(settings.ELASTICSEARCH_POSTS_INDEX, post_id)
            logger.info(f"Removed post {post_id} from search index")
        except IndexUnavailable as e:
            logger.error(f"Failed to remove post {post_id} from search index: {e}")

    async def search_posts(self, query: str, page: int = 1, page_size: int = 10) -> SearchPage:
        """Keyword search over posts; raises IndexUnavailable when degraded"""
        return await self._search(settings.ELASTICSEARCH_POSTS_INDEX, POST_SEARCH_FIELDS, query, page, page_size)

    async def search_users(self, query: str, page: int = 1, page_size: int = 10) -> SearchPage:
        """Keyword search over users; raises IndexUnavailable when degraded"""
        return await self._search(settings.ELASTICSEARCH_USERS_INDEX, USER_SEARCH_FIELDS, query, page, page_size)

    async def _search(
        self,
        index: str,
        fields: List[str],
        query: str,
        page: int,
        page_size: int
    ) -> SearchPage:
        if not self.available:
            raise IndexUnavailable()

        raw = await self.index.search(
            index,
            {"multi_match": {"query": query, "fields": fields}},
            offset=(page - 1) * page_size,
            size=page_size,
        )
        hits = raw.get("hits", {})
        return SearchPage(
            hits=[
                SearchHit(id=hit["_id"], score=hit.get("_score") or 0.0, source=hit.get("_source", {}))
                for hit in hits.get("hits", [])
            ],
            total=hits.get("total", {}).get("value", 0),
            page=page,
            page_size=page_size,
        )
