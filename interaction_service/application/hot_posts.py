"""
Hot-Content Cache - ranked top posts with a short-TTL snapshot

Readers never wait on ranking: a miss returns an empty list and schedules a
background recomputation. The snapshot is written with one SET-with-expiry,
so a reader sees either the previous list or the new one.
"""
from datetime import datetime, timedelta
from typing import List, Optional
import asyncio
import json
import logging

from ..cache import RedisCache
from ..config import settings
from ..domain.models import HotPost, UserSummary, utcnow
from ..domain.repositories import IPrimaryStore

logger = logging.getLogger(__name__)


class HotPostService:
    """Computes and serves the hot posts snapshot"""

    def __init__(self, store: IPrimaryStore, cache: RedisCache):
        self.store = store
        self.cache = cache
        self._refresh_task: Optional[asyncio.Task] = None

    async def recompute(self) -> List[HotPost]:
        """
        Rank posts and replace the cached snapshot

        Order: likes_count, then comment_count, then created_at, all
        descending. Never raises; failures are logged.
        """
        try:
            reader = self.store.reader()
            posts = await reader.posts.find_ranked(settings.HOT_POSTS_LIMIT)
            users = await reader.users.find_by_ids(post.user_id for post in posts)

            hot_posts = [
                HotPost.from_post(
                    post,
                    UserSummary.from_user(users[post.user_id]) if post.user_id in users else None,
                )
                for post in posts
            ]
            payload = json.dumps([hot.to_dict() for hot in hot_posts])

            if await self.cache.set(settings.HOT_POSTS_KEY, payload, settings.HOT_POSTS_TTL):
                logger.info(f"Hot posts updated with {len(hot_posts)} entries")
            else:
                logger.warning("Hot posts computed but could not be cached")
            return hot_posts

        except Exception as e:
            logger.error(f"Failed to update hot posts: {e}")
            return []

    async def get_hot_posts(self) -> List[HotPost]:
        """Cached snapshot, or [] while a recomputation runs in the background"""
        raw = await self.cache.get(settings.HOT_POSTS_KEY)
        if raw:
            try:
                return [HotPost.from_dict(item) for item in json.loads(raw)]
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Discarding unreadable hot posts snapshot: {e}")

        logger.info("Hot posts cache miss, scheduling recomputation")
        self.trigger_refresh()
        return []

    def trigger_refresh(self) -> asyncio.Task:
        """Start a background recomputation unless one is already running"""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self.recompute())
        return self._refresh_task

    async def close(self):
        """Cancel an in-flight background recomputation"""
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
        self._refresh_task = None


class HotPostScheduler:
    """
    Daily background refresh of the hot posts snapshot

    Usage:
        scheduler = HotPostScheduler(hot_post_service)
        await scheduler.start()
        await scheduler.stop()
    """

    def __init__(self, service: HotPostService, hour: int = settings.HOT_POSTS_REFRESH_HOUR):
        self.service = service
        self.hour = hour
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the background refresh task"""
        if self._running:
            logger.warning("Hot posts scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Hot posts scheduler started, daily at {self.hour:02d}:00 UTC")

    async def stop(self):
        """Stop the background refresh task"""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Hot posts scheduler stopped")

    def seconds_until_next_run(self, now: Optional[datetime] = None) -> float:
        now = now or utcnow()
        next_run = now.replace(hour=self.hour, minute=0, second=0, microsecond=0)
        if next_run <= now:
            next_run += timedelta(days=1)
        return (next_run - now).total_seconds()

    async def _run_loop(self):
        while self._running:
            delay = self.seconds_until_next_run()
            logger.debug(f"Next hot posts refresh in {delay:.0f}s")
            await asyncio.sleep(delay)
            await self.service.recompute()
