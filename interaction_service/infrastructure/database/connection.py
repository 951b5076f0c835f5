"""
MongoDB database connection and utilities
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from typing import Optional
import logging

from ...config import settings

logger = logging.getLogger(__name__)


class MongoDB:
    """MongoDB connection manager"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """Connect to MongoDB (must be a replica set for transactions)"""
        self.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
        self.db = self.client[settings.MONGODB_DATABASE]

        await self.create_indexes()

        logger.info(f"Connected to MongoDB, using database: {settings.MONGODB_DATABASE}")

    async def disconnect(self):
        """Disconnect from MongoDB"""
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    async def create_indexes(self):
        """Create indexes, including the uniqueness constraints"""
        posts = self.db["posts"]
        await posts.create_index([("created_at", DESCENDING)])
        await posts.create_index("user_id")
        # Hot posts ranking
        await posts.create_index([
            ("likes_count", DESCENDING),
            ("comment_count", DESCENDING),
            ("created_at", DESCENDING),
        ])

        await self.db["comments"].create_index("post_id")

        likes = self.db["likes"]
        await likes.create_index(
            [("user_id", ASCENDING), ("target_id", ASCENDING), ("target_kind", ASCENDING)],
            unique=True,
        )
        await likes.create_index([("target_id", ASCENDING), ("target_kind", ASCENDING)])

        events = self.db["events"]
        await events.create_index("details.post_id")
        await events.create_index([("receiver_id", ASCENDING), ("created_at", DESCENDING)])

        follows = self.db["follows"]
        await follows.create_index(
            [("follower_id", ASCENDING), ("following_id", ASCENDING)],
            unique=True,
        )
        await follows.create_index("follower_id")
        await follows.create_index("following_id")

        logger.info("MongoDB indexes created")


# Global MongoDB instance
mongodb = MongoDB()
