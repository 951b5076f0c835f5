"""
Kafka consumer that feeds post changes into the search index
"""
from aiokafka import AIOKafkaConsumer
from typing import Optional
import json
import asyncio
import logging

from .config import settings
from .application.search_sync import SearchSyncService

logger = logging.getLogger(__name__)


class KafkaConsumerManager:
    """Manage Kafka consumer for incremental search sync"""

    def __init__(self, search_sync: Optional[SearchSyncService] = None):
        self.search_sync = search_sync
        self.consumer: Optional[AIOKafkaConsumer] = None
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self):
        """Start Kafka consumer"""
        if not settings.KAFKA_ENABLED:
            logger.warning("Kafka is disabled")
            return

        try:
            self.consumer = AIOKafkaConsumer(
                settings.KAFKA_TOPIC_POST_UPSERTED,
                settings.KAFKA_TOPIC_POST_DELETED,
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                group_id=settings.KAFKA_CONSUMER_GROUP,
                value_deserializer=lambda m: json.loads(m.decode('utf-8')),
                auto_offset_reset='latest',
                enable_auto_commit=True,
            )
            await self.consumer.start()
            logger.info(f"Kafka consumer started with group '{settings.KAFKA_CONSUMER_GROUP}'")

            self.running = True
            self.task = asyncio.create_task(self._consume_messages())

        except Exception as e:
            logger.error(f"Failed to start Kafka consumer: {e}")
            self.consumer = None

    async def stop(self):
        """Stop Kafka consumer"""
        self.running = False

        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        if self.consumer:
            await self.consumer.stop()
            logger.info("Kafka consumer stopped")

    async def _consume_messages(self):
        """Consume and process messages from Kafka"""
        logger.info("Started consuming Kafka messages")

        try:
            async for message in self.consumer:
                if not self.running:
                    break

                try:
                    await self.process_message(message.topic, message.value)
                except Exception as e:
                    logger.error(f"Error processing message: {e}")

        except asyncio.CancelledError:
            logger.info("Kafka consumer task cancelled")
        except Exception as e:
            logger.error(f"Error in message consumption loop: {e}")

    async def process_message(self, topic: str, value: dict):
        """Dispatch one post event to the search sync service"""
        post_id = value.get("post_id")
        if not post_id:
            logger.error(f"Invalid event on topic '{topic}': missing post_id")
            return

        logger.info(f"Processing '{value.get('event_type')}' for post {post_id}")

        if topic == settings.KAFKA_TOPIC_POST_UPSERTED:
            await self.search_sync.upsert_post(post_id)
        elif topic == settings.KAFKA_TOPIC_POST_DELETED:
            await self.search_sync.delete_post(post_id)
        else:
            logger.warning(f"Unknown topic: {topic}")
