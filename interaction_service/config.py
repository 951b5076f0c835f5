"""
Configuration settings for Interaction Service
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Interaction Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8005

    # Primary store ("mongodb" or "memory")
    STORE_BACKEND: str = "mongodb"
    MONGODB_URL: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGODB_DATABASE: str = "interactions"
    MONGODB_TRANSACTION_TIMEOUT_MS: int = 5000

    # Redis (hot posts cache)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 2
    REDIS_PASSWORD: str = ""
    REDIS_ENABLED: bool = True

    # Elasticsearch
    ELASTICSEARCH_URL: str = "http://localhost:9200"
    ELASTICSEARCH_REQUEST_TIMEOUT: int = 10
    ELASTICSEARCH_PING_TIMEOUT: int = 5
    ELASTICSEARCH_MAX_RETRIES: int = 3
    ELASTICSEARCH_POSTS_INDEX: str = "posts"
    ELASTICSEARCH_USERS_INDEX: str = "users"
    SEARCH_BOOTSTRAP_RETRIES: int = 3

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = "localhost:9092"
    KAFKA_ENABLED: bool = True
    KAFKA_CONSUMER_GROUP: str = "interaction-search-sync"
    KAFKA_TOPIC_POST_UPSERTED: str = "post.upserted"
    KAFKA_TOPIC_POST_DELETED: str = "post.deleted"

    # Auth
    JWT_SECRET_KEY: str = "your-secret-key-change-this-in-production"
    JWT_ALGORITHM: str = "HS256"

    # Content rules
    CONTENT_MAX_LENGTH: int = 280

    # Hot posts
    HOT_POSTS_KEY: str = "hot:posts"
    HOT_POSTS_TTL: int = 600  # 10 minutes
    HOT_POSTS_LIMIT: int = 100
    HOT_POSTS_REFRESH_HOUR: int = 0  # UTC
    HOT_POSTS_SCHEDULER_ENABLED: bool = True

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
