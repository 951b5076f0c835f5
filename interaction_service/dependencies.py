"""
FastAPI dependencies for Interaction Service
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from typing import Optional
import logging

from .config import settings
from .cache import cache
from .kafka_producer import KafkaProducerManager, get_kafka_producer
from .application import HotPostService, InteractionService, SearchSyncService
from .domain.repositories import IPrimaryStore
from .infrastructure.database import InMemoryPrimaryStore, MongoPrimaryStore, mongodb
from .infrastructure.search import search_index
from .schemas import CurrentUser

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def build_store() -> IPrimaryStore:
    """Primary store selected by STORE_BACKEND"""
    if settings.STORE_BACKEND == "memory":
        logger.warning("Using in-memory primary store, data is not persisted")
        return InMemoryPrimaryStore()
    return MongoPrimaryStore(mongodb)


# Process-wide instances; search sync and hot posts hold state between requests
store = build_store()
search_sync = SearchSyncService(store, search_index)
hot_post_service = HotPostService(store, cache)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """
    Validate JWT token and return current user
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(id=str(user_id))


async def get_store() -> IPrimaryStore:
    """Dependency for getting the primary store"""
    return store


async def get_interaction_service(
    primary_store: IPrimaryStore = Depends(get_store),
    producer: KafkaProducerManager = Depends(get_kafka_producer)
) -> InteractionService:
    """Dependency for getting the interaction service"""
    return InteractionService(primary_store, producer)


async def get_search_sync() -> SearchSyncService:
    """Dependency for getting the search sync service"""
    return search_sync


async def get_hot_post_service() -> HotPostService:
    """Dependency for getting the hot posts service"""
    return hot_post_service
