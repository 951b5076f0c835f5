from .hot_posts import HotPostScheduler, HotPostService
from .interactions import InteractionService
from .search_sync import SearchSyncService

__all__ = ["HotPostScheduler", "HotPostService", "InteractionService", "SearchSyncService"]
