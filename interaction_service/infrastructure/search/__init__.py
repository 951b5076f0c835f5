from .elasticsearch_index import ElasticsearchIndex, search_index
from .mappings import POSTS_INDEX, USERS_INDEX

__all__ = ["ElasticsearchIndex", "search_index", "POSTS_INDEX", "USERS_INDEX"]
