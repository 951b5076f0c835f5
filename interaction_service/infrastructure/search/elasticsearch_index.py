"""
Elasticsearch adapter for the search index contract
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from elasticsearch import AsyncElasticsearch, ApiError, NotFoundError, TransportError

from ...config import settings
from ...domain.repositories import BulkResult, ISearchIndex
from ...exceptions import IndexUnavailable

logger = logging.getLogger(__name__)


class ElasticsearchIndex(ISearchIndex):
    """Search index backed by Elasticsearch"""

    def __init__(self, client: Optional[AsyncElasticsearch] = None):
        self.client = client

    async def connect(self):
        """Create the client; connectivity is probed later by ping()"""
        if self.client is None:
            self.client = AsyncElasticsearch(
                settings.ELASTICSEARCH_URL,
                request_timeout=settings.ELASTICSEARCH_REQUEST_TIMEOUT,
                max_retries=settings.ELASTICSEARCH_MAX_RETRIES,
                retry_on_timeout=True,
            )
            logger.info(f"Elasticsearch client created for {settings.ELASTICSEARCH_URL}")

    async def close(self):
        if self.client:
            await self.client.close()
            logger.info("Elasticsearch client closed")

    async def ping(self) -> bool:
        try:
            return bool(
                await self.client.options(request_timeout=settings.ELASTICSEARCH_PING_TIMEOUT).ping()
            )
        except (ApiError, TransportError) as e:
            logger.warning(f"Elasticsearch ping failed: {e}")
            return False

    async def index_exists(self, name: str) -> bool:
        try:
            return bool(await self.client.indices.exists(index=name))
        except (ApiError, TransportError) as e:
            raise IndexUnavailable(f"Cannot check index {name}: {e}") from e

    async def create_index(self, name: str, body: Dict[str, Any]) -> None:
        try:
            await self.client.indices.create(
                index=name,
                settings=body.get("settings"),
                mappings=body.get("mappings"),
            )
        except (ApiError, TransportError) as e:
            raise IndexUnavailable(f"Cannot create index {name}: {e}") from e

    async def bulk_upsert(
        self,
        index: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]],
        refresh: bool = True
    ) -> BulkResult:
        if not documents:
            return BulkResult(total=0)

        operations: List[Dict[str, Any]] = []
        for doc_id, body in documents:
            operations.append({"index": {"_index": index, "_id": doc_id}})
            operations.append(body)

        try:
            response = await self.client.bulk(operations=operations, refresh=refresh)
        except (ApiError, TransportError) as e:
            raise IndexUnavailable(f"Bulk upsert into {index} failed: {e}") from e

        errors = [
            item["index"] for item in response.body.get("items", [])
            if item.get("index", {}).get("error")
        ]
        return BulkResult(total=len(documents), failed=len(errors), errors=errors)

    async def delete_document(self, index: str, doc_id: str) -> None:
        try:
            await self.client.delete(index=index, id=doc_id, refresh=True)
        except NotFoundError:
            logger.debug(f"Document {doc_id} already absent from {index}")
        except (ApiError, TransportError) as e:
            raise IndexUnavailable(f"Delete from {index} failed: {e}") from e

    async def search(
        self,
        index: str,
        query: Dict[str, Any],
        offset: int,
        size: int
    ) -> Dict[str, Any]:
        try:
            response = await self.client.search(index=index, query=query, from_=offset, size=size)
        except (ApiError, TransportError) as e:
            raise IndexUnavailable(f"Search on {index} failed: {e}") from e
        return response.body


# Global search index instance
search_index = ElasticsearchIndex()
