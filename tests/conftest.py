"""Shared fixtures: in-memory primary store, fake cache and fake search index."""

import pytest
import pytest_asyncio
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from interaction_service.domain.models import User
from interaction_service.domain.repositories import BulkResult, ISearchIndex
from interaction_service.exceptions import IndexUnavailable
from interaction_service.infrastructure.database import InMemoryPrimaryStore


# ============================================================================
# Fakes
# ============================================================================

class FakeCache:
    """Dict-backed stand-in for RedisCache that records TTLs."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.set_calls = 0

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set(self, key: str, value: str, ttl: int) -> bool:
        self.values[key] = value
        self.ttls[key] = ttl
        self.set_calls += 1
        return True

    async def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.values.pop(key, None) is not None


class FakeSearchIndex(ISearchIndex):
    """In-memory search index with switchable failure modes."""

    def __init__(self, reachable: bool = True):
        self.reachable = reachable
        self.ping_calls = 0
        self.indices: Dict[str, Dict[str, Any]] = {}
        self.documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.failing_ids: Set[str] = set()
        self.bulk_calls: List[Tuple[str, int]] = []

    async def ping(self) -> bool:
        self.ping_calls += 1
        return self.reachable

    async def index_exists(self, name: str) -> bool:
        return name in self.indices

    async def create_index(self, name: str, body: Dict[str, Any]) -> None:
        self.indices[name] = body
        self.documents.setdefault(name, {})

    async def bulk_upsert(
        self,
        index: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]],
        refresh: bool = True
    ) -> BulkResult:
        if not self.reachable:
            raise IndexUnavailable("unreachable")
        self.bulk_calls.append((index, len(documents)))

        errors = []
        for doc_id, body in documents:
            if doc_id in self.failing_ids:
                errors.append({"_id": doc_id, "error": {"type": "mapper_parsing_exception"}})
                continue
            self.documents.setdefault(index, {})[doc_id] = body
        return BulkResult(total=len(documents), failed=len(errors), errors=errors)

    async def delete_document(self, index: str, doc_id: str) -> None:
        self.documents.get(index, {}).pop(doc_id, None)

    async def search(
        self,
        index: str,
        query: Dict[str, Any],
        offset: int,
        size: int
    ) -> Dict[str, Any]:
        term = query["multi_match"]["query"].lower()
        matches = [
            {"_id": doc_id, "_score": 1.0, "_source": body}
            for doc_id, body in self.documents.get(index, {}).items()
            if any(term in str(value).lower() for value in body.values())
        ]
        return {"hits": {"total": {"value": len(matches)}, "hits": matches[offset:offset + size]}}


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def users():
    """Three known users."""
    return [
        User(id="u-alice", user_name="Alice", account_name="alice"),
        User(id="u-bob", user_name="Bob", account_name="bob", bio="coffee and code"),
        User(id="u-carol", user_name="Carol", account_name="carol"),
    ]


@pytest_asyncio.fixture
async def store(users):
    """In-memory primary store seeded with users."""
    primary = InMemoryPrimaryStore()
    await primary.add_users(users)
    return primary


@pytest.fixture
def fake_cache():
    return FakeCache()


@pytest.fixture
def fake_index():
    return FakeSearchIndex()
