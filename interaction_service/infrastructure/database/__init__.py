from .connection import MongoDB, mongodb
from .memory import InMemoryPrimaryStore
from .repositories import MongoPrimaryStore

__all__ = ["MongoDB", "mongodb", "InMemoryPrimaryStore", "MongoPrimaryStore"]
