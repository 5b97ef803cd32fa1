"""Storage layer: the passage/entity/relation knowledge store."""

from kgrag.config.schema import StoreConfig
from kgrag.storage.base import (
    DEFAULT_MATCH_THRESHOLD,
    Collection,
    KnowledgeStore,
    StorageError,
)


def create_knowledge_store(config: StoreConfig) -> KnowledgeStore:
    """Factory function to create a knowledge store based on configuration.

    Args:
        config: Store configuration with store_type

    Returns:
        Knowledge store (call ``initialize()`` before use)

    Raises:
        ValueError: If store_type is unknown

    Example:
        store = create_knowledge_store(StoreConfig(store_type="memory"))
        await store.initialize()
    """
    store_type = config.store_type.value

    if store_type == "memory":
        from kgrag.storage.memory import InMemoryKnowledgeStore

        return InMemoryKnowledgeStore(config)

    if store_type == "chroma":
        from kgrag.storage.chroma import ChromaKnowledgeStore

        return ChromaKnowledgeStore(config)

    raise ValueError(
        f"Unknown store type: '{store_type}'. "
        f"Supported types: memory, chroma"
    )


__all__ = [
    "Collection",
    "DEFAULT_MATCH_THRESHOLD",
    "KnowledgeStore",
    "StorageError",
    "create_knowledge_store",
]
