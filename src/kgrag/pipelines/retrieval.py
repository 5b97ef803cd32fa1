"""Multi-strategy retriever over passages and the entity/relation graph.

Why this exists:
- Embeds the query once and fans out to the store according to the mode
- Follows provenance links (entity/relation -> source passages)
- Merges results from several paths, keeping the best score per item

Modes:
- naive:  passages by similarity
- local:  entities by similarity, then their source passages
- global: relations by similarity, then their endpoint entities and source passages
- hybrid: local + global at half size each, merged
- mix:    passages + entities + relations by similarity, plus linked passages

How to use:
    retriever = Retriever(embedding_provider, store)
    result = await retriever.retrieve("who founded acme?", mode="mix", workspace="acme", top_k=10)

Failures of individual searches or lookups are logged and treated as "found
nothing"; only a failure to embed the query is raised.
"""

import asyncio
import math
from collections.abc import Iterable
from typing import Optional, TypeVar, Union

import structlog

from kgrag.core.context import build_context
from kgrag.entities import (
    LINKED_PASSAGE_SCORE,
    PLACEHOLDER_ENTITY_SCORE,
    Entity,
    QueryMode,
    RetrievalResult,
    ScoredEntity,
    ScoredPassage,
    ScoredRelation,
)
from kgrag.observability.logging import get_logger
from kgrag.providers.base import EmbeddingProvider, EmbeddingUnavailable, ProviderError
from kgrag.storage.base import DEFAULT_MATCH_THRESHOLD, Collection, KnowledgeStore

logger = get_logger(__name__)

MIN_TOP_K = 1
MAX_TOP_K = 50
DEFAULT_TOP_K = 10

Scored = TypeVar("Scored", ScoredPassage, ScoredEntity, ScoredRelation)

Evidence = tuple[list[ScoredPassage], list[ScoredEntity], list[ScoredRelation]]


class QueryError(ValueError):
    """Invalid retrieval arguments."""


def merge_by_id(*groups: Iterable[Scored]) -> list[Scored]:
    """Deduplicate scored items by ID; the higher similarity survives.

    Items keep the position where their ID was first seen. Merging a list
    with itself returns it unchanged.
    """
    merged: dict[str, Scored] = {}
    for group in groups:
        for item in group:
            current = merged.get(item.id)
            if current is None or item.similarity > current.similarity:
                merged[item.id] = item
    return list(merged.values())


def rank(items: Iterable[Scored]) -> list[Scored]:
    """Sort by descending similarity (stable for equal scores)."""
    return sorted(items, key=lambda item: item.similarity, reverse=True)


def half(top_k: int) -> int:
    return math.ceil(top_k / 2)


def _unwrap(item):
    if isinstance(item, ScoredPassage):
        return item.passage
    if isinstance(item, ScoredEntity):
        return item.entity
    if isinstance(item, ScoredRelation):
        return item.relation
    return item


def _source_chunk_ids(items: Iterable[Union[ScoredEntity, ScoredRelation]]) -> list[str]:
    ids: dict[str, None] = {}
    for item in items:
        ids.update(dict.fromkeys(_unwrap(item).source_chunk_ids))
    return list(ids)


class Retriever:
    """Selects and merges passages, entities and relations for a query."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        store: KnowledgeStore,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> None:
        """Initialize the retriever.

        Args:
            embedding_provider: Provider used to embed the query
            store: Knowledge store (similarity search + keyed lookup)
            match_threshold: Minimum similarity for direct vector matches
        """
        self.embedding_provider = embedding_provider
        self.store = store
        self.match_threshold = match_threshold

    async def retrieve(
        self,
        query: str,
        mode: Union[str, QueryMode, None] = QueryMode.MIX,
        workspace: str = "default",
        top_k: int = DEFAULT_TOP_K,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ) -> RetrievalResult:
        """Retrieve evidence for ``query`` within one workspace.

        Args:
            query: Natural-language question
            mode: Retrieval mode name; unrecognised values mean ``mix``
            workspace: Tenant scope, applied to every read
            top_k: Result size, 1 to 50
            embedding_provider: Per-request embedder (e.g. a tenant's own key)

        Returns:
            Ranked passages, entities, relations and the rendered context

        Raises:
            QueryError: If ``top_k`` or ``workspace`` is invalid
            EmbeddingUnavailable: If the query cannot be embedded
        """
        if not MIN_TOP_K <= top_k <= MAX_TOP_K:
            raise QueryError(f"top_k must be between {MIN_TOP_K} and {MAX_TOP_K}, got {top_k}")
        if not workspace:
            raise QueryError("workspace is required")

        query_mode = QueryMode.parse(mode)
        strategies = {
            QueryMode.NAIVE: self._naive,
            QueryMode.LOCAL: self._local,
            QueryMode.GLOBAL: self._global,
            QueryMode.HYBRID: self._hybrid,
            QueryMode.MIX: self._mix,
        }

        with structlog.contextvars.bound_contextvars(workspace=workspace, mode=query_mode.value):
            logger.info("retrieval_started", requested_mode=str(mode), top_k=top_k)

            query_vector = await self._embed(query, embedding_provider or self.embedding_provider)
            passages, entities, relations = await strategies[query_mode](query_vector, workspace, top_k)

            logger.info(
                "retrieval_completed",
                passage_count=len(passages),
                entity_count=len(entities),
                relation_count=len(relations),
            )

        return RetrievalResult(
            passages=passages,
            entities=entities,
            relations=relations,
            context=build_context(passages, entities, relations),
        )

    async def _embed(self, query: str, provider: EmbeddingProvider) -> list[float]:
        try:
            return await provider.embed_text(query)
        except EmbeddingUnavailable:
            raise
        except ProviderError as e:
            raise EmbeddingUnavailable(
                message=e.message, provider=e.provider, original_error=e
            ) from e

    # -- gateway calls -----------------------------------------------------

    @staticmethod
    def _in_scope(items: list, workspace: str, collection: Collection) -> list:
        """Drop anything the store returned from another workspace."""
        kept = []
        for item in items:
            inner = _unwrap(item)
            if inner.workspace == workspace:
                kept.append(item)
            else:
                logger.error(
                    "cross_workspace_item_dropped",
                    collection=collection.value,
                    item_id=inner.id,
                    item_workspace=inner.workspace,
                )
        return kept

    async def _search(
        self, collection: Collection, query_vector: list[float], workspace: str, match_count: int
    ) -> list:
        try:
            matches = await self.store.search(
                collection,
                query_vector,
                workspace,
                match_count=match_count,
                match_threshold=self.match_threshold,
            )
        except Exception as e:
            logger.warning(
                "similarity_search_failed",
                collection=collection.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []
        return self._in_scope(list(matches or []), workspace, collection)

    async def _lookup(self, collection: Collection, ids: list[str], workspace: str) -> list:
        if not ids:
            return []
        try:
            items = await self.store.get_by_ids(collection, ids, workspace)
        except Exception as e:
            logger.warning(
                "keyed_lookup_failed",
                collection=collection.value,
                id_count=len(ids),
                error=str(e),
                error_type=type(e).__name__,
            )
            return []
        return self._in_scope(list(items or []), workspace, collection)

    async def _linked_passages(self, ids: list[str], workspace: str) -> list[ScoredPassage]:
        passages = await self._lookup(Collection.PASSAGES, ids, workspace)
        return [ScoredPassage(passage=p, similarity=LINKED_PASSAGE_SCORE) for p in passages]

    async def _entity_names(self, ids: list[str], workspace: str) -> dict[str, str]:
        entities = await self._lookup(Collection.ENTITIES, ids, workspace)
        return {entity.id: entity.entity_name for entity in entities}

    # -- strategies --------------------------------------------------------

    async def _naive(self, query_vector: list[float], workspace: str, top_k: int) -> Evidence:
        passages = await self._search(Collection.PASSAGES, query_vector, workspace, top_k)
        return rank(passages), [], []

    async def _local(self, query_vector: list[float], workspace: str, top_k: int) -> Evidence:
        entities = await self._search(Collection.ENTITIES, query_vector, workspace, top_k)
        passages = await self._linked_passages(_source_chunk_ids(entities), workspace)
        return rank(passages), entities, []

    async def _global(self, query_vector: list[float], workspace: str, top_k: int) -> Evidence:
        relations = await self._search(Collection.RELATIONS, query_vector, workspace, top_k)

        entity_ids: dict[str, None] = {}
        for item in relations:
            entity_ids[item.relation.source_entity_id] = None
            entity_ids[item.relation.target_entity_id] = None

        async with asyncio.TaskGroup() as tg:
            names_task = tg.create_task(self._entity_names(list(entity_ids), workspace))
            passages_task = tg.create_task(
                self._linked_passages(_source_chunk_ids(relations), workspace)
            )

        names = names_task.result()
        entities = [
            ScoredEntity(
                entity=Entity.placeholder(entity_id, workspace, names.get(entity_id, "Unknown")),
                similarity=PLACEHOLDER_ENTITY_SCORE,
            )
            for entity_id in entity_ids
        ]
        return rank(passages_task.result()), entities, relations

    async def _hybrid(self, query_vector: list[float], workspace: str, top_k: int) -> Evidence:
        async with asyncio.TaskGroup() as tg:
            local_task = tg.create_task(self._local(query_vector, workspace, half(top_k)))
            global_task = tg.create_task(self._global(query_vector, workspace, half(top_k)))

        local_passages, local_entities, _ = local_task.result()
        global_passages, global_entities, relations = global_task.result()

        passages = rank(merge_by_id(local_passages, global_passages))
        entities = rank(merge_by_id(local_entities, global_entities))
        return passages, entities, relations

    async def _mix(self, query_vector: list[float], workspace: str, top_k: int) -> Evidence:
        async with asyncio.TaskGroup() as tg:
            passages_task = tg.create_task(
                self._search(Collection.PASSAGES, query_vector, workspace, top_k)
            )
            entities_task = tg.create_task(
                self._search(Collection.ENTITIES, query_vector, workspace, half(top_k))
            )
            relations_task = tg.create_task(
                self._search(Collection.RELATIONS, query_vector, workspace, half(top_k))
            )

        direct = passages_task.result()
        entities = entities_task.result()
        relations = relations_task.result()

        seen = {item.id for item in direct}
        linked_ids = [
            chunk_id
            for chunk_id in _source_chunk_ids([*entities, *relations])
            if chunk_id not in seen
        ]
        linked = await self._linked_passages(linked_ids, workspace)

        passages = rank(merge_by_id(direct, linked))[:top_k]
        return passages, entities, relations
