"""Pipelines: ingestion, retrieval and answer generation."""

from kgrag.pipelines.ingestion import IngestionError, IngestionPipeline, IngestionResult
from kgrag.pipelines.query import ChatSettings, QueryPipeline
from kgrag.pipelines.retrieval import QueryError, Retriever, merge_by_id

__all__ = [
    "ChatSettings",
    "IngestionError",
    "IngestionPipeline",
    "IngestionResult",
    "QueryError",
    "QueryPipeline",
    "Retriever",
    "merge_by_id",
]
