"""Archivist ingest pipeline — cleaner, chunker, embedding client, batch indexer."""

from archivist.ingest.chunker import ChunkOptions, EmailChunker, chunk_text
from archivist.ingest.cleaner import clean
from archivist.ingest.embedding import EmbeddingClient, EmbeddingError
from archivist.ingest.pipeline import IndexingError, IndexingPipeline, IndexStats, PipelineConfig

__all__ = [
    "ChunkOptions",
    "EmailChunker",
    "chunk_text",
    "clean",
    "EmbeddingClient",
    "EmbeddingError",
    "IndexingError",
    "IndexingPipeline",
    "IndexStats",
    "PipelineConfig",
]
