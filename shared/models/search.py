"""Pydantic models for memory-card search."""

from pydantic import BaseModel, Field

from shared.models.memory_card import MemoryCard


class ChunkHit(BaseModel):
    """A single chunk returned by a vector store query."""

    document_name: str
    score: float
    chunk_index: int
    total_chunks: int
    text_content: str = ""


class SearchExcerpt(BaseModel):
    """A chunk surfaced as supporting evidence of a search result."""

    text: str
    score: float
    chunk_index: int = 0
    total_chunks: int = 1


class MemoryCardSearchResult(BaseModel):
    """A ranked memory card. Both the semantic and the text search produce this shape."""

    card: MemoryCard
    relevance_score: float
    excerpts: list[SearchExcerpt] = []


class SearchRequest(BaseModel):
    """Incoming memory-card search."""

    scope: str
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=20)


class SearchResponse(BaseModel):
    """Response payload of a memory-card search."""

    query: str
    scope: str
    results: list[MemoryCardSearchResult]
    total: int
