"""Pydantic models for index bookkeeping."""

from pydantic import BaseModel, ConfigDict, Field


class IndexMetadata(BaseModel):
    """Per-scope record of what the vector index was built from.

    Persisted as ``index-metadata.json``. Keys stay camelCase on disk and
    unknown keys are ignored so that files written by newer versions still
    load.

    Attributes:
        embedding_model: Identifier of the embedding model used for the vectors.
        last_rebuild_time: Milliseconds since epoch of the last full rebuild.
        file_hashes: Card name -> SHA-256 hex digest of the card's serialized content.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    embedding_model: str = Field(alias="embeddingModel")
    last_rebuild_time: int = Field(default=0, alias="lastRebuildTime")
    file_hashes: dict[str, str] = Field(default_factory=dict, alias="fileHashes")


class IndexResult(BaseModel):
    """Outcome of a best-effort index write.

    Attributes:
        success: True if every chunk of the card was written.
        chunk_count: Number of chunks written.
        error: Error description when success is False.
    """

    success: bool
    chunk_count: int = 0
    error: str | None = None
