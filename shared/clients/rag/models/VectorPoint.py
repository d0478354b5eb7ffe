"""VectorPoint model: metadata stored alongside each memory-card chunk in a vector index."""

import re

from pydantic import BaseModel

_CHUNK_ID_PATTERN = re.compile(r"^(.+?)::(.+?)::chunk(\d+)$")


class VectorPoint(BaseModel):
    """Metadata payload stored alongside each chunk vector.

    The scope field must always equal the scope of the index the point
    lives in. Queries drop every hit whose scope differs from the requested
    one, so a backend that shares storage between scopes can never leak
    chunks across scopes.

    Attributes:
        document_name:  Name of the memory card the chunk belongs to.
        scope:          Wire form of the owning scope ("global" or initiative id).
        title:          Title of the memory card.
        chunk_index:    Zero-based position of this chunk within the card.
        total_chunks:   Number of chunks the card was split into.
        tags:           Tags of the memory card.
        context_policy: Context policy of the card ("auto" or "always").
        text_content:   Raw text of this chunk.
    """

    document_name: str
    scope: str
    title: str = ""
    chunk_index: int
    total_chunks: int
    tags: list[str] = []
    context_policy: str = "auto"
    text_content: str = ""


def make_chunk_id(scope: str, document_name: str, chunk_index: int) -> str:
    """Build the point id of a chunk.

    The same (scope, card, chunk) always maps to the same id, so re-indexing
    a card overwrites rather than duplicates.
    """
    return f"{scope}::{document_name}::chunk{chunk_index}"


def parse_chunk_id(point_id: str) -> tuple[str, str, int] | None:
    """Split a point id into (scope, document_name, chunk_index), or None if it is not a chunk id."""
    match = _CHUNK_ID_PATTERN.match(point_id)
    if not match:
        return None
    return match.group(1), match.group(2), int(match.group(3))


def is_chunk_id(point_id: str) -> bool:
    return parse_chunk_id(point_id) is not None
