from typing import Literal

from pydantic import BaseModel

from shared.models.index import IndexResult


class UpsertMemoryCardResponse(BaseModel):
    scope: str
    name: str
    status: Literal["created", "updated"]
    index: IndexResult


class RemoveMemoryCardResponse(BaseModel):
    scope: str
    name: str
    removed_from_index: bool


class RebuildResponse(BaseModel):
    scope: str
    card_count: int
