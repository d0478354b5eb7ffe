from pydantic import BaseModel

from shared.models.memory_card import MemoryCard


class UpsertMemoryCardRequest(BaseModel):
    scope: str
    card: MemoryCard
