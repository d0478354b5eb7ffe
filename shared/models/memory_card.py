"""Pydantic models for memory cards."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ContextPolicy(str, Enum):
    """When a memory card is pulled into an agent context."""

    AUTO = "auto"
    ALWAYS = "always"


class MemoryCard(BaseModel):
    """A memory card as stored in the knowledge base.

    The name is the unique key within its scope and doubles as the file
    name of the card. On the wire the context policy keeps its historical
    camelCase key ``contextIncludingPolicy``.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    name: str = Field(min_length=1)
    title: str = ""
    content: str = ""
    context_policy: ContextPolicy = Field(default=ContextPolicy.AUTO, alias="contextIncludingPolicy")
    tags: list[str] = []

    def searchable_text(self) -> str:
        """Text that is chunked and embedded for this card."""
        return f"{self.title}\n\n{self.content}"
