"""
Conversation turn model (input to candidate extraction).
"""

from datetime import datetime

from pydantic import BaseModel, Field

from focus_pool.models.item import _utcnow


class ConversationTurn(BaseModel):
    """A single conversational turn handed to the extractor."""

    text: str = Field(description="Raw turn text")
    timestamp: datetime = Field(default_factory=_utcnow)
    emotion: str | None = Field(default=None, description="Known emotion label, if any")
    intent: str | None = Field(default=None, description="Known intent label, if any")
    entities: list[str] = Field(
        default_factory=list,
        description="Entities already recognized upstream",
    )

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()

    def snippet(self, length: int = 100) -> str:
        """Leading slice of the text, kept in candidate metadata."""
        return self.text[:length]
