"""Pydantic models for ingestion module."""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class Chapter(BaseModel):
    """A single chapter of a book, as produced by a document extractor."""
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    text: str

    def render(self) -> str:
        """Chapter text with its title as a visible heading."""
        if self.title:
            return f"--- {self.title} ---\n\n{self.text}"
        return self.text


class BookSource(BaseModel):
    """Input text plus optional chapter structure. Never mutated."""
    model_config = ConfigDict(frozen=True)

    text: str
    chapters: List[Chapter] = Field(default_factory=list)
    title: Optional[str] = None

    @property
    def has_chapters(self) -> bool:
        return len(self.chapters) > 0


class TextChunk(BaseModel):
    """A bounded, ordered slice of a BookSource."""
    index: int
    text: str

    @property
    def char_count(self) -> int:
        return len(self.text)
