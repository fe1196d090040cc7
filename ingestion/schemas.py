"""
Pydantic schemas for document ingestion
TextFragment (extraction) → Section (structuring) → ContentChunk (chunking)

All three are immutable once produced.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


PLACEHOLDER_TITLE = "Untitled Document"
INTRODUCTION_TITLE = "Introduction"


class TextFragment(BaseModel):
    """
    Atomic unit from extraction: one line of text with its position and font size.
    Produced once by the extractor, consumed only by the structurer.
    """
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Text content of the fragment")
    page: int = Field(..., ge=1, description="1-indexed page number")
    x: float = Field(0.0, description="Left edge in PDF points")
    y: float = Field(0.0, description="Top edge in PDF points")
    width: float = Field(0.0, ge=0, description="Fragment width in PDF points")
    font_size: float = Field(..., ge=0, description="Font size in points")


class Section(BaseModel):
    """
    A heading plus the body text that follows it, in document order.

    level is advisory heading prominence (1 = most prominent), not a parent pointer.
    synthetic marks the placeholder "Introduction" section whose title is not source text.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Section identifier, e.g. 'section-1'")
    title: str
    level: int = Field(1, ge=1)
    page: int = Field(1, ge=1)
    content: str = Field("", description="Concatenated body text")
    fragments: List[TextFragment] = Field(default_factory=list)
    synthetic: bool = False

    @property
    def text(self) -> str:
        """The section as it appears in the source: heading line, then body."""
        if self.synthetic:
            return self.content
        if not self.content:
            return self.title
        return f"{self.title}\n{self.content}"


class StructuredDocument(BaseModel):
    """Output of the structurer: a title and the ordered section list."""
    model_config = ConfigDict(frozen=True)

    title: str = PLACEHOLDER_TITLE
    sections: List[Section] = Field(default_factory=list)
    total_pages: int = 0
    total_fragments: int = 0
    average_font_size: float = 0.0

    @property
    def full_text(self) -> str:
        return "\n\n".join(s.text for s in self.sections if s.text)


class ChunkMetadata(BaseModel):
    """Advisory context for prompts; never used for correctness."""
    model_config = ConfigDict(frozen=True)

    heading_level: int = 1
    has_subsections: bool = False
    topic_keywords: List[str] = Field(default_factory=list, max_length=10)


class ContentChunk(BaseModel):
    """
    A token-bounded slice of the source text.

    start_line / end_line are 0-based, inclusive line indices into the text the
    chunker was given (the document's full_text for section input).
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Chunk identifier, e.g. 'chunk-1'")
    title: str
    content: str
    tokens: int = Field(..., ge=0, description="Estimated tokens (len / 4, rounded up)")
    start_line: int = Field(0, ge=0)
    end_line: int = Field(0, ge=0)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


ChunkingMethod = Literal["by-heading", "by-tokens", "hybrid"]


class ChunkingConfig(BaseModel):
    """Token budget and strategy for the chunker."""
    max_tokens_per_chunk: int = Field(3000, ge=1, description="Token ceiling per chunk")
    min_tokens_per_chunk: int = Field(500, ge=0, description="Token floor per chunk")
    method: ChunkingMethod = Field("by-heading", description="by-heading | by-tokens | hybrid")

    @model_validator(mode="after")
    def _floor_below_ceiling(self) -> "ChunkingConfig":
        if self.min_tokens_per_chunk > self.max_tokens_per_chunk:
            raise ValueError(
                f"min_tokens_per_chunk ({self.min_tokens_per_chunk}) must not exceed "
                f"max_tokens_per_chunk ({self.max_tokens_per_chunk})"
            )
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "max_tokens_per_chunk": 3000,
                "min_tokens_per_chunk": 500,
                "method": "by-heading",
            }
        }
    )


class SectionSummary(BaseModel):
    """Section view returned by the structure endpoint (fragments omitted)."""
    id: str
    title: str
    level: int
    page: int
    content: str
    synthetic: bool = False


class DocumentStructureResponse(BaseModel):
    material_id: int
    title: str
    total_pages: Optional[int] = None
    total_sections: int
    sections: List[SectionSummary]
