"""
Pydantic schemas for the generation pipeline.

QuotaRequirement → ChunkQuota (per chunk) → WorkUnit (per chunk × tier pair)
plus the request/response shapes of the job submission and poll endpoints.
"""

from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ingestion.schemas import ChunkingConfig, ContentChunk


# ─── Tiers ────────────────────────────────────────────────────────────────────

DIFFICULTY_TIERS = ("easy", "medium", "hard")
BLOOM_TIERS = ("remember", "understand", "apply", "analyze", "evaluate", "create")

DIFFICULTY_ALIASES: Dict[str, str] = {
    "easy":   "easy",
    "simple": "easy",
    "medium": "medium",
    "moderate": "medium",
    "hard":   "hard",
    "difficult": "hard",
}

BLOOM_ALIASES: Dict[str, str] = {
    "remember":      "remember",
    "recall":        "remember",
    "knowledge":     "remember",
    "understand":    "understand",
    "comprehend":    "understand",
    "comprehension": "understand",
    "apply":         "apply",
    "application":   "apply",
    "analyze":       "analyze",
    "analyse":       "analyze",
    "analysis":      "analyze",
    "evaluate":      "evaluate",
    "evaluation":    "evaluate",
    "create":        "create",
    "synthesis":     "create",
}

# Weight metric per difficulty (used when the model omits marks)
MARKS_BY_DIFFICULTY: Dict[str, int] = {
    "easy": 2,
    "medium": 8,
    "hard": 16,
}


def normalise_difficulty(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    return DIFFICULTY_ALIASES.get(str(raw).strip().lower())


def normalise_bloom(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    return BLOOM_ALIASES.get(str(raw).strip().lower())


def _normalise_axis(value: Dict[str, int], aliases: Dict[str, str], tiers: tuple, axis: str) -> Dict[str, int]:
    if value is not None and not isinstance(value, dict):
        raise ValueError(f"{axis} must be a mapping of tier -> count")
    counts = {tier: 0 for tier in tiers}
    for raw_tier, count in (value or {}).items():
        tier = aliases.get(str(raw_tier).strip().lower())
        if tier is None:
            raise ValueError(f"Unknown {axis} tier '{raw_tier}'. Expected one of: {', '.join(tiers)}")
        if count is None:
            continue
        if int(count) < 0:
            raise ValueError(f"{axis} count for '{raw_tier}' must be >= 0, got {count}")
        counts[tier] += int(count)
    return counts


# ─── Quotas ───────────────────────────────────────────────────────────────────

class QuotaRequirement(BaseModel):
    """
    Two independent tier → count mappings. Missing tiers count as 0;
    tier names are case-insensitive and accept common aliases ("recall", "analyse").
    """
    difficulty: Dict[str, int] = Field(default_factory=dict, description="easy | medium | hard → count")
    bloom_levels: Dict[str, int] = Field(default_factory=dict, description="remember … create → count")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "difficulty": {"easy": 4, "medium": 4, "hard": 2},
                "bloom_levels": {"remember": 2, "understand": 3, "apply": 3, "analyze": 2},
            }
        }
    )

    @field_validator("difficulty", mode="before")
    @classmethod
    def _check_difficulty(cls, v):
        return _normalise_axis(v, DIFFICULTY_ALIASES, DIFFICULTY_TIERS, "difficulty")

    @field_validator("bloom_levels", mode="before")
    @classmethod
    def _check_bloom(cls, v):
        return _normalise_axis(v, BLOOM_ALIASES, BLOOM_TIERS, "bloom")

    @property
    def difficulty_total(self) -> int:
        return sum(self.difficulty.values())

    @property
    def bloom_total(self) -> int:
        return sum(self.bloom_levels.values())

    @property
    def total(self) -> int:
        """Questions requested: both axes describe the same set, so the larger total wins."""
        return max(self.difficulty_total, self.bloom_total)


class ChunkQuota(BaseModel):
    """A QuotaRequirement scoped to one chunk."""
    chunk_id: str
    chunk_tokens: int = 0
    difficulty: Dict[str, int]
    bloom_levels: Dict[str, int]

    @property
    def total(self) -> int:
        return max(sum(self.difficulty.values()), sum(self.bloom_levels.values()))


class WorkUnit(BaseModel):
    """
    One generation call: a chunk, a difficulty tier, a Bloom tier and how many
    questions to ask for. A tier is None when the other axis had more slots
    in this chunk ("any").
    """
    chunk_id: str
    difficulty: Optional[str] = None
    bloom_level: Optional[str] = None
    count: int = Field(..., ge=1)

    @property
    def label(self) -> str:
        return f"{self.chunk_id}/{self.difficulty or 'any'}/{self.bloom_level or 'any'}"


class GenerationPlan(BaseModel):
    """Everything the job runner needs, computed before any generation call."""
    chunks: List[ContentChunk]
    quotas: List[ChunkQuota]
    units: List[WorkUnit]

    @property
    def total_requested(self) -> int:
        return sum(u.count for u in self.units)


# ─── LLM output ───────────────────────────────────────────────────────────────

class GeneratedQuestionItem(BaseModel):
    """One validated question from a model response."""
    question_text: str = Field(..., min_length=1)
    answer_text: Optional[str] = None
    difficulty: str
    bloom_level: str
    marks: int = Field(..., ge=0)
    topic: Optional[str] = None


# ─── API: submission / poll ───────────────────────────────────────────────────

class GenerationJobCreate(BaseModel):
    """Submit a generation job for one uploaded material."""
    source_material_id: int = Field(..., description="CourseMaterial ID")
    quota_requirement: QuotaRequirement
    chunking_config: ChunkingConfig = Field(default_factory=ChunkingConfig)


class GenerationJobAccepted(BaseModel):
    job_id: int
    status: str


class GenerationJobSnapshot(BaseModel):
    """What a poller sees."""
    id: int
    course_id: int
    material_id: int
    status: str
    progress: int
    processing_stage: Optional[str] = None
    total_requested: int
    generated_count: int
    total_units: int
    failed_units: int
    error_message: Optional[str] = None
    reset_from_job_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, v):
        return getattr(v, "value", v)


class GeneratedQuestionResponse(BaseModel):
    id: int
    job_id: int
    chunk_id: str
    question_text: str
    answer_text: Optional[str] = None
    difficulty: str
    bloom_level: str
    marks: int
    topic: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaginationInfo(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class JobQuestionsResponse(BaseModel):
    job_id: int
    questions: List[GeneratedQuestionResponse]
    pagination: PaginationInfo


class PlanPreviewRequest(BaseModel):
    quota_requirement: QuotaRequirement
    chunking_config: ChunkingConfig = Field(default_factory=ChunkingConfig)


class ChunkPreview(BaseModel):
    id: str
    title: str
    tokens: int
    start_line: int
    end_line: int
    topic_keywords: List[str]


class PlanPreviewResponse(BaseModel):
    material_id: int
    total_requested: int
    chunks: List[ChunkPreview]
    quotas: List[ChunkQuota]
    units: List[WorkUnit]
