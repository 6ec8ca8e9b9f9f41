"""Pydantic schemas for sessions, transcripts, insights and knowledge passages."""

import math
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from diagnosis_engine.core.stages import Stage, parse_stage

SessionStatus = Literal["active", "completed", "archived"]
TranscriptRole = Literal["user", "assistant", "system"]


# =======================
# Insight
# =======================


class DimensionInsight(BaseModel):
    """Structured extraction result for one diagnostic stage."""

    score: float = Field(..., ge=0, le=100, description="Dimension health score, 0-100")
    tags: list[str] = Field(default_factory=list, description="3-5 short tags")
    key_issues: list[str] = Field(default_factory=list, description="2-4 key issues")
    summary: str = Field(default="", description="One-sentence summary")
    recommendations: list[str] = Field(default_factory=list, description="2-3 recommendations")

    @field_validator("score", mode="before")
    @classmethod
    def _score_must_be_finite_number(cls, value: Any) -> Any:
        # bool is an int subclass and numeric strings would be coerced; reject both
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("score must be a number")
        if not math.isfinite(value):
            raise ValueError("score must be finite")
        return value


# =======================
# Session
# =======================


class Session(BaseModel):
    """One diagnostic engagement."""

    id: str
    user_id: str | None = None
    status: SessionStatus = "active"
    current_stage: str = Stage.STRATEGY.value
    data_strategy: DimensionInsight | None = None
    data_structure: DimensionInsight | None = None
    data_performance: DimensionInsight | None = None
    data_compensation: DimensionInsight | None = None
    data_talent: DimensionInsight | None = None
    total_score: float | None = None
    summary_report: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator(
        "data_strategy",
        "data_structure",
        "data_performance",
        "data_compensation",
        "data_talent",
        mode="before",
    )
    @classmethod
    def _empty_slot_is_none(cls, value: Any) -> Any:
        # New sessions store {} in every slot
        if value == {}:
            return None
        return value

    @property
    def stage(self) -> Stage | None:
        """Current stage as an enum, or None if the stored value is unrecognized."""
        return parse_stage(self.current_stage)

    def insight_for(self, stage: Stage) -> DimensionInsight | None:
        """Return the stored insight for ``stage``."""
        return {
            Stage.STRATEGY: self.data_strategy,
            Stage.STRUCTURE: self.data_structure,
            Stage.PERFORMANCE: self.data_performance,
            Stage.COMPENSATION: self.data_compensation,
            Stage.TALENT: self.data_talent,
        }[stage]


class TranscriptEntry(BaseModel):
    """One turn in a session's conversation log."""

    id: str | None = None
    session_id: str
    role: TranscriptRole
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


# =======================
# Knowledge
# =======================


class KnowledgeChunk(BaseModel):
    """A knowledge-base passage returned by similarity search."""

    id: str | None = None
    content: str
    category: str | None = None
    source: str | None = None
    chunk_index: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    similarity: float = 0.0


class KnowledgeStat(BaseModel):
    """Per-category document counts from the knowledge base."""

    category: str
    doc_count: int
    avg_chunk_count: float | None = None


# =======================
# Results
# =======================


class ExtractionResult(BaseModel):
    """Outcome of one extraction run. Failures carry the error code in ``reason``."""

    success: bool
    stage: Stage | None = None
    insight: DimensionInsight | None = None
    error: str | None = None
    reason: str | None = None


class AdvanceResult(BaseModel):
    """Outcome of a stage-advance request."""

    success: bool
    next_stage: Stage | None = None
    error: str | None = None
    reason: str | None = None
