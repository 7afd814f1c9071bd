from enum import Enum
from typing import List, Optional, Dict, Literal, NamedTuple
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator

from ..utils.vectors import now, rid

class Sector(str, Enum):
    semantic = "semantic"
    procedural = "procedural"
    episodic = "episodic"
    reflective = "reflective"
    emotional = "emotional"

class MemoryType(str, Enum):
    fact = "fact"
    preference = "preference"
    belief = "belief"
    goal = "goal"
    relationship = "relationship"
    event = "event"
    skill = "skill"
    project = "project"
    insight = "insight"
    question = "question"
    instruction = "instruction"

    @classmethod
    def parse(cls, v: Optional[str]) -> "MemoryType":
        try:
            return cls(v)
        except ValueError:
            return cls.insight

class ExtractedMemory(BaseModel):
    """A consolidated fact or insight distilled from a raw capture."""

    id: str = Field(default_factory=rid)
    created_at: int = Field(default_factory=now)
    content: str
    type: MemoryType = MemoryType.insight
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    tags: List[str] = Field(default_factory=list)
    source_memory_id: str
    source_app: str
    is_active: bool = True
    expires_at: Optional[int] = None
    related_memory_ids: List[str] = Field(default_factory=list)
    embedding: Optional[List[float]] = None
    embedding_model: Optional[str] = None
    simhash: Optional[str] = None
    sector: Sector = Sector.semantic
    salience: float = 0.5
    last_seen_at: Optional[int] = None
    decay_lambda: float = 0.02
    segment: int = 0

    @field_validator("salience")
    @classmethod
    def _clamp_salience(cls, v: float) -> float:
        return max(0.0, min(1.0, float(v)))

    @model_validator(mode="after")
    def _check_embedding(self):
        if self.embedding is not None and len(self.embedding) == 0:
            self.embedding = None
        if (self.embedding is None) != (self.embedding_model is None):
            raise ValueError("embedding and embedding_model must both be set or both be absent")
        if self.last_seen_at is None:
            self.last_seen_at = self.created_at
        return self

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    @property
    def preview(self) -> str:
        return self.content if len(self.content) <= 100 else self.content[:100] + "..."

    def is_expired(self, ts: Optional[int] = None) -> bool:
        return self.expires_at is not None and self.expires_at <= (ts if ts is not None else now())

class ExtractedMemoryData(BaseModel):
    """Candidate memory as produced by the capture pipeline."""

    content: str
    type: MemoryType = MemoryType.insight
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    tags: List[str] = Field(default_factory=list)
    expires_at: Optional[int] = None

class SourceProvenance(BaseModel):
    source_memory_id: str
    source_app: str = "unknown"

class Waypoint(BaseModel):
    source_id: str
    target_id: str
    weight: float = Field(gt=0.0, le=1.0)
    created_at: int = Field(default_factory=now)
    updated_at: int = Field(default_factory=now)

class WaypointHop(NamedTuple):
    id: str
    weight: float
    path: List[str]

class ScoringWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    similarity: float = 0.35
    overlap: float = 0.20
    waypoint: float = 0.15
    recency: float = 0.10
    tag_match: float = 0.20

class ClassificationResult(BaseModel):
    primary: Sector
    additional: List[Sector] = Field(default_factory=list)
    confidence: float = 0.2
    scores: Dict[Sector, float] = Field(default_factory=dict)

class SearchFilters(BaseModel):
    sectors: Optional[List[Sector]] = None
    min_salience: Optional[float] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    debug: bool = False

class SearchDebugInfo(BaseModel):
    similarity_adjusted: float
    token_overlap: float
    recency_score: float
    waypoint_weight: float
    tag_match: float
    sector_penalty: float
    keyword_boost: float

class HybridSearchResult(BaseModel):
    memory: ExtractedMemory
    score: float
    path: List[str]
    debug: Optional[SearchDebugInfo] = None

class MergeDecisionKind(str, Enum):
    duplicate = "duplicate"
    update = "update"
    enrich = "enrich"
    strengthen = "strengthen"
    separate = "separate"

class MergeDecision(BaseModel):
    """LLM verdict on how a candidate relates to an existing memory."""

    model_config = ConfigDict(strict=True, populate_by_name=True)

    decision: MergeDecisionKind
    reason: str
    merged_content: Optional[str] = Field(default=None, validation_alias=AliasChoices("mergedContent", "merged_content"))
    new_confidence: float = Field(ge=0.0, le=1.0, validation_alias=AliasChoices("newConfidence", "new_confidence"))

class IngestResult(BaseModel):
    action: Literal["created", "duplicate", "consolidated", "skipped"]
    memory_id: Optional[str] = None
    decision: Optional[MergeDecisionKind] = None
