"""Creative Council schemas: brand profile, personas, judgments, run state.

Payload models mirror what the reasoning service returns (camelCase keys on
the wire, snake_case attributes in Python). Descriptions are part of the
JSON schema sent to the model, so keep them short and concrete.

Stable keys:
  BrandProfile.name, Persona.id, Judgment.persona_id, PipelineState.stage
"""

from __future__ import annotations

import mimetypes
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for payloads exchanged with the reasoning service."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Stage 1: Research
# ---------------------------------------------------------------------------

class BrandProfile(_WireModel):
    name: str = Field(..., min_length=1, description="Brand name")
    category: str = Field(..., description="Main industry or category")
    tone: list[str] = Field(..., description="Brand voice adjectives, e.g. Playful, Premium")
    target_audience: str = Field(
        ..., description="Primary target audience (demographics and psychographics)"
    )
    brand_colors: list[str] = Field(
        default_factory=list, description="Primary brand colors (hex or descriptive)"
    )
    competitors: list[str] = Field(default_factory=list, description="Key competitors")
    unique_selling_propositions: list[str] = Field(
        default_factory=list, description="What makes the brand different"
    )


# ---------------------------------------------------------------------------
# Stage 2: Recruit
# ---------------------------------------------------------------------------

class Persona(_WireModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1, description="Unique id, stable for the run")
    name: str = Field(..., description="Culturally authentic name from the market")
    age: int = Field(..., ge=0, le=120)
    occupation: str
    bio: str = Field(..., description="2-3 sentence lived snapshot")
    pain_points: list[str] = Field(
        ..., description="Emotional and sensory frustrations or triggers"
    )

    # Optional identity fields, forwarded to the synthesis stage when present
    gender: Optional[str] = None
    location: Optional[str] = None
    household: Optional[str] = None
    media_habits: Optional[str] = None
    emotional_drivers: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Stage 3: Judge
# ---------------------------------------------------------------------------

class TimecodedReaction(_WireModel):
    time: str = Field(..., description="Timestamp like 00:03")
    reaction: str


class BehavioralIntent(_WireModel):
    click: Optional[float] = Field(None, ge=0, le=100)
    save: Optional[float] = Field(None, ge=0, le=100)
    comment: Optional[float] = Field(None, ge=0, le=100)
    engage_react: Optional[float] = Field(None, ge=0, le=100)


class JudgmentPayload(_WireModel):
    """One persona's reaction, as returned by the reasoning service."""

    score: float = Field(..., ge=0, le=100, description="Overall likeability 0-100")
    quote: str = Field(..., description="One-sentence first-person reaction")
    pros: list[str] = Field(..., description="Highlights that felt true or nice")
    cons: list[str] = Field(..., description="Things that felt off, fake, or annoying")
    verdict: str = Field(..., description="One short sentence on the overall feeling")
    emotional_tags: Optional[list[str]] = Field(None, description="Emotion words it evokes")
    emotional_intensity: Optional[float] = Field(None, ge=0, le=10)
    share_likelihood: Optional[float] = Field(None, ge=0, le=100)
    trust_perception: Optional[str] = Field(
        None, description="Short phrase: premium / trustworthy / cheap / authentic / fake"
    )
    timecoded_reactions: Optional[list[TimecodedReaction]] = Field(
        None, description="Video only: moment-by-moment reactions"
    )
    why_it_landed: Optional[str] = None
    first_impression_seconds: Optional[float] = Field(None, ge=0)
    share_with: Optional[str] = None
    language_cues: Optional[list[str]] = None
    behavioral_intent: Optional[BehavioralIntent] = None


class Judgment(JudgmentPayload):
    """A validated reaction pinned to the persona that produced it."""

    persona_id: str


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

class Asset(BaseModel):
    """A creative asset supplied by the caller. The pipeline only reads it."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:7])
    raw_bytes: bytes = Field(..., repr=False)
    mime_type: str

    @classmethod
    def from_path(cls, path: Path, asset_id: str | None = None) -> "Asset":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Asset not found: {path}")
        mime_type, _ = mimetypes.guess_type(path.name)
        kwargs: dict[str, Any] = {
            "raw_bytes": path.read_bytes(),
            "mime_type": mime_type or "application/octet-stream",
        }
        if asset_id:
            kwargs["id"] = asset_id
        return cls(**kwargs)

    @property
    def size(self) -> int:
        return len(self.raw_bytes)

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video")


class RunInputs(BaseModel):
    """Everything a caller supplies to start a council run."""

    target_url: str
    market: str
    persona_count: int
    assets: list[Asset]


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

SCORE_BUCKETS = ("0-20", "21-40", "41-60", "61-80", "81-100")


class TagCount(BaseModel):
    label: str
    count: int


class CouncilMetrics(BaseModel):
    """Summary statistics over a completed set of judgments."""

    count: int = 0
    average_score: int = 0
    median_score: float = 0.0
    score_stdev: float = 0.0
    score_distribution: dict[str, int] = Field(
        default_factory=lambda: {bucket: 0 for bucket in SCORE_BUCKETS}
    )
    average_intensity: float = 0.0
    average_share_likelihood: int = 0
    consensus_index: int = Field(0, description="% of personas within +/-10 of the mean")
    polarization_index: int = Field(0, description="% of personas scoring 0-20 or 81-100")
    top_emotions: list[TagCount] = Field(default_factory=list)
    trust_breakdown: list[TagCount] = Field(default_factory=list)
    top_pros: list[TagCount] = Field(default_factory=list)
    top_cons: list[TagCount] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "CouncilMetrics":
        return cls()

    @property
    def has_data(self) -> bool:
        return self.count > 0


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------

class Stage(str, Enum):
    IDLE = "idle"
    RESEARCHING = "researching"
    RECRUITING_PERSONAS = "recruiting_personas"
    JUDGING = "judging"
    SYNTHESIZING = "synthesizing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_running(self) -> bool:
        return self in _RUNNING_STAGES

    @property
    def can_start(self) -> bool:
        return self in (Stage.IDLE, Stage.COMPLETE, Stage.FAILED)


_RUNNING_STAGES = frozenset({
    Stage.RESEARCHING,
    Stage.RECRUITING_PERSONAS,
    Stage.JUDGING,
    Stage.SYNTHESIZING,
})


class PipelineState(BaseModel):
    stage: Stage = Stage.IDLE
    progress_percent: float = Field(0.0, ge=0, le=100)
    log_entries: list[str] = Field(default_factory=list)
    brand_profile: Optional[BrandProfile] = None
    personas: list[Persona] = Field(default_factory=list)
    judgments: list[Judgment] = Field(default_factory=list)
    metrics: Optional[CouncilMetrics] = None
    final_report_text: str = ""
    errors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response schemas handed to the reasoning service
# ---------------------------------------------------------------------------

def response_schema(model: type[BaseModel], *, many: bool = False) -> dict[str, Any]:
    """JSON schema (camelCase keys) for a payload model, or an array of it."""
    schema = model.model_json_schema(by_alias=True)
    if not many:
        return schema
    defs = schema.pop("$defs", None)
    wrapped: dict[str, Any] = {
        "title": f"{model.__name__}List",
        "type": "array",
        "items": schema,
    }
    if defs:
        wrapped["$defs"] = defs
    return wrapped
