from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field
from pydantic.alias_generators import to_camel
from datetime import datetime
from enum import Enum
from typing import Any, Optional, List


class AgeRating(str, Enum):
    L = "L"
    TEN = "TEN"
    TWELVE = "TWELVE"
    FOURTEEN = "FOURTEEN"
    SIXTEEN = "SIXTEEN"
    EIGHTEEN = "EIGHTEEN"


class ContentTag(str, Enum):
    VIOLENCE = "VIOLENCE"
    GORE = "GORE"
    SEXUAL = "SEXUAL"
    NUDITY = "NUDITY"
    LANGUAGE = "LANGUAGE"
    DRUGS = "DRUGS"
    ALCOHOL = "ALCOHOL"
    HORROR = "HORROR"
    PSYCHOLOGICAL = "PSYCHOLOGICAL"
    DISCRIMINATION = "DISCRIMINATION"
    CRIME = "CRIME"
    GAMBLING = "GAMBLING"


class CurationStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"  # Converted into a character downstream
    FAILED = "FAILED"


class Recommendation(str, Enum):
    APPROVE = "approve"
    REVIEW = "review"
    REJECT = "reject"


class CurationConfig(BaseModel):
    """Pipeline configuration."""
    duplicate_threshold: float = Field(0.85, ge=0, le=1)
    min_source_rating: float = 3.0
    auto_approve_threshold: float = 4.0
    reject_below_score: float = 2.0
    assumed_ai_confidence: float = Field(0.8, ge=0, le=1)
    ai_confidence_floor: float = Field(0.7, ge=0, le=1)
    approve_threshold: float = 4.0
    review_threshold: float = 2.5
    source_platform: str = "civitai"
    pending_batch_size: int = 20


# ====================
# Queue records
# ====================

class ExternalImage(BaseModel):
    """Source feed record (Civitai-like)."""
    url: str
    rating: Optional[float] = None
    id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    author: Optional[str] = None


class QueueItem(BaseModel):
    """Database record for an image under curation."""
    id: str
    source_url: str
    source_id: Optional[str] = None
    source_platform: str
    status: CurationStatus = CurationStatus.PENDING
    age_rating: Optional[AgeRating] = None
    quality_score: Optional[float] = None
    content_tags: List[ContentTag] = Field(default_factory=list)
    source_tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    source_rating: Optional[float] = None
    author: Optional[str] = None
    gender: Optional[str] = None
    species: Optional[str] = None
    generated_char_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: datetime


class QueueStats(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @computed_field
    @property
    def total(self) -> int:
        return (
            self.pending + self.approved + self.rejected
            + self.processing + self.completed + self.failed
        )


class ProcessingSummary(BaseModel):
    """Result of one process_pending_items run."""
    processed: int = 0
    approved: int = 0
    rejected: int = 0
    errors: int = 0


# ====================
# Duplicate detection
# ====================

class ImageSignature(BaseModel):
    """Metadata fingerprint of an image. `id` is required only once stored."""
    id: Optional[str] = None
    url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    author: Optional[str] = None
    style: Optional[str] = None
    species: Optional[str] = None
    gender: Optional[str] = None


class SimilarityResult(BaseModel):
    is_duplicate: bool
    similarity: float = Field(ge=0, le=1)
    reason: str
    match_id: Optional[str] = None


# ====================
# Vision analysis
# ====================

class _AnalysisSection(BaseModel):
    """Optional-field section of the vision output.

    Keys come from the LLM in camelCase. Unknown keys are kept so that
    `field_count` reflects everything the model returned.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    @property
    def field_count(self) -> int:
        """Number of keys actually provided (absent keys are not counted)."""
        return len(self.model_fields_set | set(self.model_extra or {}))


class PhysicalCharacteristics(_AnalysisSection):
    hair_color: Optional[str] = None
    hair_style: Optional[str] = None
    eye_color: Optional[str] = None
    skin_tone: Optional[str] = None
    height: Optional[str] = None
    build: Optional[str] = None
    age: Optional[str] = None
    gender: Optional[str] = None
    gender_confidence: Optional[str] = None
    species: Optional[str] = None
    distinctive_features: Optional[List[str]] = None


class VisualStyle(_AnalysisSection):
    art_style: Optional[str] = None
    color_palette: Optional[str] = None
    mood: Optional[str] = None


class Clothing(_AnalysisSection):
    outfit: Optional[str] = None
    style: Optional[str] = None
    accessories: Optional[List[str]] = None


class SuggestedTraits(_AnalysisSection):
    personality: Optional[List[str]] = None
    archetype: Optional[str] = None
    suggested_occupation: Optional[str] = None


class CharacterAnalysis(BaseModel):
    """Structured output of the descriptive/physical-trait analyzer."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    physical_characteristics: Optional[PhysicalCharacteristics] = None
    visual_style: Optional[VisualStyle] = None
    clothing: Optional[Clothing] = None
    suggested_traits: Optional[SuggestedTraits] = None
    overall_description: str = ""
    description: Optional[str] = None

    @classmethod
    def parse_lenient(cls, data: Any) -> "CharacterAnalysis":
        """Validate `data`, dropping fields that do not validate instead of failing.

        A section with a bad field keeps its other fields; a section that is
        not an object at all is dropped.
        """
        if isinstance(data, CharacterAnalysis):
            return data
        if not isinstance(data, dict):
            return CharacterAnalysis()
        try:
            return CharacterAnalysis.model_validate(data)
        except ValidationError:
            pass

        kept = {}
        for key, value in data.items():
            if _validates({key: value}):
                kept[key] = value
            elif isinstance(value, dict):
                section = {k: v for k, v in value.items() if _validates({key: {k: v}})}
                if section:
                    kept[key] = section
        return CharacterAnalysis.model_validate(kept)


def _validates(data: dict) -> bool:
    try:
        CharacterAnalysis.model_validate(data)
    except ValidationError:
        return False
    return True


class ImageClassification(BaseModel):
    """Structured output of the safety/age classifier."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    age_rating: AgeRating
    content_tags: List[ContentTag] = Field(default_factory=list)
    description: str = ""


class ContentAnalysisResult(CharacterAnalysis):
    """Combined per-item analysis. Not persisted."""
    age_rating: AgeRating
    content_tags: List[ContentTag] = Field(default_factory=list)
    quality_score: float = Field(ge=0, le=5)
    is_nsfw: bool = False
    is_duplicate: bool = False
    duplicate_match_id: Optional[str] = None
    analyzed_at: datetime = Field(default_factory=datetime.now)


# ====================
# Scoring
# ====================

class QualityThresholds(BaseModel):
    """Recommendation cutoffs on the 0-5 quality score."""
    model_config = ConfigDict(frozen=True)

    approve: float = 4.0
    review: float = 2.5


class QualityFactors(BaseModel):
    composition: float = Field(ge=0, le=1)
    clarity: float = Field(ge=0, le=1)
    creativity: float = Field(ge=0, le=1)
    technical: float = Field(ge=0, le=1)


class QualityScoreResult(BaseModel):
    score: float = Field(ge=0, le=5)
    confidence: float = Field(ge=0, le=1)
    factors: QualityFactors
    reasoning: List[str] = Field(default_factory=list)
    recommendation: Recommendation


class AgeRatingClassification(BaseModel):
    rating: AgeRating
    confidence: float = Field(ge=0, le=1)
    reasoning: List[str] = Field(default_factory=list)
    suggested_tags: List[ContentTag] = Field(default_factory=list)
