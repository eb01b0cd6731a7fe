import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from src.curation.models import (
    CharacterAnalysis,
    QualityFactors,
    QualityScoreResult,
    QualityThresholds,
    Recommendation,
)

logger = logging.getLogger(__name__)

FACTOR_WEIGHTS = {
    "composition": 0.3,
    "clarity": 0.3,
    "creativity": 0.2,
    "technical": 0.2,
}

FAILURE_MARKERS = ("Unable to analyze", "Error")
INTERESTING_SPECIES = ("elf", "demon", "android", "robot", "alien", "dragon")
MAX_CONFIDENCE_DATA_POINTS = 10

FACTOR_REASONS = [
    ("composition", "Good visual composition"),
    ("clarity", "Clear character description"),
    ("creativity", "Creative character design"),
    ("technical", "Complete technical details"),
]

AnalysisInput = Union[CharacterAnalysis, Dict[str, Any]]


def has_failure_marker(text: Optional[str]) -> bool:
    return bool(text) and any(marker in text for marker in FAILURE_MARKERS)


def count_data_points(raw: Dict[str, Any]) -> int:
    """Mapping/list sections count their entries, non-empty strings count once."""
    count = 0
    for section in raw.values():
        if isinstance(section, (dict, list, tuple, set)):
            count += len(section)
        elif isinstance(section, str) and section:
            count += 1
    return count


def _raw_sections(analysis: Any) -> Dict[str, Any]:
    if isinstance(analysis, BaseModel):
        return analysis.model_dump(exclude_unset=True, by_alias=True)
    if isinstance(analysis, dict):
        return analysis
    return {}


class QualityScorer:
    """Scores how usable an analyzed image is as character material (0-5)."""

    def __init__(self, thresholds: Optional[QualityThresholds] = None):
        self._thresholds = thresholds or QualityThresholds()

    def get_thresholds(self) -> QualityThresholds:
        return self._thresholds

    def set_thresholds(self, approve: Optional[float] = None, review: Optional[float] = None) -> QualityThresholds:
        """Swap in a new immutable thresholds value; unspecified cutoffs are kept."""
        updates = {}
        if approve is not None:
            updates["approve"] = approve
        if review is not None:
            updates["review"] = review
        self._thresholds = self._thresholds.model_copy(update=updates)
        logger.info(f"Quality thresholds updated: {self._thresholds}")
        return self._thresholds

    def score_quality(
        self,
        analysis: AnalysisInput,
        thresholds: Optional[QualityThresholds] = None,
    ) -> QualityScoreResult:
        """
        Score image quality from its structured analysis.

        Args:
            analysis: ContentAnalysisResult, CharacterAnalysis or a raw dict
                (malformed sections are ignored)
            thresholds: Per-call override of the recommendation cutoffs

        Returns:
            QualityScoreResult with a 0-5 score and a recommendation
        """
        thresholds = thresholds or self._thresholds
        parsed = CharacterAnalysis.parse_lenient(analysis)

        factors = QualityFactors(
            composition=self._assess_composition(parsed),
            clarity=self._assess_clarity(parsed),
            creativity=self._assess_creativity(parsed),
            technical=self._assess_technical(parsed),
        )

        weighted = sum(getattr(factors, name) * weight for name, weight in FACTOR_WEIGHTS.items())
        # Thresholds compare against the reported (rounded) score
        score = round(max(0.0, min(5.0, weighted * 5)), 2)

        data_points = count_data_points(_raw_sections(analysis))
        confidence = min(1.0, data_points / MAX_CONFIDENCE_DATA_POINTS)

        if score >= thresholds.approve:
            recommendation = Recommendation.APPROVE
        elif score >= thresholds.review:
            recommendation = Recommendation.REVIEW
        else:
            recommendation = Recommendation.REJECT

        logger.debug(
            f"Quality score calculated: score={score:.2f} confidence={confidence:.2f} "
            f"recommendation={recommendation.value}"
        )

        return QualityScoreResult(
            score=score,
            confidence=round(confidence, 2),
            factors=factors,
            reasoning=self._generate_reasoning(factors, score, data_points),
            recommendation=recommendation,
        )

    def _assess_composition(self, analysis: CharacterAnalysis) -> float:
        score = 0.5
        style = analysis.visual_style
        if style is not None:
            if style.art_style:
                score += 0.2
            if style.mood:
                score += 0.1
            if style.color_palette:
                score += 0.1
        return min(1.0, score)

    def _assess_clarity(self, analysis: CharacterAnalysis) -> float:
        score = 0.3
        desc = analysis.overall_description or analysis.description or ""
        if len(desc) > 100:
            score += 0.3
        elif len(desc) > 50:
            score += 0.2

        # Failed analysis overrides the length bonus
        if has_failure_marker(desc):
            score = 0.1

        if analysis.physical_characteristics is not None:
            score += min(0.3, analysis.physical_characteristics.field_count * 0.05)

        return min(1.0, score)

    def _assess_creativity(self, analysis: CharacterAnalysis) -> float:
        score = 0.4
        physical = analysis.physical_characteristics
        if physical is not None:
            if physical.distinctive_features:
                score += 0.2
            species = (physical.species or "").lower()
            if species and any(s in species for s in INTERESTING_SPECIES):
                score += 0.2

        if analysis.clothing is not None and analysis.clothing.accessories:
            score += 0.1

        return min(1.0, score)

    def _assess_technical(self, analysis: CharacterAnalysis) -> float:
        score = 0.5
        if analysis.clothing is not None:
            if analysis.clothing.outfit:
                score += 0.2
            if analysis.clothing.style:
                score += 0.1
        if analysis.suggested_traits is not None:
            if analysis.suggested_traits.suggested_occupation:
                score += 0.1
            if analysis.suggested_traits.archetype:
                score += 0.1
        return min(1.0, score)

    def _generate_reasoning(self, factors: QualityFactors, score: float, data_points: int) -> List[str]:
        reasoning = []

        if score >= 4.0:
            reasoning.append("High quality image with detailed analysis")
        elif score >= 3.0:
            reasoning.append("Good quality with acceptable detail level")
        elif score >= 2.0:
            reasoning.append("Moderate quality, some details missing")
        else:
            reasoning.append("Low quality or incomplete analysis")

        for name, line in FACTOR_REASONS:
            if getattr(factors, name) >= 0.7:
                reasoning.append(line)

        reasoning.append(f"{data_points} data points extracted from image")
        return reasoning
