import logging
from typing import Dict, Iterable, List

from src.curation.models import AgeRating, AgeRatingClassification, ContentTag

logger = logging.getLogger(__name__)

TAG_SEVERITY: Dict[ContentTag, int] = {
    # Severe (18+)
    ContentTag.NUDITY: 5,
    ContentTag.SEXUAL: 5,
    # High (16+)
    ContentTag.VIOLENCE: 4,
    ContentTag.GORE: 4,
    ContentTag.DISCRIMINATION: 4,
    # Medium (14+)
    ContentTag.DRUGS: 3,
    # Low (12+)
    ContentTag.LANGUAGE: 2,
    ContentTag.ALCOHOL: 2,
    ContentTag.HORROR: 2,
    ContentTag.PSYCHOLOGICAL: 2,
    ContentTag.CRIME: 2,
    ContentTag.GAMBLING: 2,
}

# Checked top-down: (min severity, rating, confidence)
SEVERITY_RATINGS = [
    (5, AgeRating.EIGHTEEN, 0.95),
    (4, AgeRating.SIXTEEN, 0.90),
    (3, AgeRating.FOURTEEN, 0.85),
    (2, AgeRating.TWELVE, 0.80),
]

TAG_REASONS: Dict[ContentTag, str] = {
    ContentTag.NUDITY: "Contains nudity or sexual content (18+)",
    ContentTag.SEXUAL: "Contains nudity or sexual content (18+)",
    ContentTag.VIOLENCE: "Contains violence or gore (16-18+)",
    ContentTag.GORE: "Contains violence or gore (16-18+)",
    ContentTag.LANGUAGE: "Contains strong language (16+)",
    ContentTag.ALCOHOL: "Contains substance use (14-16+)",
    ContentTag.DRUGS: "Contains substance use (14-16+)",
    ContentTag.HORROR: "Contains horror or psychological themes (12-14+)",
    ContentTag.PSYCHOLOGICAL: "Contains horror or psychological themes (12-14+)",
    ContentTag.CRIME: "Contains mature themes (14-16+)",
    ContentTag.DISCRIMINATION: "Contains mature themes (14-16+)",
}

MINIMUM_AGE: Dict[AgeRating, int] = {
    AgeRating.L: 0,
    AgeRating.TEN: 10,
    AgeRating.TWELVE: 12,
    AgeRating.FOURTEEN: 14,
    AgeRating.SIXTEEN: 16,
    AgeRating.EIGHTEEN: 18,
}

RATING_COLORS: Dict[AgeRating, str] = {
    AgeRating.L: "green",
    AgeRating.TEN: "blue",
    AgeRating.TWELVE: "yellow",
    AgeRating.FOURTEEN: "dark_orange",
    AgeRating.SIXTEEN: "red",
    AgeRating.EIGHTEEN: "dark_red",
}


def get_rating_color(rating: AgeRating) -> str:
    """Display color for a rating (a rich color name)."""
    return RATING_COLORS.get(rating, "grey50")


def _to_tags(tags: Iterable) -> List:
    """Coerce strings to ContentTag where possible; unknown values are kept as-is."""
    result = []
    for tag in tags:
        try:
            result.append(ContentTag(tag))
        except ValueError:
            result.append(tag)
    return result


class AgeRatingClassifier:
    """Rule-based age rating from content tags, used to validate upstream ratings."""

    def __init__(self, confidence_floor: float = 0.7):
        self.confidence_floor = confidence_floor

    def classify_from_tags(self, content_tags: Iterable) -> AgeRatingClassification:
        tags = _to_tags(content_tags)
        reasoning: List[str] = []
        suggested_tags: List[ContentTag] = []
        max_severity = 0

        for tag in tags:
            max_severity = max(max_severity, TAG_SEVERITY.get(tag, 0))
            if isinstance(tag, ContentTag):
                suggested_tags.append(tag)
            if tag in TAG_REASONS:
                reasoning.append(TAG_REASONS[tag])

        rating, confidence = AgeRating.TEN, 0.70
        for min_severity, candidate, candidate_confidence in SEVERITY_RATINGS:
            if max_severity >= min_severity:
                rating, confidence = candidate, candidate_confidence
                break

        if not tags:
            rating, confidence = AgeRating.L, 0.5
            reasoning.append("No content tags detected - defaulting to L")

        logger.debug(f"Age rating classified from tags {tags}: {rating.value} ({confidence})")

        return AgeRatingClassification(
            rating=rating,
            confidence=confidence,
            reasoning=reasoning,
            suggested_tags=suggested_tags,
        )

    def validate_classification(
        self,
        ai_rating: AgeRating,
        content_tags: Iterable,
        confidence: float,
    ) -> AgeRatingClassification:
        """
        Reconcile an upstream (AI) rating with the tag rules.

        Low-confidence ratings are replaced by the rule-based one. A minimum
        (L) rating is overridden when the tags imply something stricter.
        Any other rating is trusted as-is.
        """
        ai_rating = AgeRating(ai_rating)
        tags = _to_tags(content_tags)

        if confidence < self.confidence_floor:
            logger.info(
                f"AI confidence low ({confidence}) for {ai_rating.value}, using rule-based classification"
            )
            return self.classify_from_tags(tags)

        if ai_rating == AgeRating.L:
            classification = self.classify_from_tags(tags)
            if classification.rating != AgeRating.L:
                logger.info(
                    f"Overriding AI classification {ai_rating.value} -> "
                    f"{classification.rating.value} due to content tags"
                )
                return classification

        return AgeRatingClassification(
            rating=ai_rating,
            confidence=confidence,
            reasoning=[f"AI classified as {ai_rating.value} with {round(confidence * 100)}% confidence"],
            suggested_tags=[t for t in tags if isinstance(t, ContentTag)],
        )

    def get_minimum_age(self, rating: AgeRating) -> int:
        return MINIMUM_AGE.get(rating, 0)

    def is_appropriate_for_age(self, rating: AgeRating, age: int) -> bool:
        return age >= self.get_minimum_age(rating)

    def get_rating_color(self, rating: AgeRating) -> str:
        return get_rating_color(rating)
