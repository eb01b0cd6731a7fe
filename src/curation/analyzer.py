import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from src.curation.database import CurationDB
from src.curation.models import (
    CharacterAnalysis,
    ContentAnalysisResult,
    ContentTag,
    CurationConfig,
    CurationStatus,
    ImageClassification,
    ImageSignature,
    QueueItem,
)
from src.curation.quality import has_failure_marker
from src.curation.similarity import SimilarityEngine
from src.curation.vision import BaseCharacterAnalyzer, BaseImageClassifier

logger = logging.getLogger(__name__)

NSFW_TAGS = {ContentTag.NUDITY, ContentTag.SEXUAL, ContentTag.GORE}
PENALTY_TAGS = {ContentTag.GORE}
EXPLICIT_KEYWORDS = (
    "sexual intercourse",
    "genitalia",
    "explicit sexual act",
    "hardcore pornography",
)
# Already-accepted items form the duplicate corpus
CORPUS_STATUSES = (CurationStatus.APPROVED, CurationStatus.COMPLETED)


def has_explicit_content(result: CharacterAnalysis) -> bool:
    """Literal explicit-keyword match on the overall description; soft NSFW passes."""
    description = (result.overall_description or "").lower()
    return any(keyword in description for keyword in EXPLICIT_KEYWORDS)


def signature_from_item(item: QueueItem) -> ImageSignature:
    return ImageSignature(
        id=item.id,
        url=item.source_url,
        tags=[t.value for t in item.content_tags],
        author=item.author,
        species=item.species,
        gender=item.gender,
    )


class ContentAnalyzer:
    """Runs the vision collaborators for one image and derives the triage verdicts."""

    def __init__(
        self,
        classifier: BaseImageClassifier,
        character_analyzer: BaseCharacterAnalyzer,
        db: Optional[CurationDB] = None,
        config: Optional[CurationConfig] = None,
        engine_factory: Optional[Callable[[], SimilarityEngine]] = None,
    ):
        self.classifier = classifier
        self.character_analyzer = character_analyzer
        self.db = db
        self.config = config or CurationConfig()
        self.engine_factory = engine_factory or (
            lambda: SimilarityEngine(threshold=self.config.duplicate_threshold)
        )

    async def analyze_image(
        self,
        image_url: str,
        check_duplicates: bool = False,
        existing_images: Optional[Iterable[str]] = None,
    ) -> ContentAnalysisResult:
        """
        Analyze an image for curation.

        Args:
            image_url: Public URL of the image
            check_duplicates: Compare against the accepted corpus
            existing_images: Extra URLs to treat as already accepted

        Raises:
            Whatever the collaborators raise; nothing is swallowed here.
        """
        logger.info(f"Starting content analysis: {image_url}")
        tasks = [
            asyncio.create_task(self.classifier.classify(image_url)),
            asyncio.create_task(self.character_analyzer.analyze(image_url)),
        ]
        try:
            classification, character = await asyncio.gather(*tasks)
        except Exception as e:
            logger.error(f"Content analysis failed for {image_url}: {e}")
            # Cancel and collect the sibling call so its outcome is not left unretrieved
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        result = ContentAnalysisResult(
            age_rating=classification.age_rating,
            content_tags=classification.content_tags,
            description=classification.description,
            physical_characteristics=character.physical_characteristics,
            visual_style=character.visual_style,
            clothing=character.clothing,
            suggested_traits=character.suggested_traits,
            overall_description=character.overall_description,
            quality_score=self._calculate_quality_score(classification, character),
            is_nsfw=self._is_nsfw(classification),
            analyzed_at=datetime.now(),
        )

        if check_duplicates:
            match = self._check_duplicate(image_url, result, existing_images or [])
            result.is_duplicate = match.is_duplicate
            result.duplicate_match_id = match.match_id if match.is_duplicate else None

        logger.info(
            f"Content analysis completed: {image_url} rating={result.age_rating.value} "
            f"quality={result.quality_score} nsfw={result.is_nsfw} duplicate={result.is_duplicate}"
        )
        return result

    async def analyze_batch(
        self,
        image_urls: List[str],
        check_duplicates: bool = False,
    ) -> Dict[str, ContentAnalysisResult]:
        """Sequential analysis; failed URLs are logged and left out of the result."""
        results: Dict[str, ContentAnalysisResult] = {}
        for url in image_urls:
            try:
                results[url] = await self.analyze_image(url, check_duplicates=check_duplicates)
            except Exception as e:
                logger.warning(f"Failed to analyze image in batch (continuing): {url}: {e}")

        logger.info(f"Batch analysis completed: total={len(image_urls)} successful={len(results)}")
        return results

    def should_auto_approve(self, result: ContentAnalysisResult, threshold: Optional[float] = None) -> bool:
        if threshold is None:
            threshold = self.config.auto_approve_threshold
        return (
            result.quality_score >= threshold
            and not result.is_duplicate
            and not has_explicit_content(result)
        )

    def rejection_reasons(self, result: ContentAnalysisResult) -> List[str]:
        """Which reject gates fire for `result` (empty if none)."""
        reasons = []
        if result.is_duplicate:
            reasons.append("duplicate image")
        if result.quality_score < self.config.reject_below_score:
            reasons.append(f"triage quality {result.quality_score} below {self.config.reject_below_score}")
        if has_failure_marker(result.overall_description):
            reasons.append("image analysis failed")
        if has_explicit_content(result):
            reasons.append("explicit content")
        return reasons

    def should_reject(self, result: ContentAnalysisResult) -> bool:
        return bool(self.rejection_reasons(result))

    def _check_duplicate(self, image_url: str, result: ContentAnalysisResult, existing_images: Iterable[str]):
        # Rebuilt per call from the persisted corpus; not shared between calls
        engine = self.engine_factory()
        if self.db is not None:
            corpus = self.db.list_by_status(CORPUS_STATUSES)
            engine.add_signatures(signature_from_item(item) for item in corpus)
        engine.add_signatures(
            ImageSignature(id=f"existing:{url}", url=url) for url in existing_images
        )

        physical = result.physical_characteristics
        candidate = ImageSignature(
            url=image_url,
            tags=[t.value for t in result.content_tags],
            style=result.visual_style.art_style if result.visual_style else None,
            species=physical.species if physical else None,
            gender=physical.gender if physical else None,
        )
        return engine.check_duplicate(candidate)

    def _calculate_quality_score(self, classification: ImageClassification, character: CharacterAnalysis) -> float:
        """Fast triage score (0-5), separate from QualityScorer."""
        score = 3.0

        if any(tag in PENALTY_TAGS for tag in classification.content_tags):
            score -= 1.0

        if character.overall_description and len(character.overall_description) > 50:
            score += 0.5
        if character.physical_characteristics and character.physical_characteristics.field_count > 3:
            score += 0.5
        if character.visual_style and character.visual_style.art_style:
            score += 0.5
        if character.clothing and character.clothing.outfit:
            score += 0.5

        return max(0.0, min(5.0, score))

    def _is_nsfw(self, classification: ImageClassification) -> bool:
        return any(tag in NSFW_TAGS for tag in classification.content_tags)
