import logging
from datetime import datetime
from typing import List, Optional

from src.curation.age_rating import AgeRatingClassifier
from src.curation.analyzer import ContentAnalyzer
from src.curation.database import CurationDB
from src.curation.errors import InvalidTransitionError, ItemNotFoundError
from src.curation.models import (
    CurationConfig,
    CurationStatus,
    ExternalImage,
    ProcessingSummary,
    QueueItem,
    QualityThresholds,
    QueueStats,
    Recommendation,
)
from src.curation.quality import QualityScorer

logger = logging.getLogger(__name__)

QUALITY_STANDARDS_REASON = "Content does not meet quality standards"
DUPLICATE_REASON = "Duplicate image"

# Automatic pipeline transitions; COMPLETED is set downstream
TRANSITIONS = {
    CurationStatus.PENDING: {CurationStatus.PROCESSING},
    CurationStatus.PROCESSING: {CurationStatus.APPROVED, CurationStatus.REJECTED, CurationStatus.FAILED},
    CurationStatus.APPROVED: {CurationStatus.COMPLETED},
    CurationStatus.REJECTED: set(),
    CurationStatus.COMPLETED: set(),
    CurationStatus.FAILED: set(),
}


def sources_for(target: CurationStatus) -> List[CurationStatus]:
    """Statuses that may move to `target`."""
    return [source for source, targets in TRANSITIONS.items() if target in targets]


class CurationQueue:
    """Persistent curation queue: intake, per-item analysis and the final verdict."""

    def __init__(
        self,
        db: CurationDB,
        analyzer: ContentAnalyzer,
        age_classifier: Optional[AgeRatingClassifier] = None,
        quality_scorer: Optional[QualityScorer] = None,
        config: Optional[CurationConfig] = None,
    ):
        self.db = db
        self.analyzer = analyzer
        self.config = config or CurationConfig()
        self.age_classifier = age_classifier or AgeRatingClassifier(
            confidence_floor=self.config.ai_confidence_floor
        )
        self.quality_scorer = quality_scorer or QualityScorer(
            QualityThresholds(approve=self.config.approve_threshold, review=self.config.review_threshold)
        )

    def add_to_queue(self, image: ExternalImage) -> Optional[QueueItem]:
        """
        Add an image to the queue.

        Returns:
            The new PENDING item, the existing item for an already-known URL,
            or None if the source rating is below the intake minimum.
        """
        if image.rating is not None and image.rating < self.config.min_source_rating:
            logger.debug(
                f"Skipping low-quality image {image.url} "
                f"(rating {image.rating} < {self.config.min_source_rating})"
            )
            return None

        try:
            item, created = self.db.create_or_get(image, self.config.source_platform)
        except Exception as e:
            logger.error(f"Failed to add image to queue {image.url}: {e}")
            raise

        if created:
            logger.info(f"Image added to curation queue: {item.id} {image.url}")
        else:
            logger.debug(f"Image already in queue: {image.url}")
        return item

    def add_batch(self, images: List[ExternalImage]) -> List[QueueItem]:
        """Sequential intake; failures are logged and skipped, filtered images are counted."""
        results: List[QueueItem] = []
        skipped = 0

        for image in images:
            try:
                item = self.add_to_queue(image)
            except Exception as e:
                logger.warning(f"Failed to add image to batch (continuing): {image.url}: {e}")
                continue
            if item:
                results.append(item)
            else:
                skipped += 1

        logger.info(f"Batch add to queue completed: total={len(images)} added={len(results)} skipped={skipped}")
        return results

    def get_pending_items(self, limit: int = 50) -> List[QueueItem]:
        """Oldest first."""
        return self.db.list_by_status([CurationStatus.PENDING], order_by="created_at", limit=limit)

    async def process_pending_items(self, limit: Optional[int] = None) -> ProcessingSummary:
        """
        Analyze and classify a batch of pending items, one at a time.

        Per-item exceptions (the item is already FAILED) are counted in
        `errors`; they never abort the batch.
        """
        if limit is None:
            limit = self.config.pending_batch_size
        pending = self.get_pending_items(limit)
        logger.info(f"Processing pending curation items: {len(pending)}")

        summary = ProcessingSummary()
        for item in pending:
            summary.processed += 1
            try:
                status = await self.analyze_and_classify(item.id)
            except InvalidTransitionError as e:
                # Claimed by another worker since it was listed
                logger.warning(f"Skipping item {item.id}: {e}")
                continue
            except Exception as e:
                logger.error(f"Failed to process item {item.id}: {e}")
                summary.errors += 1
                continue

            if status == CurationStatus.APPROVED:
                summary.approved += 1
            elif status == CurationStatus.REJECTED:
                summary.rejected += 1

        logger.info(
            f"Pending items processing completed: processed={summary.processed} "
            f"approved={summary.approved} rejected={summary.rejected} errors={summary.errors}"
        )
        return summary

    async def analyze_and_classify(self, item_id: str) -> CurationStatus:
        """
        Run the full pipeline for one item and persist its verdict.

        Raises:
            ItemNotFoundError: unknown id (nothing is mutated)
            InvalidTransitionError: the item is not PENDING
            Any analysis error, after the item has been marked FAILED
        """
        item = self.db.get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)

        self.db.transition(item_id, sources_for(CurationStatus.PROCESSING), CurationStatus.PROCESSING)

        try:
            return await self._classify_claimed(item)
        except InvalidTransitionError:
            # Status changed underneath us; nothing left to fail
            raise
        except Exception as e:
            self._mark_failed(item_id, str(e) or type(e).__name__)
            raise

    async def _classify_claimed(self, item: QueueItem) -> CurationStatus:
        item_id = item.id
        analysis = await self.analyzer.analyze_image(item.source_url, check_duplicates=True)

        age_classification = self.age_classifier.validate_classification(
            analysis.age_rating,
            analysis.content_tags,
            self.config.assumed_ai_confidence,
        )
        quality = self.quality_scorer.score_quality(analysis)

        rejection_reason: Optional[str] = None
        gates = self.analyzer.rejection_reasons(analysis)
        if gates:
            final_status = CurationStatus.REJECTED
            rejection_reason = f"{QUALITY_STANDARDS_REASON}: {', '.join(gates)}"
        elif analysis.is_duplicate:
            final_status = CurationStatus.REJECTED
            rejection_reason = DUPLICATE_REASON
        elif quality.recommendation == Recommendation.REJECT:
            final_status = CurationStatus.REJECTED
            rejection_reason = "; ".join(quality.reasoning)
        elif self.analyzer.should_auto_approve(analysis):
            final_status = CurationStatus.APPROVED
        else:
            # Would need manual review; the permissive policy approves it
            final_status = CurationStatus.APPROVED

        physical = analysis.physical_characteristics
        now = datetime.now()
        self.db.transition(
            item_id,
            sources_for(final_status),
            final_status,
            age_rating=age_classification.rating,
            quality_score=quality.score,
            content_tags=analysis.content_tags,
            description=analysis.description,
            gender=(physical.gender if physical else None) or "unknown",
            species=(physical.species if physical else None) or "unknown",
            processed_at=now,
            rejected_at=now if final_status == CurationStatus.REJECTED else None,
            rejection_reason=rejection_reason,
        )

        logger.info(
            f"Item analyzed and classified: {item_id} status={final_status.value} "
            f"rating={age_classification.rating.value} quality={quality.score}"
        )
        return final_status

    def get_approved_items(self, limit: int = 20) -> List[QueueItem]:
        """Approved, not yet converted items, highest quality first."""
        return self.db.list_by_status(
            [CurationStatus.APPROVED],
            order_by="quality_score",
            descending=True,
            limit=limit,
            unconverted_only=True,
        )

    def get_stats(self) -> QueueStats:
        return QueueStats(
            pending=self.db.count_by_status(CurationStatus.PENDING),
            approved=self.db.count_by_status(CurationStatus.APPROVED),
            rejected=self.db.count_by_status(CurationStatus.REJECTED),
            processing=self.db.count_by_status(CurationStatus.PROCESSING),
            completed=self.db.count_by_status(CurationStatus.COMPLETED),
            failed=self.db.count_by_status(CurationStatus.FAILED),
        )

    def _mark_failed(self, item_id: str, reason: str) -> None:
        try:
            self.db.transition(
                item_id,
                sources_for(CurationStatus.FAILED),
                CurationStatus.FAILED,
                rejection_reason=reason,
            )
        except InvalidTransitionError as e:
            logger.warning(f"Could not mark item {item_id} as failed: {e}")
