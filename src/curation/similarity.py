import logging
from typing import Dict, Iterable, List, Optional

from src.curation.models import ImageSignature, SimilarityResult

logger = logging.getLogger(__name__)

# Attribute weights: (weight, credit on exact match)
URL_WEIGHT = 2.0
TAG_WEIGHT = 3.0
AUTHOR_WEIGHT, AUTHOR_CREDIT = 1.0, 0.5
STYLE_WEIGHT, STYLE_CREDIT = 1.0, 1.0
SPECIES_WEIGHT, SPECIES_CREDIT = 1.0, 0.5
GENDER_WEIGHT, GENDER_CREDIT = 1.0, 0.5


def tag_overlap(tags1: Iterable[str], tags2: Iterable[str]) -> float:
    """Case-insensitive Jaccard similarity of two tag collections."""
    set1 = {str(getattr(t, "value", t)).lower() for t in tags1}
    set2 = {str(getattr(t, "value", t)).lower() for t in tags2}
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)


def calculate_similarity(sig1: ImageSignature, sig2: ImageSignature) -> float:
    """
    Weighted partial-match similarity in [0, 1].

    Only attributes present on both sides enter the denominator. Author,
    species and gender matches earn half their weight so weak metadata
    alone never crosses the duplicate threshold.
    """
    score = 0.0
    factors = 0.0

    if sig1.url and sig2.url:
        factors += URL_WEIGHT
        if sig1.url == sig2.url:
            score += URL_WEIGHT

    if sig1.tags and sig2.tags:
        factors += TAG_WEIGHT
        score += tag_overlap(sig1.tags, sig2.tags) * TAG_WEIGHT

    for attr, weight, credit in (
        ("author", AUTHOR_WEIGHT, AUTHOR_CREDIT),
        ("style", STYLE_WEIGHT, STYLE_CREDIT),
        ("species", SPECIES_WEIGHT, SPECIES_CREDIT),
        ("gender", GENDER_WEIGHT, GENDER_CREDIT),
    ):
        value1 = getattr(sig1, attr)
        value2 = getattr(sig2, attr)
        if value1 and value2:
            factors += weight
            if value1 == value2:
                score += credit

    return score / factors if factors > 0 else 0.0


class SimilarityEngine:
    """In-memory signature store used for duplicate detection."""

    def __init__(self, threshold: float = 0.85):
        self.threshold = threshold
        self._signatures: Dict[str, ImageSignature] = {}

    def add_signature(self, signature: ImageSignature) -> None:
        """Insert or overwrite a signature keyed by its id."""
        if not signature.id:
            raise ValueError("Signature id is required")
        self._signatures[signature.id] = signature
        logger.debug(f"Image signature added: {signature.id}")

    def add_signatures(self, signatures: Iterable[ImageSignature]) -> None:
        count = 0
        for sig in signatures:
            self.add_signature(sig)
            count += 1
        logger.info(f"Batch signatures added: {count}")

    def check_duplicate(self, signature: ImageSignature) -> SimilarityResult:
        """Compare against every stored signature, stopping at the first match over threshold."""
        max_similarity = 0.0
        match_id: Optional[str] = None
        reason = "No similar images found"

        for stored_id, stored in self._signatures.items():
            similarity = calculate_similarity(signature, stored)

            if similarity > max_similarity:
                max_similarity = similarity
                match_id = stored_id

            if similarity >= self.threshold:
                reason = f"Found {round(similarity * 100)}% similar image"
                break

        is_duplicate = max_similarity >= self.threshold
        if is_duplicate:
            logger.info(f"Duplicate image detected: match={match_id} similarity={max_similarity:.2f}")

        return SimilarityResult(
            is_duplicate=is_duplicate,
            similarity=min(1.0, max_similarity),
            reason=reason,
            match_id=match_id,
        )

    def check_batch(self, signatures: List[ImageSignature]) -> Dict[str, SimilarityResult]:
        """
        Check a batch against the store, then against itself.

        Non-duplicates are added to the store as they are checked, so the
        result depends on batch order. The intra-batch pass marks the later
        of any similar pair as a duplicate of the earlier one.
        """
        results: Dict[str, SimilarityResult] = {}

        for sig in signatures:
            if not sig.id:
                continue
            result = self.check_duplicate(sig)
            results[sig.id] = result
            if not result.is_duplicate:
                self.add_signature(sig)

        for i in range(len(signatures)):
            for j in range(i + 1, len(signatures)):
                sig1 = signatures[i]
                sig2 = signatures[j]
                if not (sig1.id and sig2.id):
                    continue
                similarity = calculate_similarity(sig1, sig2)
                if similarity >= self.threshold:
                    results[sig2.id] = SimilarityResult(
                        is_duplicate=True,
                        similarity=min(1.0, similarity),
                        reason=f"Duplicate of {sig1.id} within batch",
                        match_id=sig1.id,
                    )

        duplicates = sum(1 for r in results.values() if r.is_duplicate)
        logger.info(f"Batch duplicate check completed: total={len(signatures)} duplicates={duplicates}")
        return results

    def clear_signatures(self) -> None:
        self._signatures.clear()
        logger.info("All signatures cleared")

    def get_count(self) -> int:
        return len(self._signatures)

    def remove_signature(self, signature_id: str) -> bool:
        """Returns True if a signature was removed."""
        return self._signatures.pop(signature_id, None) is not None
