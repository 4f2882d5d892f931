import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from sms_ledger.domain.enums import CategorizationReason
from sms_ledger.domain.models import Category, CategorizationResult, MerchantInfo
from sms_ledger.domain.normalization import jaccard_similarity, normalize_merchant_name, tokenize
from sms_ledger.repositories.base import CategorizationRepository

logger = logging.getLogger(__name__)


class MerchantCategorizer:
    """
    History- and similarity-based categorization by merchant name.

    Exact history is looked up by normalized name. Similarity inference
    borrows the category of a known merchant sharing a token with the new
    one, with confidence scaled by token overlap, so it is always weaker
    evidence than the similar merchant's own record.
    """

    MIN_CONFIDENCE = 0.6
    NEW_MERCHANT_CONFIDENCE = 0.9
    MIN_TRANSACTION_COUNT = 2
    MIN_SIMILARITY_CONFIDENCE = 0.6
    SUGGESTION_DISCOUNT = 0.8
    SIMILAR_SEARCH_LIMIT = 10

    def __init__(
        self,
        repository: CategorizationRepository,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self._clock = clock

    def lookup_history(
        self,
        merchant: str,
        categories: Iterable[Category],
    ) -> Optional[CategorizationResult]:
        """Exact merchant-history hit with confidence at least MIN_CONFIDENCE"""
        info = self.get_merchant_info(merchant)
        if info is None or info.category_id is None or info.confidence < self.MIN_CONFIDENCE:
            return None

        category = _by_id(categories).get(info.category_id)
        if category is None:
            return None

        return CategorizationResult(
            category=category,
            confidence=info.confidence,
            reason=CategorizationReason.MERCHANT_HISTORY,
            source_merchant=info.name,
        )

    def infer_from_similar(
        self,
        merchant: str,
        categories: Iterable[Category],
    ) -> Optional[CategorizationResult]:
        """
        Borrow the category of the best related merchant.

        Candidates need a category, confidence >= MIN_CONFIDENCE and at
        least MIN_TRANSACTION_COUNT transactions. The best one (by
        confidence x transaction count) lends its category with
        confidence x token similarity, kept only when that reaches
        MIN_SIMILARITY_CONFIDENCE.
        """
        available = _by_id(categories)
        candidates = [
            m for m in self.find_similar_merchants(merchant)
            if m.category_id in available
            and m.confidence >= self.MIN_CONFIDENCE
            and m.transaction_count >= self.MIN_TRANSACTION_COUNT
        ]
        if not candidates:
            return None

        best = max(candidates, key=lambda m: m.confidence * m.transaction_count)
        confidence = best.confidence * jaccard_similarity(merchant, best.normalized_name)
        if confidence < self.MIN_SIMILARITY_CONFIDENCE:
            return None

        logger.debug("Inferred %s for %r from %r", available[best.category_id].name, merchant, best.name)
        return CategorizationResult(
            category=available[best.category_id],
            confidence=confidence,
            reason=CategorizationReason.SIMILARITY_INFERENCE,
            source_merchant=best.name,
        )

    def similar_candidates(
        self,
        merchant: str,
        categories: Iterable[Category],
        limit: int = 3,
    ) -> List[CategorizationResult]:
        """Categories of the first few related merchants, discounted for suggestions"""
        available = _by_id(categories)
        results = []
        for info in self.find_similar_merchants(merchant)[:limit]:
            category = available.get(info.category_id)
            if category is None or info.confidence < self.MIN_CONFIDENCE:
                continue
            results.append(CategorizationResult(
                category=category,
                confidence=info.confidence * self.SUGGESTION_DISCOUNT,
                reason=CategorizationReason.SIMILARITY_INFERENCE,
                source_merchant=info.name,
            ))
        return results

    def find_similar_merchants(self, merchant: str) -> List[MerchantInfo]:
        """
        Known merchants sharing a token (3+ chars) with this one.

        The merchant itself is excluded. Ordered by confidence, highest first.
        """
        normalized = normalize_merchant_name(merchant)
        found: Dict[str, MerchantInfo] = {}
        for token in tokenize(normalized):
            for info in self.repository.find_similar_merchants(token, self.SIMILAR_SEARCH_LIMIT):
                if info.normalized_name != normalized:
                    found.setdefault(info.normalized_name, info)
        return sorted(found.values(), key=lambda m: m.confidence, reverse=True)

    def update_merchant_category(self, merchant: str, category: Category) -> MerchantInfo:
        """
        Bind a merchant to a category in one atomic upsert.

        New merchants start at NEW_MERCHANT_CONFIDENCE with one
        transaction; existing ones have their confidence blended toward
        1.0 (same category) or 0.0 (changed category), floored at
        MIN_CONFIDENCE.
        """
        info = MerchantInfo(
            name=merchant,
            normalized_name=normalize_merchant_name(merchant),
            category_id=category.id,
            confidence=self.NEW_MERCHANT_CONFIDENCE,
            transaction_count=1,
            last_updated=self._clock(),
        )
        return self.repository.upsert_merchant_category(info, confidence_floor=self.MIN_CONFIDENCE)

    def increment_transaction_count(self, merchant: str) -> None:
        self.repository.increment_merchant_transaction_count(normalize_merchant_name(merchant))

    def get_merchant_info(self, merchant: str) -> Optional[MerchantInfo]:
        return self.repository.get_merchant_by_normalized_name(normalize_merchant_name(merchant))

    def __repr__(self):
        return f"MerchantCategorizer(min_confidence={self.MIN_CONFIDENCE})"


def _by_id(categories: Iterable[Category]) -> Dict[int, Category]:
    return {c.id: c for c in categories}
