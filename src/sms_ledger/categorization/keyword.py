import logging
from typing import Iterable, List, Optional

from sms_ledger.domain.enums import CategorizationReason
from sms_ledger.domain.models import Category, CategorizationResult, KeywordMapping
from sms_ledger.domain.normalization import MIN_TOKEN_LENGTH, tokenize
from sms_ledger.repositories.base import CategorizationRepository

logger = logging.getLogger(__name__)


class KeywordCategorizer:
    """
    Categorizes a merchant string from keyword -> category mappings.

    Features:
    - Exact token lookups (user-curated mapping first, default second)
    - Partial containment against the default table as a weaker fallback
    - Tokens shorter than three characters are ignored; a merchant made
      only of such tokens never reaches the store

    Example:
        ```
        categorizer = KeywordCategorizer(repository)
        result = categorizer.categorize("AMAZON INDIA", categories)
        # CategorizationResult(Shopping, 0.8, keyword-match)
        ```
    """

    KEYWORD_CONFIDENCE = 0.8
    PARTIAL_MATCH_MULTIPLIER = 0.7

    def __init__(self, repository: CategorizationRepository):
        self.repository = repository

    @property
    def partial_match_confidence(self) -> float:
        return self.KEYWORD_CONFIDENCE * self.PARTIAL_MATCH_MULTIPLIER

    def categorize(
        self,
        merchant_text: str,
        categories: Iterable[Category],
    ) -> Optional[CategorizationResult]:
        """
        Match a merchant string against the keyword tables.

        Args:
            merchant_text: Raw merchant name
            categories: Categories a result may use

        Returns:
            CategorizationResult with reason keyword-match, or None
        """
        tokens = tokenize(merchant_text)
        if not tokens:
            return None

        available = {c.id: c for c in categories}

        for token in tokens:
            mapping = self.repository.get_keyword_mapping(token)
            if mapping is not None and mapping.category_id in available:
                return self._result(available[mapping.category_id], self.KEYWORD_CONFIDENCE)

        defaults = [
            m for m in self.repository.get_default_keyword_mappings()
            if len(m.keyword) >= MIN_TOKEN_LENGTH
        ]
        for token in tokens:
            for mapping in defaults:
                if mapping.keyword in token or token in mapping.keyword:
                    category = available.get(mapping.category_id)
                    if category is not None:
                        logger.debug("Partial keyword match %r ~ %r", token, mapping.keyword)
                        return self._result(category, self.partial_match_confidence)

        return None

    def add_keyword_mapping(self, keyword: str, category: Category) -> None:
        """Bind a user-curated keyword to a category (overrides the default)"""
        normalized = keyword.lower().strip()
        if normalized:
            self.repository.add_keyword_mapping(
                KeywordMapping(keyword=normalized, category_id=category.id, is_default=False)
            )

    def remove_keyword_mapping(self, keyword: str) -> bool:
        return self.repository.remove_keyword_mapping(keyword.lower().strip())

    def keywords_for_category(self, category: Category) -> List[str]:
        return self.repository.get_keywords_for_category(category.id)

    def _result(self, category: Category, confidence: float) -> CategorizationResult:
        return CategorizationResult(
            category=category,
            confidence=confidence,
            reason=CategorizationReason.KEYWORD_MATCH,
        )

    def __repr__(self):
        return f"KeywordCategorizer(confidence={self.KEYWORD_CONFIDENCE})"
