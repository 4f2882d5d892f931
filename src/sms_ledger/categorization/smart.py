import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from sms_ledger.categorization.keyword import KeywordCategorizer
from sms_ledger.categorization.merchant import MerchantCategorizer
from sms_ledger.domain.enums import CategorizationReason
from sms_ledger.domain.models import Category, CategorizationResult, CategoryRule, Transaction
from sms_ledger.domain.normalization import normalize_merchant_name
from sms_ledger.repositories.base import CategorizationRepository, CategoryRepository

logger = logging.getLogger(__name__)

# A lookup takes (merchant, available categories) and may return a result
Lookup = Callable[[str, Sequence[Category]], Optional[CategorizationResult]]


class SmartCategorizer:
    """
    Main engine for categorizing transactions.

    Runs an ordered tuple of independent lookups; the first one that
    returns a result wins:
    1. User rule (exact merchant key)
    2. Merchant history (exact normalized name)
    3. Similarity inference (related merchant names)
    4. Keyword match
    5. Default (Uncategorized, confidence 0.1)

    Corrections feed back through learn_from_user_input, which upserts
    both the merchant history and the user rule for the merchant.

    Usage:
        categorizer = SmartCategorizer(category_repo, categorization_repo)

        result = categorizer.categorize(transaction)
        categorizer.learn_from_user_input(transaction, shopping)
    """

    DEFAULT_CONFIDENCE = 0.1
    NEW_RULE_CONFIDENCE = 0.9
    MAX_RULE_CONFIDENCE = 0.95
    RULE_LEARNING_STEP = 0.1
    MAX_SUGGESTIONS = 5
    LEARN_LOCK_STRIPES = 32

    def __init__(
        self,
        category_repository: CategoryRepository,
        categorization_repository: CategorizationRepository,
        keyword_categorizer: Optional[KeywordCategorizer] = None,
        merchant_categorizer: Optional[MerchantCategorizer] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.category_repository = category_repository
        self.repository = categorization_repository
        self.keyword_categorizer = keyword_categorizer or KeywordCategorizer(categorization_repository)
        self.merchant_categorizer = merchant_categorizer or MerchantCategorizer(categorization_repository, clock)
        self._clock = clock

        # Fixed pool; a merchant key always maps to the same lock
        self._learn_locks: Tuple[threading.Lock, ...] = tuple(
            threading.Lock() for _ in range(self.LEARN_LOCK_STRIPES)
        )

        self.sources: Tuple[Tuple[str, Lookup], ...] = (
            ("user rule", self._from_user_rule),
            ("merchant history", self.merchant_categorizer.lookup_history),
            ("similarity inference", self.merchant_categorizer.infer_from_similar),
            ("keyword match", self.keyword_categorizer.categorize),
        )

    def categorize(self, transaction: Transaction) -> CategorizationResult:
        """
        Categorize a single transaction.

        Args:
            transaction: Transaction to categorize

        Returns:
            The first source's result, or the Uncategorized default

        Example:
            ```
            >>> result = categorizer.categorize(txn)
            >>> print(result)
            Shopping (0.80, keyword-match)
            ```
        """
        return self.categorize_merchant(transaction.merchant)

    def categorize_merchant(self, merchant: str) -> CategorizationResult:
        categories = self.category_repository.list_all()

        for name, lookup in self.sources:
            result = lookup(merchant, categories)
            if result is not None:
                logger.debug("%r categorized by %s: %s", merchant, name, result)
                return result

        return CategorizationResult(
            category=self.category_repository.uncategorized_category(),
            confidence=self.DEFAULT_CONFIDENCE,
            reason=CategorizationReason.DEFAULT,
        )

    def categorize_many(
        self,
        transactions: List[Transaction],
        overwrite: bool = False
    ) -> List[Transaction]:
        """
        Categorize multiple transactions.

        Args:
            transactions: List of transactions to categorize
            overwrite: If True, re-categorize even if already categorized.
                      If False, only categorize uncategorized transactions.

        Returns:
            List of transactions with categories assigned
        """
        uncategorized = self.category_repository.uncategorized_category()
        categorized = []

        for txn in transactions:
            if not overwrite and txn.category and txn.category.id != uncategorized.id:
                categorized.append(txn)
                continue

            result = self.categorize(txn)
            categorized.append(
                replace(txn, category=result.category, category_confidence=result.confidence)
            )

        return categorized

    def learn_from_user_input(self, transaction: Transaction, category: Category) -> CategoryRule:
        """
        Turn a user correction into durable history and a user rule.

        Re-correcting a merchant updates its existing rule (category
        replaced, usage incremented, confidence nudged up to 0.95) rather
        than creating a second one. Corrections for the same merchant are
        serialized.

        Args:
            transaction: The transaction the user corrected
            category: The category the user chose

        Returns:
            The stored user rule
        """
        merchant = transaction.merchant
        key = normalize_merchant_name(merchant)

        with self._lock_for(key):
            self.merchant_categorizer.update_merchant_category(merchant, category)
            self.merchant_categorizer.increment_transaction_count(merchant)

            rule = self.repository.upsert_user_rule(
                CategoryRule(
                    merchant_pattern=merchant,
                    merchant_key=key,
                    category_id=category.id,
                    confidence=self.NEW_RULE_CONFIDENCE,
                    is_user_defined=True,
                    usage_count=1,
                    last_used=self._clock(),
                ),
                confidence_cap=self.MAX_RULE_CONFIDENCE,
                confidence_step=self.RULE_LEARNING_STEP,
            )

        logger.info("Learned %r -> %s (usage %d)", merchant, category.name, rule.usage_count)
        return rule

    def suggest_categories(self, merchant: str) -> List[CategorizationResult]:
        """
        Ranked candidate categories for a merchant.

        Combines merchant history, keyword match and related merchants
        (discounted); user rules are definitive and not offered here.
        One entry per category, highest confidence first, at most
        MAX_SUGGESTIONS.
        """
        categories = self.category_repository.list_all()
        candidates: List[CategorizationResult] = []

        history = self.merchant_categorizer.lookup_history(merchant, categories)
        if history is not None:
            candidates.append(history)

        keyword = self.keyword_categorizer.categorize(merchant, categories)
        if keyword is not None:
            candidates.append(keyword)

        candidates.extend(self.merchant_categorizer.similar_candidates(merchant, categories))

        suggestions: List[CategorizationResult] = []
        for candidate in candidates:
            if all(s.category.id != candidate.category.id for s in suggestions):
                suggestions.append(candidate)

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions[:self.MAX_SUGGESTIONS]

    def get_confidence(self, merchant: str, category: Category) -> float:
        """Confidence the pipeline would give this category for this merchant, else 0.0"""
        only = [category]
        for lookup in (
            self.merchant_categorizer.lookup_history,
            self.merchant_categorizer.infer_from_similar,
            self.keyword_categorizer.categorize,
        ):
            result = lookup(merchant, only)
            if result is not None:
                return result.confidence
        return 0.0

    def get_source_chain_info(self) -> str:
        """
        Describe the lookup order.

        Returns:
            One numbered line per source, ending with the default
        """
        lines = [f"{i}. {name}" for i, (name, _) in enumerate(self.sources, start=1)]
        lines.append(f"{len(self.sources) + 1}. default (Uncategorized, {self.DEFAULT_CONFIDENCE})")
        return "\n".join(lines)

    def _from_user_rule(
        self,
        merchant: str,
        categories: Sequence[Category],
    ) -> Optional[CategorizationResult]:
        available = {c.id: c for c in categories}
        for rule in self.repository.get_rules_for_merchant(normalize_merchant_name(merchant)):
            category = available.get(rule.category_id)
            if category is None:
                continue
            self.repository.increment_rule_usage(rule.id, self._clock())
            return CategorizationResult(
                category=category,
                confidence=rule.confidence,
                reason=CategorizationReason.USER_RULE,
                source_merchant=rule.merchant_pattern,
            )
        return None

    def _lock_for(self, key: str) -> threading.Lock:
        return self._learn_locks[hash(key) % len(self._learn_locks)]

    def __repr__(self) -> str:
        return f"SmartCategorizer({len(self.sources) + 1} sources in chain)"
