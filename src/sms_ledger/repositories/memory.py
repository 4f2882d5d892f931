"""
In-memory repositories.

Used by `sms-ledger extract` (which never persists) and by tests that
want real behaviour without a database file. Every method takes the same RLock, so the
upserts are atomic the way the SQLite versions are.
"""
import threading
from dataclasses import replace
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from sms_ledger.domain.enums import TransactionType
from sms_ledger.domain.models import (
    Category,
    CategoryRule,
    KeywordMapping,
    MerchantInfo,
    Transaction,
)
from sms_ledger.repositories.base import (
    CategorizationRepository,
    CategoryNotFoundError,
    CategoryRepository,
    TransactionNotFoundError,
    TransactionRepository,
)

UNCATEGORIZED = "Uncategorized"


class InMemoryCategoryRepository(CategoryRepository):

    def __init__(self, categories: Optional[List[Category]] = None):
        self._lock = threading.RLock()
        self._categories: Dict[int, Category] = {c.id: c for c in categories or []}

    def list_all(self) -> List[Category]:
        with self._lock:
            return [self._categories[k] for k in sorted(self._categories)]

    def uncategorized_category(self) -> Category:
        category = self.get_by_name(UNCATEGORIZED)
        if category is None:
            raise CategoryNotFoundError(f"'{UNCATEGORIZED}' category is missing")
        return category

    def get_by_id(self, category_id: int) -> Optional[Category]:
        with self._lock:
            return self._categories.get(category_id)

    def get_by_name(self, name: str) -> Optional[Category]:
        wanted = name.lower()
        with self._lock:
            for category in self._categories.values():
                if category.name.lower() == wanted:
                    return category
        return None

    def save(self, category: Category) -> Category:
        with self._lock:
            self._categories[category.id] = category
        return category


class InMemoryCategorizationRepository(CategorizationRepository):

    def __init__(self):
        self._lock = threading.RLock()
        self._rules: Dict[int, CategoryRule] = {}
        self._merchants: Dict[str, MerchantInfo] = {}
        self._keywords: Dict[Tuple[str, bool], KeywordMapping] = {}
        self._next_rule_id = 1
        self._next_merchant_id = 1

    # Rules

    def get_rules_for_merchant(self, merchant_key: str) -> List[CategoryRule]:
        with self._lock:
            rules = [r for r in self._rules.values() if r.merchant_key == merchant_key]
        return sorted(rules, key=lambda r: (not r.is_user_defined, -r.confidence))

    def insert_rule(self, rule: CategoryRule) -> CategoryRule:
        with self._lock:
            stored = replace(rule, id=self._next_rule_id)
            self._next_rule_id += 1
            self._rules[stored.id] = stored
        return stored

    def update_rule(self, rule: CategoryRule) -> CategoryRule:
        with self._lock:
            if rule.id not in self._rules:
                raise KeyError(f"Rule {rule.id} not found")
            self._rules[rule.id] = rule
        return rule

    def increment_rule_usage(self, rule_id: int, used_at: datetime) -> None:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is not None:
                self._rules[rule_id] = replace(
                    rule, usage_count=rule.usage_count + 1, last_used=used_at
                )

    def upsert_user_rule(
        self,
        rule: CategoryRule,
        confidence_cap: float,
        confidence_step: float,
    ) -> CategoryRule:
        with self._lock:
            existing = next(
                (r for r in self._rules.values()
                 if r.merchant_key == rule.merchant_key and r.is_user_defined),
                None,
            )
            if existing is None:
                return self.insert_rule(replace(rule, is_user_defined=True))

            updated = replace(
                existing,
                merchant_pattern=rule.merchant_pattern,
                category_id=rule.category_id,
                confidence=min(
                    confidence_cap,
                    existing.confidence + confidence_step / (existing.usage_count + 1),
                ),
                usage_count=existing.usage_count + 1,
                last_used=rule.last_used,
            )
            self._rules[existing.id] = updated
            return updated

    # Merchant history

    def get_merchant_by_normalized_name(self, normalized_name: str) -> Optional[MerchantInfo]:
        with self._lock:
            return self._merchants.get(normalized_name)

    def insert_merchant(self, merchant: MerchantInfo) -> MerchantInfo:
        with self._lock:
            stored = replace(merchant, id=self._next_merchant_id)
            self._next_merchant_id += 1
            self._merchants[stored.normalized_name] = stored
        return stored

    def upsert_merchant_category(
        self,
        merchant: MerchantInfo,
        confidence_floor: float,
    ) -> MerchantInfo:
        with self._lock:
            existing = self._merchants.get(merchant.normalized_name)
            if existing is None:
                return self.insert_merchant(merchant)

            weight = 1.0 / (existing.transaction_count + 1)
            same = 1.0 if existing.category_id == merchant.category_id else 0.0
            updated = replace(
                existing,
                name=merchant.name,
                category_id=merchant.category_id,
                confidence=max(
                    confidence_floor,
                    existing.confidence * (1 - weight) + same * weight,
                ),
                last_updated=merchant.last_updated,
            )
            self._merchants[existing.normalized_name] = updated
            return updated

    def increment_merchant_transaction_count(self, normalized_name: str) -> None:
        with self._lock:
            existing = self._merchants.get(normalized_name)
            if existing is not None:
                self._merchants[normalized_name] = replace(
                    existing, transaction_count=existing.transaction_count + 1
                )

    def find_similar_merchants(self, token: str, limit: int = 10) -> List[MerchantInfo]:
        with self._lock:
            matches = [m for m in self._merchants.values() if token in m.normalized_name]
        matches.sort(key=lambda m: m.confidence, reverse=True)
        return matches[:limit]

    # Keywords

    def get_keyword_mapping(self, keyword: str) -> Optional[KeywordMapping]:
        with self._lock:
            return self._keywords.get((keyword, False)) or self._keywords.get((keyword, True))

    def get_default_keyword_mappings(self) -> List[KeywordMapping]:
        with self._lock:
            return [m for m in self._keywords.values() if m.is_default]

    def add_keyword_mapping(self, mapping: KeywordMapping) -> None:
        with self._lock:
            self._keywords[(mapping.keyword, mapping.is_default)] = mapping

    def remove_keyword_mapping(self, keyword: str) -> bool:
        with self._lock:
            return self._keywords.pop((keyword, False), None) is not None

    def get_keywords_for_category(self, category_id: int) -> List[str]:
        with self._lock:
            keywords = {m.keyword for m in self._keywords.values() if m.category_id == category_id}
        return sorted(keywords)


class InMemoryTransactionRepository(TransactionRepository):

    def __init__(self):
        self._lock = threading.RLock()
        self._transactions: Dict[int, Transaction] = {}
        self._next_id = 1

    def save(self, transaction: Transaction) -> Transaction:
        with self._lock:
            transaction.id = self._next_id
            self._next_id += 1
            self._transactions[transaction.id] = transaction
        return transaction

    def save_many(self, transactions: List[Transaction]) -> List[Transaction]:
        with self._lock:
            return [self.save(txn) for txn in transactions]

    def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        with self._lock:
            return self._transactions.get(transaction_id)

    def get_all(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
        category_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> List[Transaction]:
        with self._lock:
            results = list(self._transactions.values())

        if start_date:
            results = [t for t in results if t.date.date() >= start_date]
        if end_date:
            results = [t for t in results if t.date.date() <= end_date]
        if transaction_type:
            results = [t for t in results if t.type == transaction_type]
        if category_id is not None:
            results = [t for t in results if t.category and t.category.id == category_id]
        if account_id is not None:
            results = [t for t in results if t.account_id == account_id]

        return sorted(results, key=lambda t: t.date, reverse=True)

    def update(self, transaction: Transaction) -> Transaction:
        if transaction.id is None:
            raise ValueError("Cannot update transaction without ID")
        with self._lock:
            if transaction.id not in self._transactions:
                raise TransactionNotFoundError(
                    f"Transaction with ID {transaction.id} not found"
                )
            self._transactions[transaction.id] = transaction
        return transaction

    def delete(self, transaction_id: int) -> bool:
        with self._lock:
            return self._transactions.pop(transaction_id, None) is not None
