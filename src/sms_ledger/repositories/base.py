from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

from sms_ledger.domain.models import (
    Category,
    CategoryRule,
    KeywordMapping,
    MerchantInfo,
    Transaction,
)
from sms_ledger.domain.enums import TransactionType

class TransactionNotFoundError(Exception):
    """Raised when a transaction cannot be found."""
    pass

class CategoryNotFoundError(Exception):
    """Raised when a category cannot be found."""
    pass

class CategoryRepository(ABC):
    """Read/write contract for the category store."""

    @abstractmethod
    def list_all(self) -> List[Category]:
        """Return every category, ordered by id"""
        pass

    @abstractmethod
    def uncategorized_category(self) -> Category:
        """
        Return the catch-all category.

        Raises:
            CategoryNotFoundError: If the store has not been seeded
        """
        pass

    @abstractmethod
    def get_by_id(self, category_id: int) -> Optional[Category]:
        pass

    @abstractmethod
    def get_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive lookup by category name"""
        pass

    @abstractmethod
    def save(self, category: Category) -> Category:
        """Insert or replace a category by id"""
        pass


class CategorizationRepository(ABC):
    """
    Contract for the rule, merchant-history and keyword store.

    The two upsert methods must be atomic per key: concurrent corrections
    for one merchant never create two rules or two merchant records.
    """

    # Rules

    @abstractmethod
    def get_rules_for_merchant(self, merchant_key: str) -> List[CategoryRule]:
        """
        Rules whose merchant_key equals the given normalized name.

        Returns:
            User-defined rules first, then by confidence descending
        """
        pass

    @abstractmethod
    def insert_rule(self, rule: CategoryRule) -> CategoryRule:
        """Insert a rule and return it with its id"""
        pass

    @abstractmethod
    def update_rule(self, rule: CategoryRule) -> CategoryRule:
        """Overwrite a rule by id"""
        pass

    @abstractmethod
    def increment_rule_usage(self, rule_id: int, used_at: datetime) -> None:
        pass

    @abstractmethod
    def upsert_user_rule(
        self,
        rule: CategoryRule,
        confidence_cap: float,
        confidence_step: float,
    ) -> CategoryRule:
        """
        Atomically create or reinforce the user rule for rule.merchant_key.

        New rule: stored as given (usage_count 1).
        Existing rule: category and pattern replaced, usage_count + 1,
        last_used refreshed, and
        confidence = min(confidence_cap, confidence + confidence_step / (usage_count + 1)).

        Returns:
            The stored rule after the write
        """
        pass

    # Merchant history

    @abstractmethod
    def get_merchant_by_normalized_name(self, normalized_name: str) -> Optional[MerchantInfo]:
        pass

    @abstractmethod
    def insert_merchant(self, merchant: MerchantInfo) -> MerchantInfo:
        pass

    @abstractmethod
    def upsert_merchant_category(
        self,
        merchant: MerchantInfo,
        confidence_floor: float,
    ) -> MerchantInfo:
        """
        Atomically bind a merchant to a category.

        New merchant: stored as given.
        Existing merchant, with w = 1 / (transaction_count + 1):
        confidence = max(confidence_floor,
                         confidence * (1 - w) + (1 if same category else 0) * w)
        and category, display name and last_updated replaced.
        """
        pass

    @abstractmethod
    def increment_merchant_transaction_count(self, normalized_name: str) -> None:
        pass

    @abstractmethod
    def find_similar_merchants(self, token: str, limit: int = 10) -> List[MerchantInfo]:
        """Merchants whose normalized name contains token, most confident first"""
        pass

    # Keywords

    @abstractmethod
    def get_keyword_mapping(self, keyword: str) -> Optional[KeywordMapping]:
        """User-curated mapping for keyword if any, else the default one"""
        pass

    @abstractmethod
    def get_default_keyword_mappings(self) -> List[KeywordMapping]:
        pass

    @abstractmethod
    def add_keyword_mapping(self, mapping: KeywordMapping) -> None:
        """Insert or replace a mapping for (keyword, is_default)"""
        pass

    @abstractmethod
    def remove_keyword_mapping(self, keyword: str) -> bool:
        """Remove the user-curated mapping for keyword"""
        pass

    @abstractmethod
    def get_keywords_for_category(self, category_id: int) -> List[str]:
        pass


class TransactionRepository(ABC):
    """
    Abstract repository for transaction persistence.

    The repository pattern abstracts the data access, making it easy
    to swap storage backends in the future.
    """

    @abstractmethod
    def save(self, transaction: Transaction) -> Transaction:
        """
        Save a transaction to the repository.

        Args:
            transaction: Transaction to save

        Returns:
            Transaction with ID populated
        """
        pass

    @abstractmethod
    def save_many(self, transactions: List[Transaction]) -> List[Transaction]:
        """
        Save multiple transactions in a single operation.

        Args:
            transactions: List of transactions to save.

        Returns:
            List of saved transactions with IDs
        """
        pass

    @abstractmethod
    def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        """
        Retrieve a transaction by ID.

        Args:
            transaction_id: Transaction ID

        Returns:
            Transaction if found, None otherwise
        """
        pass

    @abstractmethod
    def get_all(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
        category_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> List[Transaction]:
        """
        Retrieve transactions with optional filtering.

        Args:
            start_date: Filter transactions on or after this date
            end_date: Filter transactions on or before this date
            transaction_type: Filter by direction
            category_id: Filter by category
            account_id: Filter by resolved account

        Returns:
            List of matching transactions, newest first
        """
        pass

    @abstractmethod
    def update(self, transaction: Transaction) -> Transaction:
        """
        Update an existing transaction.

        Raises:
            TransactionNotFoundError: If transaction doesn't exist
        """
        pass

    @abstractmethod
    def delete(self, transaction_id: int) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if deleted, False if not found
        """
        pass
