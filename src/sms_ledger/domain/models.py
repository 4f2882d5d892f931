from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sms_ledger.domain.enums import (
    CategorizationReason,
    TransactionSource,
    TransactionType,
)
from sms_ledger.domain.normalization import normalize_merchant_name

TRANSACTION_HINTS = (
    "debited", "credited", "withdrawn", "deposited",
    "paid", "spent", "purchase", "received", "transfer", "transaction",
    "balance", "account", "bank", "atm", "pos",
    "upi", "imps", "neft", "rtgs",
)

INSTITUTION_SENDER_HINTS = (
    "bank", "hdfc", "icici", "sbi", "axis", "kotak",
    "paytm", "phonepe", "gpay", "amazonpay", "mobikwik",
    "freecharge",
)


@dataclass(frozen=True)
class InboundMessage:
    """A raw notification as delivered by the message source"""
    sender: str
    body: str
    received_at: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None

    def is_potential_transaction(self) -> bool:
        """Broad check for any banking vocabulary in the body"""
        body = self.body.lower()
        return any(hint in body for hint in TRANSACTION_HINTS)

    def is_from_institution(self) -> bool:
        sender = self.sender.lower()
        return any(hint in sender for hint in INSTITUTION_SENDER_HINTS)


@dataclass(frozen=True)
class MessagePattern:
    """
    Per-institution template used to recognize and parse a notification.

    Immutable: the registry replaces whole values on update, so a reader
    holding a pattern never sees a partial edit.
    """
    institution: str
    sender_pattern: str
    amount_pattern: str
    merchant_pattern: str
    date_pattern: str
    direction_pattern: str
    account_pattern: Optional[str] = None
    is_active: bool = True
    id: int = 0

    def with_id(self, pattern_id: int) -> "MessagePattern":
        return replace(self, id=pattern_id)

    def with_active(self, is_active: bool) -> "MessagePattern":
        return replace(self, is_active=is_active)


@dataclass(frozen=True)
class AccountMapping:
    """Binds a masked account identifier at an institution to an internal account"""
    account_id: int
    institution: str
    account_identifier: str
    is_active: bool = True
    id: int = 0

    def matches(self, institution: str, account_identifier: str) -> bool:
        """Case-insensitive on institution, exact on identifier"""
        return (
            self.institution.lower() == institution.lower()
            and self.account_identifier == account_identifier
        )


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    icon: str = "category"
    color: str = "#9E9E9E"
    is_default: bool = True


@dataclass
class Transaction:
    """Core domain model representing a single categorized transaction"""
    amount: Decimal
    type: TransactionType
    merchant: str
    date: datetime
    description: str = ""
    account_identifier: Optional[str] = None
    account_id: Optional[int] = None
    source: TransactionSource = TransactionSource.AUTOMATIC
    category: Optional[Category] = None
    category_confidence: Optional[float] = None
    raw_data: Optional[str] = None
    id: Optional[int] = None

    @property
    def signed_amount(self) -> Decimal:
        """Return amount with sign for net calculations"""
        return -self.amount if self.type.is_outgoing else self.amount

    @property
    def category_name(self) -> Optional[str]:
        return self.category.name if self.category else None

    def __repr__(self):
        sign = "-" if self.type.is_outgoing else "+"
        return f"Transaction({self.date:%Y-%m-%d}, {self.merchant[:30]}, {sign}{self.amount})"


@dataclass(frozen=True)
class CategoryRule:
    """
    Durable merchant-to-category binding.

    merchant_key is the normalized merchant name and is what rules are
    upserted on; it is derived from merchant_pattern when not given.
    """
    merchant_pattern: str
    category_id: int
    confidence: float = 0.9
    is_user_defined: bool = True
    usage_count: int = 0
    last_used: Optional[datetime] = None
    merchant_key: str = ""
    id: Optional[int] = None

    def __post_init__(self):
        if not self.merchant_key:
            object.__setattr__(
                self, "merchant_key", normalize_merchant_name(self.merchant_pattern)
            )


@dataclass(frozen=True)
class MerchantInfo:
    """Accumulated categorization history for one normalized merchant"""
    name: str
    normalized_name: str
    category_id: Optional[int]
    confidence: float
    transaction_count: int = 0
    last_updated: Optional[datetime] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class KeywordMapping:
    """keyword -> category binding; user-curated mappings have is_default=False"""
    keyword: str
    category_id: int
    is_default: bool = True


@dataclass(frozen=True)
class CategorizationResult:
    category: Category
    confidence: float
    reason: CategorizationReason
    source_merchant: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.category.name} ({self.confidence:.2f}, {self.reason.value})"
