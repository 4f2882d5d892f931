import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Set, Tuple

from sms_ledger.domain.enums import TransactionType
from sms_ledger.domain.models import MessagePattern
from sms_ledger.extraction.fallback import (
    ACCOUNT_CHAIN,
    AMOUNT_CHAIN,
    DATE_CHAIN,
    MERCHANT_CHAIN,
    normalize_account_identifier,
    normalize_amount,
    normalize_merchant,
    parse_date,
    search_field,
)

logger = logging.getLogger(__name__)

CANONICAL_FIELDS = ("amount", "direction", "merchant", "date", "account")

TRANSFER_KEYWORDS = ("transferred", "transfer")
INCOME_KEYWORDS = ("credited", "received", "deposited", "added")
EXPENSE_KEYWORDS = ("debited", "withdrawn", "paid", "spent", "sent", "purchase")

_WORD = re.compile(r"[a-z]+")
# "to your A/c", "to your Kotak account": the money lands in the user's account
_INTO_OWN_ACCOUNT = re.compile(r"\bto\s+your\s+(?:\w+\s+)?(?:a/c|acct|account)\b", re.IGNORECASE)


def classify_direction(direction_text: str, body: str = "") -> Optional[TransactionType]:
    """
    Classify matched direction keywords into a TransactionType.

    Transfers are split by perspective: a transfer message that also says
    the money was received, credited or deposited, or that it went to
    "your" account, is a TRANSFER_IN. Otherwise it is a TRANSFER_OUT.

    Bare "credit" and "debit" are not keywords; they name card types
    ("Credit Card") far more often than a direction.

    Args:
        direction_text: Text captured by the direction regex (or the body)
        body: Full message body, used to split transfers

    Returns:
        The direction, or None if no keyword is recognized

    Example:
        >>> classify_direction("transferred", "Rs 100 transferred to X")
        <TransactionType.TRANSFER_OUT: 'TransferOut'>
    """
    words = _words(direction_text)

    if words.intersection(TRANSFER_KEYWORDS):
        context = _words(body or direction_text)
        if context.intersection(("received", "credited", "deposited")):
            return TransactionType.TRANSFER_IN
        if _INTO_OWN_ACCOUNT.search(body or direction_text):
            return TransactionType.TRANSFER_IN
        return TransactionType.TRANSFER_OUT

    if words.intersection(INCOME_KEYWORDS):
        return TransactionType.INCOME

    if words.intersection(EXPENSE_KEYWORDS):
        return TransactionType.EXPENSE

    return None


def _words(text: str) -> Set[str]:
    return set(_WORD.findall(text.lower()))


@dataclass
class ExtractedFields:
    """Raw output of field extraction for one message"""
    amount: Optional[Decimal] = None
    amount_text: Optional[str] = None
    amount_error: Optional[str] = None
    direction: Optional[TransactionType] = None
    merchant: Optional[str] = None
    date: Optional[datetime] = None
    account_identifier: Optional[str] = None
    fallback_fields: List[str] = field(default_factory=list)

    @property
    def found_fields(self) -> Tuple[str, ...]:
        """Canonical fields that were populated from the message text"""
        values = {
            "amount": self.amount,
            "direction": self.direction,
            "merchant": self.merchant,
            "date": self.date,
            "account": self.account_identifier,
        }
        return tuple(name for name in CANONICAL_FIELDS if values[name] is not None)

    @property
    def used_fallback(self) -> bool:
        return bool(self.fallback_fields)

    def resolved_date(self, received_at: datetime) -> datetime:
        """Date from the message, or the receipt time when it had none"""
        return self.date if self.date is not None else received_at


class FieldExtractor:
    """
    Pull amount, direction, merchant, date and account out of a message body.

    With a pattern, each of its regexes is applied independently; a regex
    that does not match leaves its field to the generic fallback chain.
    Without a pattern, only the generic chains run, including the manual
    largest-number amount heuristic.

    The one hard failure is an amount the pattern captured but which is
    not numeric. It is recorded on amount_error, never replaced by a
    fallback value or zero.
    """

    def extract(self, body: str, pattern: Optional[MessagePattern] = None) -> ExtractedFields:
        """
        Extract all canonical fields from a message body.

        Args:
            body: Raw message text
            pattern: Matched institution pattern, or None for generic mode

        Returns:
            ExtractedFields with whatever could be found
        """
        fields = ExtractedFields()

        self._extract_amount(body, pattern, fields)

        direction_text = search_field(pattern.direction_pattern, body) if pattern else None
        if direction_text is not None:
            fields.direction = classify_direction(direction_text, body)
        if fields.direction is None:
            fields.direction = classify_direction(body, body)
            if fields.direction is not None:
                fields.fallback_fields.append("direction")

        fields.merchant = self._with_fallback(
            body,
            pattern.merchant_pattern if pattern else None,
            normalize_merchant,
            MERCHANT_CHAIN,
            "merchant",
            fields,
        )
        fields.date = self._with_fallback(
            body,
            pattern.date_pattern if pattern else None,
            parse_date,
            DATE_CHAIN,
            "date",
            fields,
        )
        fields.account_identifier = self._with_fallback(
            body,
            pattern.account_pattern if pattern else None,
            normalize_account_identifier,
            ACCOUNT_CHAIN,
            "account",
            fields,
        )

        logger.debug("Extracted fields %s from message", fields.found_fields)
        return fields

    def _extract_amount(
        self,
        body: str,
        pattern: Optional[MessagePattern],
        fields: ExtractedFields,
    ) -> None:
        if pattern is not None:
            raw = search_field(pattern.amount_pattern, body)
            if raw is not None:
                fields.amount_text = raw
                try:
                    fields.amount = normalize_amount(raw)
                except ValueError as e:
                    fields.amount_error = str(e)
                return

        # The manual heuristic only runs when there is no institution pattern
        fields.amount = AMOUNT_CHAIN.resolve(body, use_heuristic=pattern is None)
        if fields.amount is not None:
            fields.fallback_fields.append("amount")

    def _with_fallback(self, body, regex, normalize, chain, name, fields):
        if regex:
            raw = search_field(regex, body)
            if raw is not None:
                try:
                    value = normalize(raw)
                except ValueError:
                    value = None
                if value is not None:
                    return value

        value = chain.resolve(body)
        if value is not None:
            fields.fallback_fields.append(name)
        return value
