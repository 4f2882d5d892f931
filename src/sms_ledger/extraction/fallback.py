"""
Fallback chains for field extraction.

Each chain is an ordered list of FieldMatcher (regex + normalizer) pairs,
optionally followed by one manual heuristic. The first matcher whose regex
matches and whose normalizer accepts the captured text wins.

Example:
    >>> AMOUNT_CHAIN.resolve("Paid INR 1,250.50 at SWIGGY")
    Decimal('1250.50')
"""
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Callable, Generic, List, Optional, Pattern, Sequence, TypeVar

T = TypeVar("T")

UNKNOWN_MERCHANT = "Unknown Merchant"
MAX_MERCHANT_LENGTH = 50

_CURRENCY_NOISE = re.compile(r"\bRs\.?|\bINR|[₹$,\s]", re.IGNORECASE)
_MERCHANT_NOISE = re.compile(r"[^A-Za-z0-9\s&.\-]")
_WHITESPACE = re.compile(r"\s+")
_ACCOUNT_NOISE = re.compile(r"[^X*\d]")

DATE_FORMATS = (
    "%d-%m-%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%d-%m-%Y %H:%M",
    "%d/%m/%Y %H:%M",
    "%d-%m-%y %H:%M:%S",
    "%d/%m/%y %H:%M:%S",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%d-%m-%y",
    "%d/%m/%y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%d %b %Y",
    "%d %B %Y",
)

# Digits glued to letters, slashes, colons or dashes are masked account
# numbers, dates or times, not amounts. Grouping is either thousands
# (1,500,000) or Indian lakh/crore (15,00,000).
_PLAUSIBLE_AMOUNT = re.compile(
    r"(?<![\w/:,-])("
    r"\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?"
    r"|\d{1,3}(?:,\d{2})*,\d{3}(?:\.\d{1,2})?"
    r"|\d+(?:\.\d{1,2})?"
    r")(?![\w/:-])"
)
_REFERENCE_PREFIX = re.compile(r"(?:\bid|\bref|\bno|\bnumber|\btxn|\botp)[\s.:#-]*$", re.IGNORECASE)


@lru_cache(maxsize=256)
def compile_field_regex(regex: str) -> Pattern:
    """Compile a field regex once; field matching is case-insensitive."""
    return re.compile(regex, re.IGNORECASE)


def search_field(regex: str, text: str) -> Optional[str]:
    """
    Apply a field regex and return the captured text.

    Returns the first non-empty capture group, or the whole match when the
    regex has no groups, or None when it does not match.
    """
    match = compile_field_regex(regex).search(text)
    if match is None:
        return None
    for group in match.groups():
        if group:
            return group.strip()
    return match.group(0).strip()


def normalize_amount(text: str) -> Decimal:
    """
    Parse an amount as a Decimal.

    Strips currency markers, whitespace and thousands separators.

    Raises:
        ValueError: If what remains is not a finite number
    """
    cleaned = _CURRENCY_NOISE.sub("", text or "")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation as e:
        raise ValueError(f"Non-numeric amount: {text!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Non-numeric amount: {text!r}")
    return amount


def normalize_merchant(text: str) -> Optional[str]:
    """Clean a captured merchant name; None when nothing usable remains"""
    cleaned = _MERCHANT_NOISE.sub("", _WHITESPACE.sub(" ", text or "")).strip()
    cleaned = cleaned[:MAX_MERCHANT_LENGTH].strip().rstrip(".").strip()
    if len(cleaned) < 2 or not any(c.isalpha() for c in cleaned):
        return None
    return cleaned


def normalize_account_identifier(text: str) -> Optional[str]:
    cleaned = _ACCOUNT_NOISE.sub("", (text or "").upper())
    return cleaned or None


def parse_date(text: str) -> Optional[datetime]:
    """Try each known day-first format in order"""
    candidate = _WHITESPACE.sub(" ", (text or "").strip())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt)
        except ValueError:
            continue
    return None


def largest_plausible_amount(text: str) -> Optional[Decimal]:
    """
    Manual amount heuristic: the largest positive decimal-looking number.

    Skips numbers that are part of masked account numbers, dates, times or
    reference ids.
    """
    best: Optional[Decimal] = None
    for match in _PLAUSIBLE_AMOUNT.finditer(text or ""):
        if _REFERENCE_PREFIX.search(text[:match.start()]):
            continue
        try:
            value = normalize_amount(match.group(1))
        except ValueError:
            continue
        if value > 0 and (best is None or value > best):
            best = value
    return best


@dataclass(frozen=True)
class FieldMatcher(Generic[T]):
    """A regex paired with the normalizer for what it captures"""
    regex: str
    normalize: Callable[[str], Optional[T]]

    def match(self, text: str) -> Optional[T]:
        raw = search_field(self.regex, text)
        if raw is None:
            return None
        try:
            return self.normalize(raw)
        except ValueError:
            return None


class FallbackChain(Generic[T]):
    """Ordered matchers plus an optional final heuristic"""

    def __init__(
        self,
        matchers: Sequence[FieldMatcher[T]],
        heuristic: Optional[Callable[[str], Optional[T]]] = None,
    ):
        self.matchers: List[FieldMatcher[T]] = list(matchers)
        self.heuristic = heuristic

    def resolve(self, text: str, use_heuristic: bool = True) -> Optional[T]:
        for matcher in self.matchers:
            value = matcher.match(text)
            if value is not None:
                return value
        if use_heuristic and self.heuristic is not None:
            return self.heuristic(text)
        return None

    def with_leading(self, regexes: Sequence[str], normalize: Callable[[str], Optional[T]]) -> "FallbackChain[T]":
        """New chain that tries the given regexes before this chain's own"""
        leading = [FieldMatcher(regex, normalize) for regex in regexes]
        return FallbackChain(leading + self.matchers, self.heuristic)

    def __len__(self) -> int:
        return len(self.matchers)


_MERCHANT_END = r"(?=\s+(?:on|via|ref|using|dt)\b|[.,]|$)"
_MERCHANT_BODY = r"([A-Za-z][A-Za-z0-9&\- ]*?)"
_NOT_OWN_ACCOUNT = r"(?!(?:your\s+)?(?:a/c|account|card|wallet)\b)"

AMOUNT_CHAIN: FallbackChain[Decimal] = FallbackChain(
    [
        FieldMatcher(r"(?:\bRs\.?|\bINR|₹)\s*([\d,]+(?:\.\d{1,2})?)", normalize_amount),
        FieldMatcher(r"\b([\d,]+(?:\.\d{1,2})?)\s*(?:rupees|INR)\b", normalize_amount),
        FieldMatcher(r"\bamount\s*(?:of|:)?\s*([\d,]+(?:\.\d{1,2})?)", normalize_amount),
    ],
    heuristic=largest_plausible_amount,
)

MERCHANT_CHAIN: FallbackChain[str] = FallbackChain(
    [
        FieldMatcher(r"\b(?:paid\s+to|sent\s+to|received\s+from)\s+" + _MERCHANT_BODY + _MERCHANT_END, normalize_merchant),
        FieldMatcher(r"\bat\s+" + _MERCHANT_BODY + _MERCHANT_END, normalize_merchant),
        FieldMatcher(r"\bto\s+" + _NOT_OWN_ACCOUNT + _MERCHANT_BODY + _MERCHANT_END, normalize_merchant),
        FieldMatcher(r"\bfrom\s+" + _NOT_OWN_ACCOUNT + _MERCHANT_BODY + _MERCHANT_END, normalize_merchant),
    ],
)

DATE_CHAIN: FallbackChain[datetime] = FallbackChain(
    [
        FieldMatcher(r"(\d{1,2}[-/]\d{1,2}[-/]\d{4}\s+\d{1,2}:\d{2}(?::\d{2})?)", parse_date),
        FieldMatcher(r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})(?!\d)", parse_date),
        FieldMatcher(r"(\d{1,2}[-\s][A-Za-z]{3,9}[-\s]\d{2,4})", parse_date),
    ],
)

ACCOUNT_CHAIN: FallbackChain[str] = FallbackChain(
    [
        FieldMatcher(r"(?:a/c|acct|account|card|wallet)\s*(?:no\.?|ending(?:\s+in)?)?\s*([X*\d]{4,})", normalize_account_identifier),
    ],
)
