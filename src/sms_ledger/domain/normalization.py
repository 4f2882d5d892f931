import re
from typing import List

MIN_TOKEN_LENGTH = 3

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_COMPANY_SUFFIXES = re.compile(
    r"\b(pvt|ltd|llc|inc|corp|co|company|limited)\b"
)


def normalize_text(text: str) -> str:
    """Lowercase, turn punctuation into spaces and collapse whitespace."""
    lowered = _NON_ALNUM.sub(" ", (text or "").lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def normalize_merchant_name(name: str) -> str:
    """
    Canonical key for a merchant name.

    Same as normalize_text, with company suffixes removed so that
    "Acme Pvt. Ltd." and "ACME" share a key.

    Example:
        >>> normalize_merchant_name("Swiggy Pvt. Ltd.")
        'swiggy'
    """
    without_suffix = _COMPANY_SUFFIXES.sub(" ", normalize_text(name))
    return _WHITESPACE.sub(" ", without_suffix).strip()


def tokenize(text: str, min_length: int = MIN_TOKEN_LENGTH) -> List[str]:
    """Distinct normalized tokens of at least min_length characters, in order."""
    tokens: List[str] = []
    for token in normalize_text(text).split():
        if len(token) >= min_length and token not in tokens:
            tokens.append(token)
    return tokens


def jaccard_similarity(left: str, right: str) -> float:
    """Token-set overlap between two merchant names, 0.0 to 1.0."""
    left_tokens = set(normalize_merchant_name(left).split())
    right_tokens = set(normalize_merchant_name(right).split())
    if not left_tokens or not right_tokens:
        return 0.0
    return len(left_tokens & right_tokens) / len(left_tokens | right_tokens)
