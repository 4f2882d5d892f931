"""
Message-to-transaction extraction.

Quick Start:
    >>> from sms_ledger.extraction import PatternRegistry, TransactionExtractor
    >>>
    >>> registry = PatternRegistry()
    >>> registry.load_patterns_from_config()
    >>> result = TransactionExtractor(registry).extract(message)
    >>> print(result)
"""
from sms_ledger.extraction.registry import PatternRegistry
from sms_ledger.extraction.accounts import AccountResolver
from sms_ledger.extraction.fields import FieldExtractor, ExtractedFields
from sms_ledger.extraction.confidence import ConfidenceScorer
from sms_ledger.extraction.extractor import TransactionExtractor
from sms_ledger.extraction.error_handler import MessageErrorHandler
from sms_ledger.extraction.models import ExtractionDetails, ExtractionResult

__all__ = [
    "PatternRegistry",
    "AccountResolver",
    "FieldExtractor",
    "ExtractedFields",
    "ConfidenceScorer",
    "TransactionExtractor",
    "MessageErrorHandler",
    "ExtractionDetails",
    "ExtractionResult",
]
