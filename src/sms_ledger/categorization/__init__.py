"""
Categorization system for extracted transactions.

Assigns each transaction a category from an ordered set of sources
(user rules, merchant history, similarity inference, keywords) and
learns from user corrections.

Quick Start:
    >>> from sms_ledger.categorization import SmartCategorizer
    >>>
    >>> categorizer = SmartCategorizer(category_repo, categorization_repo)
    >>> result = categorizer.categorize(transaction)
    >>> print(f"Categorized as: {result.category.name}")
"""
from sms_ledger.categorization.smart import SmartCategorizer
from sms_ledger.categorization.keyword import KeywordCategorizer
from sms_ledger.categorization.merchant import MerchantCategorizer
from sms_ledger.categorization.defaults import initialize_defaults, load_default_categories

__all__ = [
    "SmartCategorizer",
    "KeywordCategorizer",
    "MerchantCategorizer",
    "initialize_defaults",
    "load_default_categories",
]
