import pytest
from datetime import datetime
from typing import Dict, List

from sms_ledger.categorization import SmartCategorizer, initialize_defaults
from sms_ledger.domain.models import Category, InboundMessage
from sms_ledger.extraction import PatternRegistry, TransactionExtractor
from sms_ledger.repositories.memory import (
    InMemoryCategorizationRepository,
    InMemoryCategoryRepository,
)

RECEIVED_AT = datetime(2024, 2, 20, 9, 0, 0)


def frozen_clock() -> float:
    """perf_counter stand-in so extraction never looks slow"""
    return 100.0


@pytest.fixture
def category_repo() -> InMemoryCategoryRepository:
    return InMemoryCategoryRepository()


@pytest.fixture
def categorization_repo() -> InMemoryCategorizationRepository:
    return InMemoryCategorizationRepository()


@pytest.fixture
def seeded_repos(category_repo, categorization_repo):
    """In-memory stores holding the default categories and keyword table"""
    initialize_defaults(category_repo, categorization_repo)
    return category_repo, categorization_repo


@pytest.fixture
def categories(seeded_repos) -> Dict[str, Category]:
    """Default categories by name"""
    category_repo, _ = seeded_repos
    return {c.name: c for c in category_repo.list_all()}


@pytest.fixture
def categorizer(seeded_repos) -> SmartCategorizer:
    category_repo, categorization_repo = seeded_repos
    return SmartCategorizer(category_repo, categorization_repo)


@pytest.fixture
def registry() -> PatternRegistry:
    """Registry loaded with the bundled institution patterns"""
    registry = PatternRegistry()
    registry.load_patterns_from_config()
    return registry


@pytest.fixture
def extractor(registry) -> TransactionExtractor:
    return TransactionExtractor(registry, clock=frozen_clock)


@pytest.fixture
def hdfc_message() -> InboundMessage:
    return InboundMessage(
        sender="VK-HDFCBK",
        body="Rs.2500.00 debited from A/c no XXXX1234 at AMAZON INDIA on 15-01-2024 14:30:25",
        received_at=RECEIVED_AT,
        id=1,
    )


@pytest.fixture
def institution_messages() -> List[InboundMessage]:
    """One realistic notification per bundled institution pattern"""
    bodies = [
        ("VK-HDFCBK", "Rs.2500.00 debited from A/c no XXXX1234 at AMAZON INDIA on 15-01-2024 14:30:25"),
        ("AD-ICICIB", "ICICI Bank Card XX5678 debited with INR 1,250.50 at SWIGGY BANGALORE on 16/01/2024."),
        ("JM-SBIINB", "Your A/c XXXX4321 is credited with Rs 15,000.00 on 01-02-2024 from ACME CORP. Avl Bal Rs 20,000.00"),
        ("AX-AXISBK", "Axis Bank Card no. XX9012 debited for INR 899.00 at NETFLIX on 05-02-24"),
        ("VM-KOTAKB", "Rs.3,200.00 transferred from Kotak A/c X7788 to RAHUL SHARMA on 10-02-2024 via IMPS"),
        ("VK-PAYTMB", "Rs 150 paid to CHAI POINT on 12-02-2024. Wallet 9876 balance Rs 850"),
        ("BP-PHONPE", "Received Rs 500.00 from PRIYA on 13-02-2024 in your account XX3456"),
        ("AD-GPAYIN", "You sent Rs 2,000.00 to AMIT KUMAR on 14/02/2024 from account XXXX1111. Transaction ID 998877"),
    ]
    return [
        InboundMessage(sender=sender, body=body, received_at=RECEIVED_AT, id=i)
        for i, (sender, body) in enumerate(bodies, start=1)
    ]
