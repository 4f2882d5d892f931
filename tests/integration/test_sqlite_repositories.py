import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal

from sms_ledger.categorization import SmartCategorizer, initialize_defaults
from sms_ledger.database.connection import DatabaseConfig, DatabaseManager
from sms_ledger.domain.enums import TransactionType
from sms_ledger.domain.models import CategoryRule, KeywordMapping, MerchantInfo, Transaction
from sms_ledger.repositories.base import TransactionNotFoundError
from sms_ledger.repositories.sqlite_categorization_repository import (
    SQLiteCategorizationRepository,
    SQLiteCategoryRepository,
)
from sms_ledger.repositories.sqlite_transaction_repository import SQLiteTransactionRepository


@pytest.fixture
def test_db(tmp_path):
    """
    Create a real test database.

    Use pytest's tmp_path fixture to create a temporary directory.
    Database is automatically cleaned up after each test.
    """
    db_manager = DatabaseManager(DatabaseConfig(tmp_path / "test.db"))
    db_manager.initialize()

    yield db_manager

    db_manager.close()


@pytest.fixture
def category_store(test_db) -> SQLiteCategoryRepository:
    return SQLiteCategoryRepository(test_db)


@pytest.fixture
def rule_store(test_db, category_store) -> SQLiteCategorizationRepository:
    store = SQLiteCategorizationRepository(test_db)
    initialize_defaults(category_store, store)
    return store


@pytest.fixture
def txn_store(test_db) -> SQLiteTransactionRepository:
    return SQLiteTransactionRepository(test_db)


@pytest.fixture
def sample_transaction(category_store, rule_store) -> Transaction:
    """Reusable sample transaction."""
    return Transaction(
        amount=Decimal("2500.00"),
        type=TransactionType.EXPENSE,
        merchant="AMAZON INDIA",
        date=datetime(2024, 1, 15, 14, 30, 25),
        description="Rs.2500.00 debited",
        account_identifier="XXXX1234",
        category=category_store.get_by_name("Shopping"),
        category_confidence=0.8,
    )


@pytest.mark.integration
class TestSchema:

    def test_initialize_is_repeatable(self, test_db: DatabaseManager):
        test_db.initialize()

        with test_db.reading() as conn:
            versions = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
        assert versions == 1


@pytest.mark.integration
class TestSQLiteCategoryRepository:

    def test_defaults_seeded(self, category_store, rule_store):
        assert len(category_store.list_all()) == 10
        assert category_store.uncategorized_category().name == "Uncategorized"

    def test_name_lookup_ignores_case(self, category_store, rule_store):
        assert category_store.get_by_name("FOOD & DINING").id == 1


@pytest.mark.integration
class TestSQLiteTransactionRepository:
    """Uses a real temp db."""

    def test_save_and_reload(self, txn_store, sample_transaction):
        # Act
        saved = txn_store.save(sample_transaction)
        loaded = txn_store.get_by_id(saved.id)

        # Assert
        assert saved.id > 0
        assert loaded.amount == Decimal("2500.00")
        assert loaded.type == TransactionType.EXPENSE
        assert loaded.date == datetime(2024, 1, 15, 14, 30, 25)
        assert loaded.category.name == "Shopping"
        assert loaded.category_confidence == 0.8

    def test_decimal_precision_preserved(self, txn_store, sample_transaction):
        for amount in [Decimal("0.01"), Decimal("1250.50"), Decimal("99999.99")]:
            sample_transaction.id = None
            sample_transaction.amount = amount

            saved = txn_store.save(sample_transaction)

            assert txn_store.get_by_id(saved.id).amount == amount

    def test_date_filter_includes_whole_end_day(self, txn_store, sample_transaction):
        # Arrange
        txn_store.save(sample_transaction)

        # Act
        same_day = txn_store.get_all(start_date=date(2024, 1, 15), end_date=date(2024, 1, 15))
        later = txn_store.get_all(start_date=date(2024, 1, 16))

        # Assert
        assert len(same_day) == 1
        assert later == []

    def test_filter_by_category_and_type(self, txn_store, sample_transaction):
        txn_store.save(sample_transaction)

        assert len(txn_store.get_all(category_id=sample_transaction.category.id)) == 1
        assert txn_store.get_all(transaction_type=TransactionType.INCOME) == []

    def test_update_and_delete(self, txn_store, sample_transaction, category_store):
        # Arrange
        saved = txn_store.save(sample_transaction)
        saved.category = category_store.get_by_name("Entertainment")

        # Act
        txn_store.update(saved)

        # Assert
        assert txn_store.get_by_id(saved.id).category.name == "Entertainment"
        assert txn_store.delete(saved.id) is True
        assert txn_store.get_by_id(saved.id) is None

    def test_update_missing_raises(self, txn_store, sample_transaction):
        sample_transaction.id = 999

        with pytest.raises(TransactionNotFoundError):
            txn_store.update(sample_transaction)


@pytest.mark.integration
class TestSQLiteCategorizationRepository:

    def test_upsert_user_rule_keeps_one_row(self, rule_store):
        # Arrange
        rule = CategoryRule(merchant_pattern="Chai Point", category_id=1, confidence=0.9, usage_count=1,
                            last_used=datetime(2024, 2, 1))

        # Act
        first = rule_store.upsert_user_rule(rule, confidence_cap=0.95, confidence_step=0.1)
        second = rule_store.upsert_user_rule(
            CategoryRule(merchant_pattern="CHAI POINT", category_id=2, usage_count=1),
            confidence_cap=0.95,
            confidence_step=0.1,
        )

        # Assert
        assert first.id == second.id
        assert second.category_id == 2
        assert second.usage_count == 2
        assert second.confidence == pytest.approx(0.95)
        assert len(rule_store.get_rules_for_merchant("chai point")) == 1

    def test_increment_rule_usage(self, rule_store):
        rule = rule_store.insert_rule(CategoryRule(merchant_pattern="Uber Eats", category_id=1))

        rule_store.increment_rule_usage(rule.id, datetime(2024, 3, 1))

        stored = rule_store.get_rules_for_merchant("uber eats")[0]
        assert stored.usage_count == 1
        assert stored.last_used == datetime(2024, 3, 1)

    def test_upsert_merchant_blends_confidence(self, rule_store):
        # Arrange
        info = MerchantInfo(name="Blue Tokai", normalized_name="blue tokai", category_id=1,
                            confidence=0.9, transaction_count=1)

        # Act
        rule_store.upsert_merchant_category(info, confidence_floor=0.6)
        same = rule_store.upsert_merchant_category(info, confidence_floor=0.6)
        changed = rule_store.upsert_merchant_category(
            MerchantInfo(name="Blue Tokai", normalized_name="blue tokai", category_id=2, confidence=0.9),
            confidence_floor=0.6,
        )

        # Assert
        assert same.confidence == pytest.approx(0.95)
        assert changed.category_id == 2
        assert changed.confidence == pytest.approx(0.6)

    def test_similar_merchants_by_token(self, rule_store):
        rule_store.insert_merchant(MerchantInfo(name="Swiggy Food", normalized_name="swiggy food",
                                                category_id=1, confidence=0.9, transaction_count=2))
        rule_store.increment_merchant_transaction_count("swiggy food")

        found = rule_store.find_similar_merchants("swiggy")

        assert [m.name for m in found] == ["Swiggy Food"]
        assert found[0].transaction_count == 3

    def test_user_keyword_beats_default(self, rule_store):
        # Act
        rule_store.add_keyword_mapping(KeywordMapping("amazon", category_id=5, is_default=False))

        # Assert
        assert rule_store.get_keyword_mapping("amazon").category_id == 5
        assert rule_store.remove_keyword_mapping("amazon") is True
        assert rule_store.get_keyword_mapping("amazon").category_id == 2
        assert rule_store.remove_keyword_mapping("amazon") is False

    def test_concurrent_learning_keeps_one_rule(self, category_store, rule_store, sample_transaction):
        # Arrange
        categorizer = SmartCategorizer(category_store, rule_store)
        food = category_store.get_by_name("Food & Dining")

        # Act
        with ThreadPoolExecutor(max_workers=8) as pool:
            rules = list(pool.map(lambda _: categorizer.learn_from_user_input(sample_transaction, food), range(20)))

        # Assert
        assert sorted(r.usage_count for r in rules) == list(range(1, 21))
        stored = rule_store.get_rules_for_merchant("amazon india")
        assert len(stored) == 1
        assert stored[0].usage_count == 20
        assert stored[0].category_id == food.id
        assert rule_store.get_merchant_by_normalized_name("amazon india").transaction_count == 21
