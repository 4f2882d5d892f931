import pytest

from sms_ledger.extraction.accounts import AccountResolver


@pytest.fixture
def resolver() -> AccountResolver:
    return AccountResolver()


@pytest.mark.unit
class TestAccountResolver:
    """Masked identifier -> internal account"""

    def test_find_account(self, resolver: AccountResolver):
        # Arrange
        resolver.create_mapping(7, "HDFC Bank", "XXXX1234")

        # Act
        account_id = resolver.find_account("hdfc bank", "XXXX1234")

        # Assert
        assert account_id == 7

    def test_unknown_identifier_returns_none(self, resolver: AccountResolver):
        resolver.create_mapping(7, "HDFC Bank", "XXXX1234")

        assert resolver.find_account("HDFC Bank", "XXXX9999") is None
        assert resolver.find_account("ICICI Bank", "XXXX1234") is None

    def test_create_is_idempotent(self, resolver: AccountResolver):
        # Act
        first = resolver.create_mapping(7, "HDFC Bank", "XXXX1234")
        second = resolver.create_mapping(7, "hdfc bank", "XXXX1234")

        # Assert
        assert first.id == second.id
        assert len(resolver.all_mappings()) == 1

    def test_deactivated_mapping_is_not_resolved(self, resolver: AccountResolver):
        # Arrange
        mapping = resolver.create_mapping(7, "HDFC Bank", "XXXX1234")

        # Act
        resolver.deactivate(mapping.id)

        # Assert
        assert resolver.find_account("HDFC Bank", "XXXX1234") is None
        assert len(resolver.mappings_for_account(7)) == 1

    def test_create_reactivates_inactive_mapping(self, resolver: AccountResolver):
        # Arrange
        mapping = resolver.create_mapping(7, "HDFC Bank", "XXXX1234")
        resolver.deactivate(mapping.id)

        # Act
        again = resolver.create_mapping(7, "HDFC Bank", "XXXX1234")

        # Assert
        assert again.id == mapping.id
        assert again.is_active is True
        assert resolver.find_account("HDFC Bank", "XXXX1234") == 7

    def test_load_from_injected_config(self, resolver: AccountResolver):
        # Arrange
        config = {"accounts": [
            {"account_id": 1, "institution": "HDFC Bank", "identifiers": ["XXXX1234", "XX5678"]},
            {"account_id": 2, "institution": "Paytm Payments Bank", "identifiers": ["9876"]},
        ]}

        # Act
        created = resolver.load_mappings_from_config(config=config)

        # Assert
        assert len(created) == 3
        assert resolver.find_account("HDFC Bank", "XX5678") == 1
        assert resolver.find_account("Paytm Payments Bank", "9876") == 2

    def test_delete(self, resolver: AccountResolver):
        mapping = resolver.create_mapping(7, "HDFC Bank", "XXXX1234")

        assert resolver.delete(mapping.id) is True
        assert resolver.all_mappings() == []
