import pytest

from sms_ledger.categorization.defaults import initialize_defaults, load_default_categories
from sms_ledger.config.settings import ConfigLoader, PipelineSettings
from sms_ledger.repositories.memory import InMemoryCategorizationRepository, InMemoryCategoryRepository


@pytest.mark.unit
class TestPipelineSettings:

    def test_defaults(self):
        settings = PipelineSettings()

        assert settings.pattern_match_bonus == 0.10
        assert settings.latency_budget_ms == 50.0
        assert settings.max_attempts == 3
        assert settings.generic_fallback is False

    def test_from_injected_config(self):
        # Act
        settings = PipelineSettings.from_config({"pipeline": {"max_attempts": 5, "unknown": True}})

        # Assert
        assert settings.max_attempts == 5
        assert settings.retry_delay_seconds == 0.1

    def test_bundled_config_matches_defaults(self):
        assert PipelineSettings.from_config() == PipelineSettings()

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError, match="max_attempts"):
            PipelineSettings.from_config({"pipeline": {"max_attempts": 0}})


@pytest.mark.unit
class TestConfigLoader:

    def test_missing_config_raises(self):
        with pytest.raises(FileNotFoundError, match="nope.json"):
            ConfigLoader.load_config("nope.json")

    def test_bundled_accounts_config_is_empty(self):
        assert ConfigLoader.load_accounts_config() == {"accounts": []}


@pytest.mark.unit
class TestDefaultCategories:

    def test_bundled_categories(self):
        names = [c.name for c in load_default_categories()]

        assert len(names) == 10
        assert "Uncategorized" in names
        assert "Food & Dining" in names

    def test_initialize_defaults_is_repeatable(self):
        # Arrange
        category_repo = InMemoryCategoryRepository()
        categorization_repo = InMemoryCategorizationRepository()
        config = {"categories": [
            {"id": 1, "name": "Food", "keywords": ["Cafe", "pizza"]},
            {"id": 2, "name": "Uncategorized", "keywords": []},
        ]}

        # Act
        first = initialize_defaults(category_repo, categorization_repo, config=config)
        second = initialize_defaults(category_repo, categorization_repo, config=config)

        # Assert
        assert first == second == 2
        assert len(category_repo.list_all()) == 2
        assert len(categorization_repo.get_default_keyword_mappings()) == 2
        assert categorization_repo.get_keyword_mapping("cafe").category_id == 1
        assert category_repo.uncategorized_category().id == 2
