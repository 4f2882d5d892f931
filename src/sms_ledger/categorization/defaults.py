import logging
from typing import Any, Dict, List, Optional

from sms_ledger.config.settings import ConfigLoader
from sms_ledger.domain.models import Category, KeywordMapping
from sms_ledger.repositories.base import CategorizationRepository, CategoryRepository

logger = logging.getLogger(__name__)


def load_default_categories(config: Optional[Dict[str, Any]] = None) -> List[Category]:
    """Categories declared in categories.json (or an injected config)"""
    if config is None:
        config = ConfigLoader.load_categories_config()

    return [
        Category(
            id=entry["id"],
            name=entry["name"],
            icon=entry.get("icon", "category"),
            color=entry.get("color", "#9E9E9E"),
            is_default=True,
        )
        for entry in config["categories"]
    ]


def initialize_defaults(
    category_repository: CategoryRepository,
    categorization_repository: CategorizationRepository,
    config: Optional[Dict[str, Any]] = None,
) -> int:
    """
    Seed the default categories and their default keyword table.

    Safe to run more than once: categories are saved by id and keyword
    mappings are upserted.

    Args:
        category_repository: Store to seed categories into
        categorization_repository: Store to seed keyword mappings into
        config: Optional config dict. If None, loads categories.json.

    Returns:
        Number of keyword mappings written
    """
    if config is None:
        config = ConfigLoader.load_categories_config()

    for category in load_default_categories(config):
        category_repository.save(category)

    written = 0
    for entry in config["categories"]:
        for keyword in entry.get("keywords", []):
            categorization_repository.add_keyword_mapping(
                KeywordMapping(keyword=keyword.lower(), category_id=entry["id"], is_default=True)
            )
            written += 1

    logger.info(
        "Seeded %d categories and %d keyword mappings",
        len(config["categories"]), written,
    )
    return written
