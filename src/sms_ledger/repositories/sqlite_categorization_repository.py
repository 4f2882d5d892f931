import sqlite3
from datetime import datetime
from typing import List, Optional

from sms_ledger.database.connection import DatabaseManager
from sms_ledger.domain.models import Category, CategoryRule, KeywordMapping, MerchantInfo
from sms_ledger.repositories.base import (
    CategorizationRepository,
    CategoryNotFoundError,
    CategoryRepository,
)

UNCATEGORIZED = "Uncategorized"


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _to_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteCategoryRepository(CategoryRepository):
    """SQLite implementation of the category store."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def list_all(self) -> List[Category]:
        with self.db.reading() as conn:
            rows = conn.execute("SELECT * FROM categories ORDER BY id").fetchall()
        return [self._row_to_category(row) for row in rows]

    def uncategorized_category(self) -> Category:
        category = self.get_by_name(UNCATEGORIZED)
        if category is None:
            raise CategoryNotFoundError(
                f"'{UNCATEGORIZED}' category is missing; run scripts/init_db.py"
            )
        return category

    def get_by_id(self, category_id: int) -> Optional[Category]:
        with self.db.reading() as conn:
            row = conn.execute(
                "SELECT * FROM categories WHERE id = ?", (category_id,)
            ).fetchone()
        return self._row_to_category(row) if row else None

    def get_by_name(self, name: str) -> Optional[Category]:
        # name column is COLLATE NOCASE
        with self.db.reading() as conn:
            row = conn.execute(
                "SELECT * FROM categories WHERE name = ?", (name,)
            ).fetchone()
        return self._row_to_category(row) if row else None

    def save(self, category: Category) -> Category:
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO categories (id, name, icon, color, is_default)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    icon = excluded.icon,
                    color = excluded.color,
                    is_default = excluded.is_default
                """,
                (category.id, category.name, category.icon, category.color, int(category.is_default)),
            )
        return category

    def _row_to_category(self, row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"],
            name=row["name"],
            icon=row["icon"],
            color=row["color"],
            is_default=bool(row["is_default"]),
        )


class SQLiteCategorizationRepository(CategorizationRepository):
    """
    SQLite implementation of the rule, merchant and keyword store.

    Upserts use INSERT ... ON CONFLICT DO UPDATE, so each is a single
    atomic statement keyed on the normalized merchant name. The UPDATE
    expressions read the row's pre-update values.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    # Rules

    def get_rules_for_merchant(self, merchant_key: str) -> List[CategoryRule]:
        with self.db.reading() as conn:
            rows = conn.execute(
                """
                SELECT * FROM category_rules
                WHERE merchant_key = ?
                ORDER BY is_user_defined DESC, confidence DESC
                """,
                (merchant_key,),
            ).fetchall()
        return [self._row_to_rule(row) for row in rows]

    def insert_rule(self, rule: CategoryRule) -> CategoryRule:
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO category_rules (
                    merchant_pattern, merchant_key, category_id, confidence,
                    is_user_defined, usage_count, last_used
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule.merchant_pattern,
                    rule.merchant_key,
                    rule.category_id,
                    rule.confidence,
                    int(rule.is_user_defined),
                    rule.usage_count,
                    _to_text(rule.last_used),
                ),
            )
            rule_id = cursor.lastrowid
        return self._get_rule(rule_id)

    def update_rule(self, rule: CategoryRule) -> CategoryRule:
        if rule.id is None:
            raise ValueError("Cannot update rule without ID")

        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE category_rules
                SET merchant_pattern = ?, merchant_key = ?, category_id = ?,
                    confidence = ?, is_user_defined = ?, usage_count = ?,
                    last_used = ?
                WHERE id = ?
                """,
                (
                    rule.merchant_pattern,
                    rule.merchant_key,
                    rule.category_id,
                    rule.confidence,
                    int(rule.is_user_defined),
                    rule.usage_count,
                    _to_text(rule.last_used),
                    rule.id,
                ),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Rule {rule.id} not found")
        return rule

    def increment_rule_usage(self, rule_id: int, used_at: datetime) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE category_rules
                SET usage_count = usage_count + 1, last_used = ?
                WHERE id = ?
                """,
                (_to_text(used_at), rule_id),
            )

    def upsert_user_rule(
        self,
        rule: CategoryRule,
        confidence_cap: float,
        confidence_step: float,
    ) -> CategoryRule:
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO category_rules (
                    merchant_pattern, merchant_key, category_id, confidence,
                    is_user_defined, usage_count, last_used
                ) VALUES (?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(merchant_key, is_user_defined) DO UPDATE SET
                    merchant_pattern = excluded.merchant_pattern,
                    category_id = excluded.category_id,
                    confidence = MIN(?, confidence + ? / (usage_count + 1.0)),
                    usage_count = usage_count + 1,
                    last_used = excluded.last_used
                """,
                (
                    rule.merchant_pattern,
                    rule.merchant_key,
                    rule.category_id,
                    rule.confidence,
                    rule.usage_count,
                    _to_text(rule.last_used),
                    confidence_cap,
                    confidence_step,
                ),
            )
            row = conn.execute(
                "SELECT * FROM category_rules WHERE merchant_key = ? AND is_user_defined = 1",
                (rule.merchant_key,),
            ).fetchone()
        return self._row_to_rule(row)

    def _get_rule(self, rule_id: int) -> CategoryRule:
        with self.db.reading() as conn:
            row = conn.execute(
                "SELECT * FROM category_rules WHERE id = ?", (rule_id,)
            ).fetchone()
        return self._row_to_rule(row)

    # Merchant history

    def get_merchant_by_normalized_name(self, normalized_name: str) -> Optional[MerchantInfo]:
        with self.db.reading() as conn:
            row = conn.execute(
                "SELECT * FROM merchant_info WHERE normalized_name = ?",
                (normalized_name,),
            ).fetchone()
        return self._row_to_merchant(row) if row else None

    def insert_merchant(self, merchant: MerchantInfo) -> MerchantInfo:
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO merchant_info (
                    name, normalized_name, category_id, confidence,
                    transaction_count, last_updated
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                self._merchant_params(merchant),
            )
        return self.get_merchant_by_normalized_name(merchant.normalized_name)

    def upsert_merchant_category(
        self,
        merchant: MerchantInfo,
        confidence_floor: float,
    ) -> MerchantInfo:
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO merchant_info (
                    name, normalized_name, category_id, confidence,
                    transaction_count, last_updated
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(normalized_name) DO UPDATE SET
                    name = excluded.name,
                    confidence = MAX(
                        ?,
                        confidence * (1.0 - 1.0 / (transaction_count + 1))
                        + (CASE WHEN category_id IS excluded.category_id THEN 1.0 ELSE 0.0 END)
                          * (1.0 / (transaction_count + 1))
                    ),
                    category_id = excluded.category_id,
                    last_updated = excluded.last_updated
                """,
                self._merchant_params(merchant) + (confidence_floor,),
            )
            row = conn.execute(
                "SELECT * FROM merchant_info WHERE normalized_name = ?",
                (merchant.normalized_name,),
            ).fetchone()
        return self._row_to_merchant(row)

    def increment_merchant_transaction_count(self, normalized_name: str) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE merchant_info
                SET transaction_count = transaction_count + 1
                WHERE normalized_name = ?
                """,
                (normalized_name,),
            )

    def find_similar_merchants(self, token: str, limit: int = 10) -> List[MerchantInfo]:
        with self.db.reading() as conn:
            rows = conn.execute(
                """
                SELECT * FROM merchant_info
                WHERE normalized_name LIKE '%' || ? || '%'
                ORDER BY confidence DESC
                LIMIT ?
                """,
                (token, limit),
            ).fetchall()
        return [self._row_to_merchant(row) for row in rows]

    # Keywords

    def get_keyword_mapping(self, keyword: str) -> Optional[KeywordMapping]:
        with self.db.reading() as conn:
            row = conn.execute(
                """
                SELECT * FROM keyword_mappings
                WHERE keyword = ?
                ORDER BY is_default ASC
                LIMIT 1
                """,
                (keyword,),
            ).fetchone()
        return self._row_to_keyword(row) if row else None

    def get_default_keyword_mappings(self) -> List[KeywordMapping]:
        with self.db.reading() as conn:
            rows = conn.execute(
                "SELECT * FROM keyword_mappings WHERE is_default = 1 ORDER BY keyword"
            ).fetchall()
        return [self._row_to_keyword(row) for row in rows]

    def add_keyword_mapping(self, mapping: KeywordMapping) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO keyword_mappings (keyword, category_id, is_default)
                VALUES (?, ?, ?)
                ON CONFLICT(keyword, is_default) DO UPDATE SET
                    category_id = excluded.category_id
                """,
                (mapping.keyword, mapping.category_id, int(mapping.is_default)),
            )

    def remove_keyword_mapping(self, keyword: str) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM keyword_mappings WHERE keyword = ? AND is_default = 0",
                (keyword,),
            )
            return cursor.rowcount > 0

    def get_keywords_for_category(self, category_id: int) -> List[str]:
        with self.db.reading() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT keyword FROM keyword_mappings
                WHERE category_id = ?
                ORDER BY keyword
                """,
                (category_id,),
            ).fetchall()
        return [row["keyword"] for row in rows]

    # Row mapping

    def _merchant_params(self, merchant: MerchantInfo) -> tuple:
        return (
            merchant.name,
            merchant.normalized_name,
            merchant.category_id,
            merchant.confidence,
            merchant.transaction_count,
            _to_text(merchant.last_updated),
        )

    def _row_to_rule(self, row: sqlite3.Row) -> CategoryRule:
        return CategoryRule(
            id=row["id"],
            merchant_pattern=row["merchant_pattern"],
            merchant_key=row["merchant_key"],
            category_id=row["category_id"],
            confidence=row["confidence"],
            is_user_defined=bool(row["is_user_defined"]),
            usage_count=row["usage_count"],
            last_used=_to_datetime(row["last_used"]),
        )

    def _row_to_merchant(self, row: sqlite3.Row) -> MerchantInfo:
        return MerchantInfo(
            id=row["id"],
            name=row["name"],
            normalized_name=row["normalized_name"],
            category_id=row["category_id"],
            confidence=row["confidence"],
            transaction_count=row["transaction_count"],
            last_updated=_to_datetime(row["last_updated"]),
        )

    def _row_to_keyword(self, row: sqlite3.Row) -> KeywordMapping:
        return KeywordMapping(
            keyword=row["keyword"],
            category_id=row["category_id"],
            is_default=bool(row["is_default"]),
        )
