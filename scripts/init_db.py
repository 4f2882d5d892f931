#!/usr/bin/env python3
"""
Initialize the ledger database.

Creates the schema and seeds the default categories and keyword table.
Safe to run more than once.
"""
import sys
from pathlib import Path

from sms_ledger.categorization import initialize_defaults
from sms_ledger.database.connection import DatabaseConfig, DatabaseManager, SCHEMA_PATH
from sms_ledger.repositories.sqlite_categorization_repository import (
    SQLiteCategorizationRepository,
    SQLiteCategoryRepository,
)

def main():
    """initialize the database."""

    config = DatabaseConfig(sys.argv[1]) if len(sys.argv) > 1 else DatabaseConfig()
    print(f"Initializing database at: {config.db_path}")

    with DatabaseManager(config) as db:
        print(f"Executing schema from: {SCHEMA_PATH}")
        db.initialize()

        keywords = initialize_defaults(
            SQLiteCategoryRepository(db),
            SQLiteCategorizationRepository(db),
        )

        with db.reading() as conn:
            row = conn.execute(
                "SELECT version, description FROM schema_version ORDER BY version DESC LIMIT 1"
            ).fetchone()
            categories = conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0]

        if row:
            print("✓ Database initialized successfully!")
            print(f"  Schema version: {row['version']}")
            print(f"  Description: {row['description']}")
            print(f"  Categories: {categories}, default keywords: {keywords}")
        else:
            print("✗ Database initialization may have failed")

if __name__ == "__main__":
    main()
