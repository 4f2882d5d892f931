import pytest
from pathlib import Path
from typer.testing import CliRunner

from sms_ledger.cli import app
from sms_ledger.database.connection import DatabaseConfig, DatabaseManager
from sms_ledger.repositories.sqlite_transaction_repository import SQLiteTransactionRepository

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "ledger.db"


@pytest.fixture
def messages_csv(tmp_path) -> Path:
    path = tmp_path / "messages.csv"
    path.write_text(
        "sender,body,received_at\n"
        'VK-HDFCBK,"Rs.2500.00 debited from A/c no XXXX1234 at AMAZON INDIA on 15-01-2024 14:30:25",15-01-2024\n'
        'VK-PAYTMB,"Rs 150 paid to CHAI POINT on 12-02-2024. Wallet 9876 balance Rs 850",12-02-2024\n'
        "FRIEND,Dinner at 8?,12-02-2024\n",
        encoding="utf-8",
    )
    return path


def stored_transactions(db_path: Path):
    with DatabaseManager(DatabaseConfig(db_path)) as db:
        return SQLiteTransactionRepository(db).get_all()


@pytest.mark.integration
class TestExtractCommand:

    def test_extract_prints_transaction(self, db_path):
        # Act
        result = runner.invoke(app, [
            "--db", str(db_path),
            "extract", "VK-HDFCBK",
            "Rs.2500.00 debited from A/c no XXXX1234 at AMAZON INDIA on 15-01-2024 14:30:25",
        ])

        # Assert
        assert result.exit_code == 0, result.output
        assert "AMAZON INDIA" in result.output
        assert "Shopping" in result.output
        assert not db_path.exists()

    def test_extract_non_transaction_exits_nonzero(self, db_path):
        result = runner.invoke(app, ["--db", str(db_path), "extract", "FRIEND", "Hey, how are you?"])

        assert result.exit_code == 1
        assert "InvalidFormat" in result.output


@pytest.mark.integration
class TestImportAndLearn:

    def test_dry_run_import_saves_nothing(self, db_path, messages_csv):
        # Act
        result = runner.invoke(app, ["--db", str(db_path), "import", str(messages_csv), "--dry-run"])

        # Assert
        assert result.exit_code == 0, result.output
        assert "DRY RUN" in result.output
        assert stored_transactions(db_path) == []

    def test_import_then_learn(self, db_path, messages_csv):
        # Act
        imported = runner.invoke(app, ["--db", str(db_path), "import", str(messages_csv)])
        chai_id = next(t.id for t in stored_transactions(db_path) if t.merchant == "CHAI POINT")
        learned = runner.invoke(app, ["--db", str(db_path), "learn", str(chai_id), "Food & Dining"])

        # Assert
        assert imported.exit_code == 0, imported.output
        assert "Transactions: 2" in imported.output
        assert learned.exit_code == 0, learned.output
        chai = next(t for t in stored_transactions(db_path) if t.id == chai_id)
        assert chai.category_name == "Food & Dining"

    def test_learn_unknown_category_fails(self, db_path, messages_csv):
        runner.invoke(app, ["--db", str(db_path), "import", str(messages_csv)])

        result = runner.invoke(app, ["--db", str(db_path), "learn", "1", "Pets"])

        assert result.exit_code == 1
        assert "Pets" in result.output


@pytest.mark.integration
class TestListingCommands:

    def test_patterns(self, db_path):
        result = runner.invoke(app, ["--db", str(db_path), "patterns"])

        assert result.exit_code == 0
        assert "HDFC Bank" in result.output

    def test_list_empty_ledger(self, db_path):
        result = runner.invoke(app, ["--db", str(db_path), "list"])

        assert result.exit_code == 0
        assert "No transactions" in result.output

    def test_categorize(self, db_path, messages_csv):
        runner.invoke(app, ["--db", str(db_path), "import", str(messages_csv)])

        result = runner.invoke(app, ["--db", str(db_path), "categorize"])

        assert result.exit_code == 0
        assert "Categorized" in result.output

    def test_accounts_without_mappings(self, db_path):
        result = runner.invoke(app, ["--db", str(db_path), "accounts"])

        assert result.exit_code == 0
        assert "No account mappings" in result.output
