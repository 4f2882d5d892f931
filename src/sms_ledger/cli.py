import logging
import typer
from dataclasses import replace
from pathlib import Path
from typing import Optional
from datetime import datetime

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from sms_ledger.categorization import SmartCategorizer, initialize_defaults
from sms_ledger.config.settings import PipelineSettings
from sms_ledger.database.connection import DatabaseConfig, DatabaseManager
from sms_ledger.domain.models import InboundMessage, Transaction
from sms_ledger.extraction import AccountResolver, PatternRegistry, TransactionExtractor
from sms_ledger.repositories.memory import (
    InMemoryCategorizationRepository,
    InMemoryCategoryRepository,
    InMemoryTransactionRepository,
)
from sms_ledger.repositories.sqlite_categorization_repository import (
    SQLiteCategorizationRepository,
    SQLiteCategoryRepository,
)
from sms_ledger.repositories.sqlite_transaction_repository import SQLiteTransactionRepository
from sms_ledger.services.message_source import load_messages_csv
from sms_ledger.services.transaction_service import TransactionService

app = typer.Typer(
    name="sms-ledger",
    help="Turn bank notification messages into categorized transactions",
    add_completion=False,
)

console = Console()
logger = logging.getLogger("sms_ledger")

class State:
    verbose: bool = False
    db_path: Path = Path("data/ledger.db")
    generic_fallback: bool = False
    service: Optional[TransactionService] = None


state = State()


def build_extractor(settings: PipelineSettings) -> TransactionExtractor:
    """Registry and account resolver loaded from config, wrapped in an extractor"""
    registry = PatternRegistry()
    registry.load_patterns_from_config()

    resolver = AccountResolver()
    try:
        resolver.load_mappings_from_config()
    except FileNotFoundError:
        logger.debug("No accounts.json, account ids will not be resolved")

    return TransactionExtractor(registry, account_resolver=resolver, settings=settings)


def build_service(db_path: Optional[Path], settings: PipelineSettings) -> TransactionService:
    """
    Wire the pipeline.

    With a db_path everything is stored in SQLite (schema and defaults are
    created on first use); with None the stores live in memory.
    """
    if db_path is None:
        category_repo = InMemoryCategoryRepository()
        categorization_repo = InMemoryCategorizationRepository()
        transaction_repo = InMemoryTransactionRepository()
    else:
        db_manager = DatabaseManager(DatabaseConfig(db_path))
        db_manager.initialize()
        category_repo = SQLiteCategoryRepository(db_manager)
        categorization_repo = SQLiteCategorizationRepository(db_manager)
        transaction_repo = SQLiteTransactionRepository(db_manager)

    if not category_repo.list_all():
        initialize_defaults(category_repo, categorization_repo)

    return TransactionService(
        transaction_repo,
        build_extractor(settings),
        SmartCategorizer(category_repo, categorization_repo),
    )


def load_settings() -> PipelineSettings:
    settings = PipelineSettings.from_config()
    if state.generic_fallback:
        settings = replace(settings, generic_fallback=True)
    return settings


def get_service() -> TransactionService:
    """Lazy-load the database-backed service"""
    if state.service is None:
        state.service = build_service(state.db_path, load_settings())
    return state.service


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    db_path: Path = typer.Option(
        Path("data/ledger.db"),
        "--db",
        help="SQLite database file",
    ),
    generic_fallback: bool = typer.Option(
        False,
        "--generic-fallback",
        help="Try generic extraction for senders without a registered pattern",
    ),
):
    """
    SMS Ledger - Extract, categorize, and learn from bank messages.
    """
    configure_logging(verbose)
    state.verbose = verbose
    state.db_path = db_path
    state.generic_fallback = generic_fallback
    state.service = None


def _fail(e: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {e}")
    if state.verbose:
        console.print_exception()
    raise typer.Exit(code=1)


def _amount_markup(txn: Transaction) -> str:
    color = "red" if txn.type.is_outgoing else "green"
    sign = "-" if txn.type.is_outgoing else "+"
    return f"[{color}]{sign}{txn.amount:,.2f}[/{color}]"


@app.command(name="extract")
def extract(
    sender: str = typer.Argument(..., help="Message sender (e.g. VK-HDFCBK)"),
    body: str = typer.Argument(..., help="Message text"),
):
    """
    Extract and categorize a single message without saving it.

    Examples:
        sms-ledger extract VK-HDFCBK "Rs.2500.00 debited from A/c no XXXX1234 at AMAZON on 15-01-2024"
    """
    try:
        service = build_service(None, load_settings())

        outcome = service.process_message(
            InboundMessage(sender=sender, body=body, received_at=datetime.now()),
            dry_run=True,
        )

        if not outcome.success:
            console.print(Panel(
                f"[yellow]{outcome.error_type.value}[/yellow]\n{outcome.error_message}",
                title="Not a transaction",
                border_style="yellow",
            ))
            raise typer.Exit(code=1)

        txn = outcome.transaction
        details = outcome.extraction.details
        pattern = details.matched_pattern.institution if details.matched_pattern else "generic"
        console.print(Panel.fit(
            f"[bold]Amount:[/bold]     {_amount_markup(txn)}\n"
            f"[bold]Type:[/bold]       {txn.type.value}\n"
            f"[bold]Merchant:[/bold]   {txn.merchant}\n"
            f"[bold]Date:[/bold]       {txn.date:%Y-%m-%d %H:%M}\n"
            f"[bold]Account:[/bold]    {txn.account_identifier or '-'}\n"
            f"[bold]Category:[/bold]   {outcome.categorization}\n"
            f"[bold]Pattern:[/bold]    {pattern}\n"
            f"[bold]Confidence:[/bold] {outcome.extraction_confidence:.2f} "
            f"({details.processing_time_ms:.1f} ms)",
            title="[bold cyan]Extracted Transaction[/bold cyan]",
            border_style="cyan",
        ))

    except typer.Exit:
        raise
    except Exception as e:
        _fail(e)


@app.command(name="import")
def import_messages(
    filepath: Path = typer.Argument(
        ...,
        help="CSV file with sender, body and optional received_at columns",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Preview without saving to database",
    ),
):
    """
    Import messages from a CSV export.

    Examples:
        sms-ledger import messages.csv
        sms-ledger import messages.csv --dry-run
    """
    try:
        messages = load_messages_csv(filepath)

        console.print(Panel.fit(
            f"[bold cyan]Import Configuration[/bold cyan]\n"
            f"File: {filepath}\n"
            f"Messages: {len(messages)}\n"
            f"Mode: {'DRY RUN' if dry_run else 'LIVE'}",
            border_style="cyan"
        ))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Processing messages...", total=None)
            result = get_service().process_messages(messages, dry_run=dry_run)
            progress.update(task, completed=True)

        if result.processed:
            preview_table = Table(title="Transactions (first 10)")
            preview_table.add_column("Date", style="cyan")
            preview_table.add_column("Merchant", style="white")
            preview_table.add_column("Category", style="magenta")
            preview_table.add_column("Amount", justify="right")
            preview_table.add_column("Confidence", justify="right")

            for outcome in result.processed[:10]:
                txn = outcome.transaction
                preview_table.add_row(
                    f"{txn.date:%Y-%m-%d}",
                    txn.merchant[:40],
                    txn.category_name or "Uncategorized",
                    _amount_markup(txn),
                    f"{outcome.extraction_confidence:.2f}",
                )

            console.print(preview_table)

        console.print("")
        console.print(str(result))
        if dry_run:
            console.print("[yellow]DRY RUN - No changes made[/yellow]")

    except Exception as e:
        _fail(e)


@app.command(name="list")
def list_transactions(
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show", min=1),
):
    """
    Show the most recent stored transactions.
    """
    try:
        transactions = get_service().get_transactions()

        if not transactions:
            console.print(Panel(
                "[yellow]No transactions stored yet[/yellow]",
                title="Empty Ledger",
                border_style="yellow"
            ))
            return

        txn_table = Table(show_header=True, padding=(0, 1))
        txn_table.add_column("ID", style="dim", justify="right")
        txn_table.add_column("Date", style="cyan", width=12)
        txn_table.add_column("Merchant", style="white", max_width=40)
        txn_table.add_column("Category", style="magenta")
        txn_table.add_column("Account", justify="right")
        txn_table.add_column("Amount", justify="right")

        for txn in transactions[:limit]:
            txn_table.add_row(
                str(txn.id),
                f"{txn.date:%Y-%m-%d}",
                txn.merchant,
                txn.category_name or "Uncategorized",
                txn.account_identifier or "-",
                _amount_markup(txn),
            )

        console.print(txn_table)
        if len(transactions) > limit:
            console.print(f"\n[dim]Showing {limit} of {len(transactions)} transactions[/dim]")

    except Exception as e:
        _fail(e)


@app.command(name="categorize")
def categorize(
    overwrite: bool = typer.Option(
        False,
        "--overwrite",
        help="Re-categorize transactions that already have a category",
    ),
):
    """
    Re-run categorization over stored transactions.
    """
    try:
        count = get_service().categorize_transactions(overwrite=overwrite)
        console.print(f"[bold green]✓ Categorized {count} transactions[/bold green]")
    except Exception as e:
        _fail(e)


@app.command(name="learn")
def learn(
    transaction_id: int = typer.Argument(..., help="ID of the transaction to correct"),
    category: str = typer.Argument(..., help="Correct category name"),
):
    """
    Correct a transaction's category and remember it for the merchant.

    Examples:
        sms-ledger learn 12 "Food & Dining"
    """
    try:
        txn = get_service().correct_category(transaction_id, category)
        console.print(
            f"[bold green]✓[/bold green] {txn.merchant} → {txn.category_name} "
            f"(confidence {txn.category_confidence:.2f})"
        )
    except Exception as e:
        _fail(e)


@app.command(name="suggest")
def suggest(merchant: str = typer.Argument(..., help="Merchant name")):
    """
    Show ranked category suggestions for a merchant.
    """
    try:
        suggestions = get_service().suggest_categories(merchant)
        if not suggestions:
            console.print(f"[yellow]No suggestions for '{merchant}'[/yellow]")
            return

        table = Table(title=f"Suggestions for {merchant}")
        table.add_column("Category", style="magenta")
        table.add_column("Confidence", justify="right")
        table.add_column("Source", style="dim")
        for suggestion in suggestions:
            table.add_row(
                suggestion.category.name,
                f"{suggestion.confidence:.2f}",
                suggestion.reason.value,
            )
        console.print(table)
    except Exception as e:
        _fail(e)


@app.command(name="patterns")
def patterns():
    """
    List registered institution patterns.
    """
    try:
        table = Table(title="Message Patterns")
        table.add_column("ID", justify="right", style="dim")
        table.add_column("Institution", style="cyan")
        table.add_column("Sender", style="white")
        table.add_column("Active", justify="center")

        for pattern in get_service().extractor.patterns():
            table.add_row(
                str(pattern.id),
                pattern.institution,
                pattern.sender_pattern,
                "[green]✓[/green]" if pattern.is_active else "[red]✗[/red]",
            )
        console.print(table)
    except Exception as e:
        _fail(e)


@app.command(name="accounts")
def accounts():
    """
    List account identifier mappings from accounts.json.
    """
    try:
        resolver = get_service().extractor.account_resolver
        mappings = resolver.all_mappings() if resolver else []

        if not mappings:
            console.print("[yellow]No account mappings configured[/yellow]")
            return

        table = Table(title="Account Mappings")
        table.add_column("Account", justify="right")
        table.add_column("Institution", style="cyan")
        table.add_column("Identifier", style="white")
        table.add_column("Active", justify="center")
        for mapping in mappings:
            table.add_row(
                str(mapping.account_id),
                mapping.institution,
                mapping.account_identifier,
                "[green]✓[/green]" if mapping.is_active else "[red]✗[/red]",
            )
        console.print(table)
    except Exception as e:
        _fail(e)


def cli_main():
    """Entry point for the CLI"""
    app()


if __name__ == "__main__":
    cli_main()
