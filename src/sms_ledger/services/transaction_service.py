import logging
from dataclasses import replace
from datetime import date
from typing import Iterable, List, Optional

from sms_ledger.categorization import SmartCategorizer
from sms_ledger.domain.enums import TransactionType
from sms_ledger.domain.models import CategorizationResult, InboundMessage, Transaction
from sms_ledger.domain.results import ErrorType, Failure
from sms_ledger.extraction.error_handler import MessageErrorHandler, extract_with_retry
from sms_ledger.extraction.extractor import TransactionExtractor
from sms_ledger.repositories.base import CategoryNotFoundError, TransactionNotFoundError, TransactionRepository
from sms_ledger.services.models import BatchResult, ProcessingOutcome

logger = logging.getLogger(__name__)


class TransactionService:
    """
    Application layer: message in, categorized transaction out.

    validate -> extract (with retry) -> categorize -> persist.
    An unextractable message becomes a skipped outcome, never an exception.
    """

    def __init__(
        self,
        repository: TransactionRepository,
        extractor: TransactionExtractor,
        categorizer: SmartCategorizer,
        error_handler: Optional[MessageErrorHandler] = None,
    ):
        self.repository = repository
        self.extractor = extractor
        self.categorizer = categorizer
        self._error_handler = error_handler

    @property
    def error_handler(self) -> MessageErrorHandler:
        """Lazy-load error handler with the extractor's settings"""
        if self._error_handler is None:
            self._error_handler = MessageErrorHandler(self.extractor.settings)
        return self._error_handler

    def process_message(self, message: InboundMessage, dry_run: bool = False) -> ProcessingOutcome:
        """
        Run one message through the whole pipeline.

        Args:
            message: Inbound message
            dry_run: Categorize but do not save

        Returns:
            ProcessingOutcome with the saved transaction, or with
            error_type/error_message set when the message was skipped
        """
        checked = extract_with_retry(self.error_handler, self.extractor, message)
        if not checked.is_success:
            logger.info("Skipping message from %s: %s", message.sender, checked)
            return ProcessingOutcome(
                message=message,
                error_type=checked.error_type,
                error_message=checked.message,
            )

        extraction = checked.value
        result = self.categorizer.categorize(extraction.transaction)
        transaction = replace(
            extraction.transaction,
            category=result.category,
            category_confidence=result.confidence,
        )

        if not dry_run:
            transaction = self.repository.save(transaction)

        return ProcessingOutcome(
            message=message,
            transaction=transaction,
            extraction=extraction,
            categorization=result,
        )

    def process_messages(
        self,
        messages: Iterable[InboundMessage],
        dry_run: bool = False,
    ) -> BatchResult:
        """
        Process a batch; each message is independent of the others.

        Returns:
            BatchResult splitting processed from skipped messages
        """
        processed: List[ProcessingOutcome] = []
        skipped: List[ProcessingOutcome] = []

        for message in messages:
            try:
                outcome = self.process_message(message, dry_run=dry_run)
            except Exception as e:
                self.error_handler.log_error(
                    message,
                    Failure(ErrorType.PROCESSING_FAILED, str(e), cause=e),
                    context="process_messages",
                )
                outcome = ProcessingOutcome(
                    message=message,
                    error_type=ErrorType.PROCESSING_FAILED,
                    error_message=str(e),
                )
            (processed if outcome.success else skipped).append(outcome)

        return BatchResult(
            total_messages=len(processed) + len(skipped),
            processed=processed,
            skipped=skipped,
            dry_run=dry_run,
        )

    def correct_category(self, transaction_id: int, category_name: str) -> Transaction:
        """
        Apply a user's category correction and learn from it.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist
            CategoryNotFoundError: If no category has that name
        """
        transaction = self.repository.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(f"Transaction with ID {transaction_id} not found")

        category = self.categorizer.category_repository.get_by_name(category_name)
        if category is None:
            raise CategoryNotFoundError(f"Unknown category '{category_name}'")

        rule = self.categorizer.learn_from_user_input(transaction, category)
        transaction.category = category
        transaction.category_confidence = rule.confidence
        return self.repository.update(transaction)

    def suggest_categories(self, merchant: str) -> List[CategorizationResult]:
        return self.categorizer.suggest_categories(merchant)

    def get_transactions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
        category_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> List[Transaction]:
        """
        Query transactions with optional filters.

        Example:
            ### Get all January 2024 expenses
            transactions = service.get_transactions(
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 31),
                transaction_type=TransactionType.EXPENSE
            )
        """
        return self.repository.get_all(
            start_date=start_date,
            end_date=end_date,
            transaction_type=transaction_type,
            category_id=category_id,
            account_id=account_id,
        )

    def categorize_transactions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        overwrite: bool = False
    ) -> int:
        """
        Categorize stored transactions.

        Args:
            start_date: Only categorize transactions on or after this date
            end_date: Only categorize transactions on or before this date
            overwrite: If True, re-categorize already categorized transactions

        Returns:
            Number of transactions updated
        """
        transactions = self.repository.get_all(start_date=start_date, end_date=end_date)
        if not transactions:
            return 0

        categorized = self.categorizer.categorize_many(transactions, overwrite=overwrite)

        updated = 0
        for before, after in zip(transactions, categorized):
            if after is before:
                continue
            self.repository.update(after)
            updated += 1

        return updated
