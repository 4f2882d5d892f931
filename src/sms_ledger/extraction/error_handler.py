import logging
import time
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from sms_ledger.config.settings import PipelineSettings
from sms_ledger.domain.models import InboundMessage
from sms_ledger.domain.results import ErrorType, Failure, Result, Success
from sms_ledger.extraction.extractor import TransactionExtractor
from sms_ledger.extraction.fallback import (
    AMOUNT_CHAIN,
    MERCHANT_CHAIN,
    UNKNOWN_MERCHANT,
    FallbackChain,
    normalize_amount,
    normalize_merchant,
)
from sms_ledger.extraction.models import ExtractionResult

logger = logging.getLogger(__name__)

FINANCIAL_KEYWORDS = (
    "debited",
    "credited",
    "paid",
    "received",
    "withdrawn",
    "transferred",
    "purchase",
    "transaction",
    "deposited",
)


class MessageErrorHandler:
    """
    Validation and bounded retry around extraction.

    validate_message is a cheap pre-filter run before any pattern work.
    process_with_retry re-runs a unit of work a fixed number of times with
    a short fixed delay; only ProcessingFailed is retried, since every
    other error type gives the same answer on the next attempt.

    Example:
        handler = MessageErrorHandler()
        checked = handler.validate_message(message)
        if checked.is_success:
            result = handler.process_with_retry(message, extractor.extract)
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or PipelineSettings()
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.settings.max_attempts

    def validate_message(self, message: InboundMessage) -> Result:
        """
        Reject empty messages and messages without a financial keyword.

        Returns:
            Success(message), or Failure(INVALID_FORMAT)
        """
        body = (message.body or "").strip()
        if not body:
            return Failure(ErrorType.INVALID_FORMAT, "Message body is empty")

        lowered = body.lower()
        if not any(keyword in lowered for keyword in FINANCIAL_KEYWORDS):
            return Failure(
                ErrorType.INVALID_FORMAT,
                "Message does not contain any financial keyword",
            )

        return Success(message)

    def process_with_retry(
        self,
        message: InboundMessage,
        work: Callable[[InboundMessage], Any],
    ) -> Result:
        """
        Run work(message) up to max_attempts times.

        work may return a plain value, a Success/Failure, or an
        ExtractionResult. Exceptions it raises become ProcessingFailed.

        Args:
            message: Message to process
            work: Callable doing the actual processing

        Returns:
            Success wrapping the value, or the last Failure seen
        """
        last_failure: Optional[Failure] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                outcome = _as_result(work(message))
            except Exception as e:
                outcome = Failure(ErrorType.PROCESSING_FAILED, f"Processing failed: {e}", cause=e)

            if outcome.is_success:
                return outcome

            last_failure = outcome
            if outcome.error_type.is_deterministic:
                return outcome

            logger.warning(
                "Attempt %d/%d failed for message from %s: %s",
                attempt, self.max_attempts, message.sender, outcome.message,
            )
            if attempt < self.max_attempts:
                self._sleep(self.settings.retry_delay_seconds)

        self.log_error(message, last_failure, context="retries exhausted")
        return last_failure

    def parse_amount_with_fallback(self, text: str, patterns: Iterable[str] = ()) -> Result:
        """
        Parse an amount using the given regexes, then the generic ones,
        then the largest-plausible-number heuristic.

        Returns:
            Success(Decimal), or Failure(AMOUNT_PARSING_FAILED)
        """
        chain: FallbackChain[Decimal] = AMOUNT_CHAIN.with_leading(list(patterns), normalize_amount)
        amount = chain.resolve(text)

        if amount is None or amount <= 0:
            return Failure(
                ErrorType.AMOUNT_PARSING_FAILED,
                f"Could not extract an amount from: {text[:80]!r}",
            )
        return Success(amount)

    def extract_merchant_with_fallback(self, text: str, patterns: Iterable[str] = ()) -> Result:
        """
        Extract a merchant using the given regexes, then the generic ones.

        A missing merchant is not fatal: returns Success with the
        UNKNOWN_MERCHANT placeholder when nothing matches.
        """
        chain: FallbackChain[str] = MERCHANT_CHAIN.with_leading(list(patterns), normalize_merchant)
        merchant = chain.resolve(text)
        return Success(merchant or UNKNOWN_MERCHANT)

    def log_error(self, message: InboundMessage, failure: Failure, context: str = "") -> None:
        suffix = f" [{context}]" if context else ""
        logger.error(
            "Failed to process message from %s: %s%s",
            message.sender, failure, suffix,
            exc_info=failure.cause,
        )


def _as_result(outcome: Any) -> Result:
    if isinstance(outcome, (Success, Failure)):
        return outcome
    if isinstance(outcome, ExtractionResult):
        if outcome.is_successful:
            return Success(outcome)
        return Failure(outcome.error_type, outcome.error_message or "Extraction failed")
    return Success(outcome)


def extract_with_retry(
    handler: MessageErrorHandler,
    extractor: TransactionExtractor,
    message: InboundMessage,
) -> Result:
    """Validate, then extract with retry. Success wraps the ExtractionResult."""
    checked = handler.validate_message(message)
    if not checked.is_success:
        return checked
    return handler.process_with_retry(message, extractor.extract)
