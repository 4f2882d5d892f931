import logging
import time
from typing import Callable, List, Optional

from sms_ledger.config.settings import PipelineSettings
from sms_ledger.domain.enums import ExtractionFailure, ExtractionStage, TransactionSource, TransactionType
from sms_ledger.domain.models import InboundMessage, MessagePattern, Transaction
from sms_ledger.domain.results import ErrorType
from sms_ledger.extraction.accounts import AccountResolver
from sms_ledger.extraction.confidence import ConfidenceScorer
from sms_ledger.extraction.fallback import UNKNOWN_MERCHANT
from sms_ledger.extraction.fields import ExtractedFields, FieldExtractor
from sms_ledger.extraction.models import ExtractionDetails, ExtractionResult
from sms_ledger.extraction.registry import PatternRegistry

logger = logging.getLogger(__name__)


class TransactionExtractor:
    """
    Turns one inbound message into a transaction candidate.

    Stages: RECEIVED -> PATTERN_LOOKUP -> FIELD_EXTRACTION ->
    ACCOUNT_RESOLUTION -> SCORED. A failure at any stage returns an
    ExtractionResult naming the reason; nothing is raised and nothing is
    persisted.

    Usage:
        registry = PatternRegistry()
        registry.load_patterns_from_config()
        extractor = TransactionExtractor(registry)

        result = extractor.extract(InboundMessage(sender, body, received_at))
        if result.is_successful:
            save(result.transaction)
    """

    def __init__(
        self,
        registry: PatternRegistry,
        account_resolver: Optional[AccountResolver] = None,
        field_extractor: Optional[FieldExtractor] = None,
        scorer: Optional[ConfidenceScorer] = None,
        settings: Optional[PipelineSettings] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Args:
            registry: Source of institution patterns
            account_resolver: Optional resolver for internal account ids
            field_extractor: Field extractor (default FieldExtractor())
            scorer: Confidence scorer (default built from settings)
            settings: Pipeline settings; generic_fallback enables
                pattern-less extraction for unknown senders
            clock: Seconds counter used to time extraction
        """
        self.settings = settings or PipelineSettings()
        self.registry = registry
        self.account_resolver = account_resolver
        self.field_extractor = field_extractor or FieldExtractor()
        self.scorer = scorer or ConfidenceScorer(self.settings)
        self._clock = clock

    @property
    def generic_fallback(self) -> bool:
        return self.settings.generic_fallback

    def extract(self, message: InboundMessage) -> ExtractionResult:
        """
        Extract a transaction from a message.

        Args:
            message: Inbound message (sender, body, received_at)

        Returns:
            ExtractionResult: successful with a transaction and confidence,
            or failed with failure_reason and error_type set
        """
        started = self._clock()

        if not message.body or not message.body.strip() or not message.is_potential_transaction():
            return self._fail(
                ExtractionFailure.NOT_A_TRANSACTION,
                ErrorType.INVALID_FORMAT,
                "Message lacks transaction semantics",
                ExtractionStage.RECEIVED,
                started,
            )

        pattern = self.registry.find_by_sender(message.sender)
        if pattern is None and not self.generic_fallback:
            return self._fail(
                ExtractionFailure.NO_PATTERN_MATCH,
                ErrorType.NO_PATTERN_MATCH,
                f"No pattern registered for sender '{message.sender}'",
                ExtractionStage.PATTERN_LOOKUP,
                started,
                pattern=None,
            )

        fields = self.field_extractor.extract(message.body, pattern)

        amount_failure = self._check_amount(fields)
        if amount_failure is not None:
            error_type, error_message = amount_failure
            return self._fail(
                ExtractionFailure.AMOUNT_VALIDATION_FAILED,
                error_type,
                error_message,
                ExtractionStage.FIELD_EXTRACTION,
                started,
                pattern=pattern,
                fields=fields,
            )

        account_id = self._resolve_account(pattern, fields)

        transaction = Transaction(
            amount=fields.amount,
            type=fields.direction or TransactionType.EXPENSE,
            merchant=fields.merchant or UNKNOWN_MERCHANT,
            date=fields.resolved_date(message.received_at),
            description=message.body,
            account_identifier=fields.account_identifier,
            account_id=account_id,
            source=TransactionSource.AUTOMATIC,
            raw_data=message.body,
        )

        details = ExtractionDetails(
            extracted_fields=fields.found_fields,
            matched_pattern=pattern,
            processing_time_ms=self._elapsed_ms(started),
            used_fallback=pattern is None or fields.used_fallback,
            stage=ExtractionStage.SCORED,
        )
        confidence = self.scorer.score(details)

        logger.debug(
            "Extracted %r from %s with confidence %.2f",
            transaction, message.sender, confidence,
        )
        return ExtractionResult.success(transaction, confidence, details)

    def register_pattern(self, pattern: MessagePattern) -> MessagePattern:
        return self.registry.register(pattern)

    def patterns(self) -> List[MessagePattern]:
        return self.registry.all_patterns()

    def _check_amount(self, fields: ExtractedFields):
        if fields.amount_error is not None:
            return ErrorType.VALIDATION_FAILED, fields.amount_error
        if fields.amount is None:
            return ErrorType.AMOUNT_PARSING_FAILED, "No amount found in message"
        if fields.amount <= 0:
            return ErrorType.VALIDATION_FAILED, f"Amount must be positive, got {fields.amount}"
        return None

    def _resolve_account(
        self,
        pattern: Optional[MessagePattern],
        fields: ExtractedFields,
    ) -> Optional[int]:
        if self.account_resolver is None or pattern is None or not fields.account_identifier:
            return None
        return self.account_resolver.find_account(pattern.institution, fields.account_identifier)

    def _fail(
        self,
        reason: ExtractionFailure,
        error_type: ErrorType,
        message: str,
        stage: ExtractionStage,
        started: float,
        pattern: Optional[MessagePattern] = None,
        fields: Optional[ExtractedFields] = None,
    ) -> ExtractionResult:
        details = ExtractionDetails(
            extracted_fields=fields.found_fields if fields else (),
            matched_pattern=pattern,
            processing_time_ms=self._elapsed_ms(started),
            used_fallback=bool(fields and fields.used_fallback),
            stage=stage,
        )
        logger.info("Extraction failed (%s): %s", reason.value, message)
        return ExtractionResult.failure(reason, error_type, message, details)

    def _elapsed_ms(self, started: float) -> float:
        return (self._clock() - started) * 1000

    def __repr__(self) -> str:
        return f"TransactionExtractor({self.registry!r}, generic_fallback={self.generic_fallback})"
