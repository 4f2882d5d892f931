"""
Extraction results - produced and consumed within one pipeline run.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple

from sms_ledger.domain.enums import ExtractionFailure, ExtractionStage
from sms_ledger.domain.models import MessagePattern, Transaction
from sms_ledger.domain.results import ErrorType


@dataclass(frozen=True)
class ExtractionDetails:
    """Diagnostics for one extraction attempt"""
    extracted_fields: Tuple[str, ...] = ()
    matched_pattern: Optional[MessagePattern] = None
    processing_time_ms: float = 0.0
    used_fallback: bool = False
    stage: ExtractionStage = ExtractionStage.RECEIVED

    @property
    def used_registered_pattern(self) -> bool:
        return self.matched_pattern is not None


@dataclass(frozen=True)
class ExtractionResult:
    """
    Outcome of extracting a transaction from one message.

    A failed result carries both the pipeline-level reason
    (failure_reason) and the error taxonomy entry (error_type) so callers
    can branch on either.
    """
    is_successful: bool
    transaction: Optional[Transaction] = None
    confidence: float = 0.0
    details: ExtractionDetails = field(default_factory=ExtractionDetails)
    failure_reason: Optional[ExtractionFailure] = None
    error_type: Optional[ErrorType] = None
    error_message: Optional[str] = None

    @classmethod
    def success(
        cls,
        transaction: Transaction,
        confidence: float,
        details: ExtractionDetails,
    ) -> "ExtractionResult":
        return cls(
            is_successful=True,
            transaction=transaction,
            confidence=confidence,
            details=details,
        )

    @classmethod
    def failure(
        cls,
        reason: ExtractionFailure,
        error_type: ErrorType,
        message: str,
        details: ExtractionDetails,
    ) -> "ExtractionResult":
        return cls(
            is_successful=False,
            details=details,
            failure_reason=reason,
            error_type=error_type,
            error_message=message,
        )

    def __str__(self) -> str:
        if self.is_successful:
            return f"✅ {self.transaction!r} (confidence {self.confidence:.2f})"
        return f"❌ {self.failure_reason.value}: {self.error_message}"
