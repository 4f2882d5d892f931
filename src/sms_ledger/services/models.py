"""
Service layer models - DTOs for service operations.

These models represent the results of service operations, not domain entities.
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sms_ledger.domain.models import CategorizationResult, InboundMessage, Transaction
from sms_ledger.domain.results import ErrorType
from sms_ledger.extraction.models import ExtractionResult


@dataclass
class ProcessingOutcome:
    """What happened to one message on its way through the pipeline"""
    message: InboundMessage
    transaction: Optional[Transaction] = None
    extraction: Optional[ExtractionResult] = None
    categorization: Optional[CategorizationResult] = None
    error_type: Optional[ErrorType] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.transaction is not None and self.error_type is None

    @property
    def extraction_confidence(self) -> float:
        return self.extraction.confidence if self.extraction else 0.0


@dataclass
class BatchResult:
    """
    Result of processing a batch of messages.

    Provides detailed feedback about what happened:
    - How many messages were seen
    - Which ones became transactions
    - Which ones were skipped, and why
    """
    total_messages: int
    processed: List[ProcessingOutcome] = field(default_factory=list)
    skipped: List[ProcessingOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def transactions(self) -> List[Transaction]:
        return [o.transaction for o in self.processed]

    @property
    def success(self) -> bool:
        """Batch is successful if at least one message became a transaction"""
        return len(self.processed) > 0

    @property
    def failures_by_type(self) -> Dict[str, int]:
        counts = Counter(
            o.error_type.value if o.error_type else "Unknown" for o in self.skipped
        )
        return dict(counts)

    def __str__(self) -> str:
        "Human-readable summary"
        lines = [
            "Processing summary:",
            f" 📨 Messages: {self.total_messages}",
            f" ✅ Transactions: {len(self.processed)}",
            f" ⏭️ Skipped: {len(self.skipped)}",
        ]

        for error_type, count in sorted(self.failures_by_type.items()):
            lines.append(f"   ❌ {error_type}: {count}")

        return "\n".join(lines)

    def __post_init__(self):
        """Validate counts match lists"""
        if self.total_messages != len(self.processed) + len(self.skipped):
            raise ValueError(
                f"Count mismatch: total_messages={self.total_messages} "
                f"but processed+skipped={len(self.processed) + len(self.skipped)}"
            )
