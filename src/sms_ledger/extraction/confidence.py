from typing import Optional

from sms_ledger.config.settings import PipelineSettings
from sms_ledger.extraction.fields import CANONICAL_FIELDS
from sms_ledger.extraction.models import ExtractionDetails


class ConfidenceScorer:
    """
    Rates how trustworthy an extraction is, from 0.0 to 1.0.

    score = fraction of the five canonical fields found
            + pattern_match_bonus   (a registered pattern was used)
            - latency_penalty       (processing took longer than the budget)
    clamped to [0.0, 1.0].

    The weights come from PipelineSettings (pipeline.json).
    """

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or PipelineSettings()

    def score(self, details: ExtractionDetails) -> float:
        found = [f for f in details.extracted_fields if f in CANONICAL_FIELDS]
        score = len(set(found)) / len(CANONICAL_FIELDS)

        if details.used_registered_pattern:
            score += self.settings.pattern_match_bonus

        if details.processing_time_ms > self.settings.latency_budget_ms:
            score -= self.settings.latency_penalty

        return max(0.0, min(1.0, score))

    def __repr__(self) -> str:
        s = self.settings
        return (
            f"ConfidenceScorer(bonus={s.pattern_match_bonus}, "
            f"budget={s.latency_budget_ms}ms, penalty={s.latency_penalty})"
        )
