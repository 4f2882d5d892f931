"""
Typed results for the message pipeline.

Pipeline failures are returned, not raised, so callers can branch on the
specific ErrorType:

    result = handler.validate_message(message)
    if not result.is_success:
        print(result.error_type, result.message)
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorType(Enum):
    """Failure taxonomy shared by validation, extraction and retry"""
    INVALID_FORMAT = "InvalidFormat"
    NO_PATTERN_MATCH = "NoPatternMatch"
    AMOUNT_PARSING_FAILED = "AmountParsingFailed"
    VALIDATION_FAILED = "ValidationFailed"
    PROCESSING_FAILED = "ProcessingFailed"

    @property
    def is_deterministic(self) -> bool:
        """Deterministic failures give the same answer on every attempt"""
        return self is not ErrorType.PROCESSING_FAILED


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def is_success(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    error_type: ErrorType
    message: str
    cause: Optional[BaseException] = None

    @property
    def is_success(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.error_type.value}: {self.message}"


Result = Union[Success[Any], Failure]
