from enum import Enum

class TransactionType(Enum):
    """Direction of money relative to the account holder"""
    EXPENSE = "Expense" # out
    INCOME = "Income" # in
    TRANSFER_OUT = "TransferOut"
    TRANSFER_IN = "TransferIn"

    @property
    def is_outgoing(self) -> bool:
        return self in (TransactionType.EXPENSE, TransactionType.TRANSFER_OUT)


class TransactionSource(Enum):
    """How a transaction entered the ledger"""
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class CategorizationReason(Enum):
    """Which categorization source produced a result"""
    USER_RULE = "user-rule"
    MERCHANT_HISTORY = "merchant-history"
    SIMILARITY_INFERENCE = "similarity-inference"
    KEYWORD_MATCH = "keyword-match"
    DEFAULT = "default"


class ExtractionFailure(Enum):
    """Reasons a message could not be turned into a transaction"""
    NO_PATTERN_MATCH = "no-pattern-match"
    AMOUNT_VALIDATION_FAILED = "amount-validation-failed"
    NOT_A_TRANSACTION = "not-a-transaction"


class ExtractionStage(Enum):
    """Last stage an extraction reached"""
    RECEIVED = "received"
    PATTERN_LOOKUP = "pattern-lookup"
    FIELD_EXTRACTION = "field-extraction"
    ACCOUNT_RESOLUTION = "account-resolution"
    SCORED = "scored"
