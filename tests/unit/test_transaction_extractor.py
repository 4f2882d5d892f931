import pytest
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from itertools import count
from typing import List

from sms_ledger.config.settings import PipelineSettings
from sms_ledger.domain.enums import ExtractionFailure, ExtractionStage, TransactionSource, TransactionType
from sms_ledger.domain.models import InboundMessage, MessagePattern
from sms_ledger.domain.results import ErrorType
from sms_ledger.extraction.accounts import AccountResolver
from sms_ledger.extraction.extractor import TransactionExtractor
from sms_ledger.extraction.registry import PatternRegistry

RECEIVED_AT = datetime(2024, 2, 20, 9, 0, 0)


def frozen_clock() -> float:
    return 100.0


def message(sender: str, body: str) -> InboundMessage:
    return InboundMessage(sender=sender, body=body, received_at=RECEIVED_AT)


@pytest.mark.unit
class TestSuccessfulExtraction:

    def test_hdfc_debit(self, extractor: TransactionExtractor, hdfc_message: InboundMessage):
        # Act
        result = extractor.extract(hdfc_message)

        # Assert
        assert result.is_successful
        txn = result.transaction
        assert txn.amount == Decimal("2500.00")
        assert txn.type == TransactionType.EXPENSE
        assert txn.merchant == "AMAZON INDIA"
        assert txn.account_identifier == "XXXX1234"
        assert txn.date == datetime(2024, 1, 15, 14, 30, 25)
        assert txn.source == TransactionSource.AUTOMATIC
        assert txn.raw_data == hdfc_message.body
        assert result.confidence > 0.8
        assert result.details.matched_pattern.institution == "HDFC Bank"
        assert result.details.stage == ExtractionStage.SCORED

    def test_every_bundled_institution_scores_high(
            self,
            extractor: TransactionExtractor,
            institution_messages: List[InboundMessage]
    ):
        for msg in institution_messages:
            result = extractor.extract(msg)

            assert result.is_successful, f"{msg.sender}: {result}"
            assert result.confidence > 0.8, f"{msg.sender}: {result.confidence}"

    @pytest.mark.parametrize("index,amount,direction,merchant,account", [
        (1, Decimal("1250.50"), TransactionType.EXPENSE, "SWIGGY BANGALORE", "XX5678"),
        (2, Decimal("15000.00"), TransactionType.INCOME, "ACME CORP", "XXXX4321"),
        (3, Decimal("899.00"), TransactionType.EXPENSE, "NETFLIX", "XX9012"),
        (4, Decimal("3200.00"), TransactionType.TRANSFER_OUT, "RAHUL SHARMA", "X7788"),
        (5, Decimal("150"), TransactionType.EXPENSE, "CHAI POINT", "9876"),
        (6, Decimal("500.00"), TransactionType.INCOME, "PRIYA", "XX3456"),
        (7, Decimal("2000.00"), TransactionType.EXPENSE, "AMIT KUMAR", "XXXX1111"),
    ])
    def test_institution_fields(
            self,
            extractor: TransactionExtractor,
            institution_messages: List[InboundMessage],
            index, amount, direction, merchant, account
    ):
        txn = extractor.extract(institution_messages[index]).transaction

        assert txn.amount == amount
        assert txn.type == direction
        assert txn.merchant == merchant
        assert txn.account_identifier == account

    @pytest.mark.parametrize("sender,body", [
        ("VK-HDFCBK", "Rs.500.00 spent on HDFC Bank Credit Card XX1234 at SWIGGY on 15-01-2024"),
        ("AD-ICICIB", "INR 500.00 spent on ICICI Bank Credit Card XX5678 at SWIGGY on 16/01/2024."),
        ("AX-AXISBK", "INR 500.00 spent on Axis Bank Credit Card no. XX9012 at SWIGGY on 05-02-24"),
    ])
    def test_credit_card_spend_is_expense(self, extractor: TransactionExtractor, sender: str, body: str):
        # Act
        result = extractor.extract(message(sender, body))

        # Assert
        assert result.is_successful, result
        assert result.transaction.type == TransactionType.EXPENSE
        assert result.transaction.amount == Decimal("500.00")

    def test_transfer_into_own_account_is_inbound(self, extractor: TransactionExtractor):
        # Act
        result = extractor.extract(message(
            "VM-KOTAKB",
            "Rs.3,200.00 transferred to your Kotak A/c X7788 from RAHUL SHARMA on 10-02-2024",
        ))

        # Assert
        assert result.transaction.type == TransactionType.TRANSFER_IN

    def test_account_id_is_resolved(self, registry: PatternRegistry, hdfc_message: InboundMessage):
        # Arrange
        resolver = AccountResolver()
        resolver.create_mapping(3, "HDFC Bank", "XXXX1234")
        extractor = TransactionExtractor(registry, account_resolver=resolver, clock=frozen_clock)

        # Act
        result = extractor.extract(hdfc_message)

        # Assert
        assert result.transaction.account_id == 3

    def test_slow_extraction_loses_confidence(self, registry: PatternRegistry, hdfc_message: InboundMessage):
        # Arrange - each clock read advances 100 ms
        ticks = count(start=0.0, step=0.1)
        extractor = TransactionExtractor(registry, clock=lambda: next(ticks))

        # Act
        result = extractor.extract(hdfc_message)

        # Assert
        assert result.details.processing_time_ms > 50
        assert result.confidence == pytest.approx(0.95)


@pytest.mark.unit
class TestFailedExtraction:

    def test_unknown_sender(self, extractor: TransactionExtractor):
        # Act
        result = extractor.extract(message("+919812345678", "Rs 500 debited from your account"))

        # Assert
        assert not result.is_successful
        assert result.failure_reason == ExtractionFailure.NO_PATTERN_MATCH
        assert result.error_type == ErrorType.NO_PATTERN_MATCH
        assert result.transaction is None

    def test_non_transaction_message(self, extractor: TransactionExtractor):
        result = extractor.extract(message("VK-HDFCBK", "Your OTP is 123456. Do not share it."))

        assert result.failure_reason == ExtractionFailure.NOT_A_TRANSACTION
        assert result.error_type == ErrorType.INVALID_FORMAT

    def test_non_numeric_amount_fails_validation(self, registry: PatternRegistry):
        # Arrange
        registry.register(MessagePattern(
            institution="Custom Bank",
            sender_pattern="CSTBNK",
            amount_pattern=r"Amount:\s*(\S+)",
            merchant_pattern=r"at\s+(\w+)",
            date_pattern=r"(\d{2}-\d{2}-\d{4})",
            direction_pattern=r"(debited|credited)",
            account_pattern=r"A/c\s*([X\d]+)",
        ))
        extractor = TransactionExtractor(registry, clock=frozen_clock)

        # Act
        result = extractor.extract(message(
            "AD-CSTBNK", "Amount: ABC debited from A/c XX1234 at SHOP on 01-01-2024"
        ))

        # Assert
        assert result.is_successful is False
        assert result.failure_reason == ExtractionFailure.AMOUNT_VALIDATION_FAILED
        assert result.error_type == ErrorType.VALIDATION_FAILED
        assert result.transaction is None

    def test_zero_amount_fails_validation(self, extractor: TransactionExtractor):
        result = extractor.extract(message("VK-HDFCBK", "Rs 0.00 debited from A/c XX1234 at SHOP"))

        assert result.error_type == ErrorType.VALIDATION_FAILED

    def test_missing_amount(self, extractor: TransactionExtractor):
        result = extractor.extract(message("VK-HDFCBK", "Your account was debited at SHOP"))

        assert result.failure_reason == ExtractionFailure.AMOUNT_VALIDATION_FAILED
        assert result.error_type == ErrorType.AMOUNT_PARSING_FAILED

    def test_heuristic_not_used_with_registered_pattern(self, extractor: TransactionExtractor):
        """A bare number is not trusted when the institution's format is known"""
        result = extractor.extract(message("VK-HDFCBK", "Debited 450.00 from account at SHOP"))

        assert result.error_type == ErrorType.AMOUNT_PARSING_FAILED


@pytest.mark.unit
class TestGenericFallback:

    def test_unknown_sender_extracted_when_enabled(self, registry: PatternRegistry):
        # Arrange
        settings = replace(PipelineSettings(), generic_fallback=True)
        extractor = TransactionExtractor(registry, settings=settings, clock=frozen_clock)

        # Act
        result = extractor.extract(message(
            "+919812345678", "Rs 640 paid to BLUE TOKAI COFFEE on 03-03-2024 from account XX4455"
        ))

        # Assert
        assert result.is_successful
        assert result.transaction.merchant == "BLUE TOKAI COFFEE"
        assert result.transaction.amount == Decimal("640")
        assert result.details.used_fallback is True
        assert result.details.matched_pattern is None
        assert result.confidence == pytest.approx(1.0)
