"""Tests for the verification adapter and transaction models."""

import pytest
from pydantic import ValidationError

from iap_entitlements.errors import VerificationFailure
from iap_entitlements.models import TransactionRecord, VerificationResult
from iap_entitlements.verification import verify


@pytest.fixture
def transaction():
    return TransactionRecord(
        transaction_id="txn-1",
        product_id="nonconsumable.lifetime",
        category="one_time",
        purchase_time_millis=1_700_000_000_000,
    )


class TestVerify:
    """Test verify()."""

    def test_verified_returns_payload(self, transaction):
        assert verify(VerificationResult.verified(transaction)) is transaction

    def test_unverified_raises_original_error(self, transaction):
        """Test the gateway's error object is raised as-is."""
        error = VerificationFailure("bad signature", transaction.transaction_id)
        with pytest.raises(VerificationFailure) as exc_info:
            verify(VerificationResult.unverified(error, transaction))
        assert exc_info.value is error

    def test_foreign_error_is_not_wrapped(self):
        """Test errors of any type pass through without reclassification."""

        class GatewaySpecificError(Exception):
            pass

        error = GatewaySpecificError("revoked certificate")
        with pytest.raises(GatewaySpecificError) as exc_info:
            verify(VerificationResult.unverified(error))
        assert exc_info.value is error


class TestVerificationResultModel:
    """Test VerificationResult shapes."""

    def test_is_verified(self, transaction):
        assert VerificationResult.verified(transaction).is_verified
        assert not VerificationResult.unverified(RuntimeError("x")).is_verified

    def test_verified_requires_transaction(self):
        with pytest.raises(ValidationError):
            VerificationResult()

    def test_transaction_is_immutable(self, transaction):
        with pytest.raises(ValidationError):
            transaction.product_id = "other"
