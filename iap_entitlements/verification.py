"""Verification adapter - unwraps one gateway verification result."""

from iap_entitlements.models import TransactionRecord, VerificationResult


def verify(result: VerificationResult) -> TransactionRecord:
    """Return the verified transaction or raise the gateway's own error.

    The embedded error object is re-raised as-is so the gateway's
    diagnostic detail reaches the caller unchanged.

    Args:
        result: Gateway verification result

    Returns:
        The verified TransactionRecord

    Raises:
        Exception: Whatever error the gateway attached to an unverified result
    """
    if result.error is not None:
        raise result.error
    return result.transaction
