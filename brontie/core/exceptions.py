"""Settlement engine errors."""
from typing import Optional


class BrontieError(Exception):
    """Base class for domain errors."""
    pass


class NotFoundError(BrontieError):
    """A voucher, merchant, gift item or payout item does not exist."""

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class MerchantNotPayableError(BrontieError):
    """Merchant cannot receive transfers (no connected account)."""

    def __init__(self, merchant_id: str, reason: str = "Merchant does not have Stripe Connect account"):
        self.merchant_id = merchant_id
        self.reason = reason
        super().__init__(reason)


class InvalidStateError(BrontieError):
    """Requested transition is not allowed from the current state."""
    pass


class ExternalTransferError(BrontieError):
    """
    Stripe rejected the transfer or did not confirm it.

    outcome_unknown is True when the request may have reached Stripe
    (network error, timeout) and the claimed items must be reconciled.
    """

    def __init__(self, message: str, outcome_unknown: bool = False, stripe_code: Optional[str] = None):
        self.outcome_unknown = outcome_unknown
        self.stripe_code = stripe_code
        super().__init__(message)


class FeeLookupUnavailable(BrontieError):
    """Actual processor fee could not be retrieved; callers fall back to the estimate."""
    pass


class BelowMinimumTransferError(BrontieError):
    """Amount owed is under the smallest transfer the platform sends."""

    def __init__(self, amount: float, minimum: float):
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"Transfer amount {amount:.2f} is below the minimum of {minimum:.2f}")
