"""
PayoutItem model - what one merchant is owed for one voucher.

Design principles:
- amount_payable = gross_amount - stripe_fee - brontie_fee (never negative)
- At most one non-reversed item per voucher (partial unique index)
- Status: pending → claimed → paid, or pending/paid → reversed
- claimed reserves the item for exactly one transfer attempt
"""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from brontie.models.base import MongoModel, PyObjectId


class PayoutStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    PAID = "paid"
    REVERSED = "reversed"


PAYOUT_TRANSITIONS: Dict[PayoutStatus, FrozenSet[PayoutStatus]] = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.CLAIMED, PayoutStatus.PAID, PayoutStatus.REVERSED}),
    PayoutStatus.CLAIMED: frozenset({PayoutStatus.PENDING, PayoutStatus.PAID}),
    PayoutStatus.PAID: frozenset({PayoutStatus.REVERSED}),
    PayoutStatus.REVERSED: frozenset(),
}

# Statuses covered by the one-open-item-per-voucher index.
OPEN_STATUSES = (PayoutStatus.PENDING, PayoutStatus.CLAIMED, PayoutStatus.PAID)


class PaymentMethod(str, Enum):
    STRIPE_TRANSFER = "stripe_transfer"
    MANUAL_BANK_TRANSFER = "manual_bank_transfer"


class PayoutItem(MongoModel):
    voucher_id: PyObjectId
    merchant_id: PyObjectId

    # Financial (EUR, rounded to the cent)
    gross_amount: float = 0.0
    amount_payable: float
    brontie_fee: float
    stripe_fee: float

    status: PayoutStatus = PayoutStatus.PENDING

    # Claim / transfer
    claim_token: Optional[str] = None
    claimed_at: Optional[datetime] = None
    transfer_id: Optional[str] = None
    transfer_group: Optional[str] = None
    paid_out_at: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None

    # Review (disputes, failed clawbacks)
    review_required: bool = False
    review_reason: Optional[str] = None
    flagged_at: Optional[datetime] = None

    # Reversal
    reversed_at: Optional[datetime] = None
    reversal_id: Optional[str] = None
    reversal_reason: Optional[str] = None

    def can_move_to(self, target: PayoutStatus) -> bool:
        return target in PAYOUT_TRANSITIONS[self.status]
