"""
Voucher model - one gift voucher bought at checkout.

Lifecycle:
- pending → issued/unredeemed once payment completes
- issued/unredeemed → redeemed | refunded | expired
- anything → disputed on chargeback
Vouchers are never deleted; only status and timestamps change.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from brontie.models.base import MongoModel, PyObjectId
from brontie.utils.clock import ensure_aware


class VoucherStatus(str, Enum):
    PENDING = "pending"
    ISSUED = "issued"
    UNREDEEMED = "unredeemed"
    REDEEMED = "redeemed"
    REFUNDED = "refunded"
    EXPIRED = "expired"
    DISPUTED = "disputed"


# Every status must be a key here; transition sites look targets up in this table.
VOUCHER_TRANSITIONS: Dict[VoucherStatus, FrozenSet[VoucherStatus]] = {
    VoucherStatus.PENDING: frozenset({
        VoucherStatus.ISSUED,
        VoucherStatus.UNREDEEMED,
        VoucherStatus.REFUNDED,
        VoucherStatus.DISPUTED,
    }),
    VoucherStatus.ISSUED: frozenset({
        VoucherStatus.UNREDEEMED,
        VoucherStatus.REDEEMED,
        VoucherStatus.REFUNDED,
        VoucherStatus.EXPIRED,
        VoucherStatus.DISPUTED,
    }),
    VoucherStatus.UNREDEEMED: frozenset({
        VoucherStatus.REDEEMED,
        VoucherStatus.REFUNDED,
        VoucherStatus.EXPIRED,
        VoucherStatus.DISPUTED,
    }),
    VoucherStatus.REDEEMED: frozenset({VoucherStatus.DISPUTED}),
    VoucherStatus.REFUNDED: frozenset({VoucherStatus.DISPUTED}),
    VoucherStatus.EXPIRED: frozenset({VoucherStatus.DISPUTED}),
    VoucherStatus.DISPUTED: frozenset(),
}

# Statuses in which the voucher can be used in store.
REDEEMABLE_STATUSES: FrozenSet[VoucherStatus] = frozenset({
    VoucherStatus.ISSUED,
    VoucherStatus.UNREDEEMED,
})


def can_transition(current: VoucherStatus, target: VoucherStatus) -> bool:
    return target in VOUCHER_TRANSITIONS[current]


def sources_for(target: VoucherStatus) -> List[str]:
    """Statuses that may move to target, as stored strings (for conditional updates)."""
    return sorted(
        status.value for status, targets in VOUCHER_TRANSITIONS.items()
        if target in targets
    )


def default_expiry(issued_at: datetime, validity_days: int) -> datetime:
    return issued_at + timedelta(days=validity_days)


class Voucher(MongoModel):
    gift_item_id: PyObjectId
    status: VoucherStatus = VoucherStatus.PENDING

    # External lookup key (printed in the QR code)
    redemption_link: str
    redemption_code: Optional[str] = None
    valid_location_ids: List[PyObjectId] = []

    # Payment
    payment_intent_id: Optional[str] = None
    amount: Optional[float] = None          # net of processor fee
    amount_gross: Optional[float] = None
    stripe_fee: Optional[float] = None
    product_sku: Optional[str] = None

    # People
    recipient_name: Optional[str] = None
    sender_name: Optional[str] = None
    email: Optional[str] = None
    recipient_email: Optional[str] = None

    # Viral loop
    recipient_token: Optional[str] = None
    recipient_became_sender: bool = False
    recipient_linked_sender_email: Optional[str] = None

    # Lifecycle
    issued_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    redeemed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def gross(self) -> float:
        """Amount the customer paid."""
        if self.amount_gross is not None:
            return self.amount_gross
        return self.amount or 0.0

    def is_overdue(self, now: datetime) -> bool:
        return self.expires_at is not None and now > ensure_aware(self.expires_at)
