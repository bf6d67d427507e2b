"""
Transaction log - one record per money event on a voucher.

Immutable once written. Settlement state lives on PayoutItem;
these records exist for merchant statements and audits.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from brontie.models.base import MongoModel, PyObjectId
from brontie.utils.clock import utcnow


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    REDEMPTION = "redemption"
    REFUND = "refund"
    DISPUTE = "dispute"


class Transaction(MongoModel):
    voucher_id: PyObjectId
    merchant_id: PyObjectId
    gift_item_id: PyObjectId
    type: TransactionType
    amount: float
    status: str = "completed"

    customer_email: Optional[str] = None
    sender_name: Optional[str] = None
    recipient_name: Optional[str] = None

    # Fee breakdown (purchase only)
    stripe_fee: Optional[float] = None
    brontie_commission: Optional[float] = None
    merchant_payout: Optional[float] = None

    # Disputes
    stripe_dispute_id: Optional[str] = None
    dispute_reason: Optional[str] = None

    completed_at: datetime = Field(default_factory=utcnow)


class RedemptionLog(MongoModel):
    voucher_id: PyObjectId
    merchant_location_id: PyObjectId
    timestamp: datetime = Field(default_factory=utcnow)
