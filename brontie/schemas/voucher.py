from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from brontie.models.payout_item import PayoutItem, PayoutStatus
from brontie.models.voucher import Voucher, VoucherStatus


class VoucherIssue(BaseModel):
    """Completed checkout that should produce a voucher."""
    gift_item_id: str
    payment_intent_id: str
    amount_total: float
    sender_name: Optional[str] = None
    recipient_name: Optional[str] = None
    email: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_token: Optional[str] = None
    product_sku: Optional[str] = None


class VoucherRedeem(BaseModel):
    merchant_location_id: str


class VoucherRefund(BaseModel):
    payment_intent_id: Optional[str] = None
    redemption_link: Optional[str] = None
    full_refund: bool = True


class VoucherDispute(BaseModel):
    payment_intent_id: str
    dispute_id: Optional[str] = None
    reason: Optional[str] = None


class VoucherResponse(BaseModel):
    id: str
    gift_item_id: str
    status: VoucherStatus
    redemption_link: str
    redemption_code: Optional[str] = None
    payment_intent_id: Optional[str] = None
    amount: Optional[float] = None
    amount_gross: Optional[float] = None
    stripe_fee: Optional[float] = None
    issued_at: Optional[datetime] = None
    redeemed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, voucher: Voucher) -> "VoucherResponse":
        return cls(
            id=str(voucher.id),
            gift_item_id=str(voucher.gift_item_id),
            status=voucher.status,
            redemption_link=voucher.redemption_link,
            redemption_code=voucher.redemption_code,
            payment_intent_id=voucher.payment_intent_id,
            amount=voucher.amount,
            amount_gross=voucher.amount_gross,
            stripe_fee=voucher.stripe_fee,
            issued_at=voucher.issued_at,
            redeemed_at=voucher.redeemed_at,
            refunded_at=voucher.refunded_at,
            disputed_at=voucher.disputed_at,
            expires_at=voucher.expires_at,
        )


class PayoutItemResponse(BaseModel):
    id: str
    voucher_id: str
    merchant_id: str
    gross_amount: float
    amount_payable: float
    brontie_fee: float
    stripe_fee: float
    status: PayoutStatus
    review_required: bool = False
    transfer_id: Optional[str] = None
    paid_out_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, item: PayoutItem) -> "PayoutItemResponse":
        return cls(
            id=str(item.id),
            voucher_id=str(item.voucher_id),
            merchant_id=str(item.merchant_id),
            gross_amount=item.gross_amount,
            amount_payable=item.amount_payable,
            brontie_fee=item.brontie_fee,
            stripe_fee=item.stripe_fee,
            status=item.status,
            review_required=item.review_required,
            transfer_id=item.transfer_id,
            paid_out_at=item.paid_out_at,
        )


class RedemptionResponse(BaseModel):
    voucher: VoucherResponse
    payout_item: PayoutItemResponse


class ExpireDueResponse(BaseModel):
    expired: int
