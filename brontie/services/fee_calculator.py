"""
Fee calculator - processor fee, platform commission, merchant payout.

Pure functions apart from resolve_processor_fee, which may ask Stripe
for the actual fee and never raises.

Rules:
- processor fee: actual fee when known, else gross * 1.4% + €0.25
- commission: (gross - processor fee) * rate, only once active
- active: fee manually switched on, or merchant at least 90 days old
  (inclusive), unless an admin explicitly deactivated it
- amount payable: gross - processor fee - commission, floored at 0
All results are rounded to the cent, half-up.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from brontie.core.config import settings
from brontie.core.exceptions import FeeLookupUnavailable
from brontie.models.merchant import Merchant
from brontie.models.voucher import Voucher
from brontie.utils.clock import ensure_aware, utcnow
from brontie.utils.money import quantize_cents, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeSchedule:
    percent: float = 0.014
    fixed: float = 0.25
    default_commission_rate: float = 0.10
    grace_days: int = 90

    @classmethod
    def from_settings(cls) -> "FeeSchedule":
        return cls(
            percent=settings.STRIPE_FEE_PERCENT,
            fixed=settings.STRIPE_FEE_FIXED,
            default_commission_rate=settings.DEFAULT_COMMISSION_RATE,
            grace_days=settings.COMMISSION_GRACE_DAYS,
        )


class SettlementBreakdown(BaseModel):
    gross_amount: float
    processor_fee: float
    platform_fee: float
    amount_payable: float
    commission_active: bool
    processor_fee_estimated: bool


def estimate_processor_fee(gross_amount: float, schedule: Optional[FeeSchedule] = None) -> float:
    schedule = schedule or FeeSchedule.from_settings()
    fee = to_decimal(gross_amount) * to_decimal(schedule.percent) + to_decimal(schedule.fixed)
    return float(quantize_cents(fee))


def days_since_creation(merchant: Merchant, now: Optional[datetime] = None) -> int:
    """Whole days since the merchant signed up (floor)."""
    now = now or utcnow()
    return (ensure_aware(now) - ensure_aware(merchant.created_at)).days


def is_commission_active(
    merchant: Merchant,
    now: Optional[datetime] = None,
    schedule: Optional[FeeSchedule] = None
) -> bool:
    """
    Whether platform commission applies to this merchant's payouts.

    Active when switched on by an admin, when commission_activate_from has
    passed, or once the merchant is COMMISSION_GRACE_DAYS old. This departs
    from the plain "days >= grace OR is_active" rule in one case: after an
    admin deactivation the grace-period activation no longer applies, so a
    deactivated merchant stays commission-free until re-activated.
    """
    schedule = schedule or FeeSchedule.from_settings()
    now = now or utcnow()
    fee_settings = merchant.brontie_fee_settings

    if fee_settings.is_active:
        return True
    # Explicit admin deactivation waives the automatic activation
    if fee_settings.deactivated_at is not None:
        return False
    if fee_settings.commission_activate_from is not None:
        if ensure_aware(now) >= ensure_aware(fee_settings.commission_activate_from):
            return True
    return days_since_creation(merchant, now) >= schedule.grace_days


def compute_settlement(
    gross_amount: float,
    merchant: Merchant,
    processor_fee_hint: Optional[float] = None,
    now: Optional[datetime] = None,
    schedule: Optional[FeeSchedule] = None
) -> SettlementBreakdown:
    """Split a voucher's gross amount into processor fee, commission and payout."""
    schedule = schedule or FeeSchedule.from_settings()
    gross = quantize_cents(gross_amount)

    estimated = processor_fee_hint is None
    if estimated:
        processor_fee = to_decimal(estimate_processor_fee(gross_amount, schedule))
    else:
        processor_fee = quantize_cents(processor_fee_hint)

    commission_active = is_commission_active(merchant, now, schedule)
    if commission_active:
        rate = merchant.brontie_fee_settings.commission_rate
        if rate is None:
            rate = schedule.default_commission_rate
        platform_fee = quantize_cents((gross - processor_fee) * to_decimal(rate))
    else:
        platform_fee = Decimal("0.00")

    amount_payable = max(gross - processor_fee - platform_fee, Decimal("0.00"))

    return SettlementBreakdown(
        gross_amount=float(gross),
        processor_fee=float(processor_fee),
        platform_fee=float(platform_fee),
        amount_payable=float(amount_payable),
        commission_active=commission_active,
        processor_fee_estimated=estimated,
    )


async def resolve_processor_fee(voucher: Voucher, gateway) -> Optional[float]:
    """
    Best known processor fee for a voucher.

    Stored fee first, then Stripe's balance transaction for the payment.
    Returns None when neither is available; callers then use the estimate.
    """
    if voucher.stripe_fee:
        return voucher.stripe_fee
    if not voucher.payment_intent_id:
        return None

    try:
        return await gateway.get_actual_fee(voucher.payment_intent_id)
    except FeeLookupUnavailable as exc:
        logger.warning("Using estimated Stripe fee for payment intent %s: %s", voucher.payment_intent_id, exc)
        return None
