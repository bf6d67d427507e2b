import logging
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel

from brontie.core.exceptions import NotFoundError
from brontie.repositories.merchant_repo import MerchantRepository
from brontie.repositories.payout_repo import PayoutRepository
from brontie.utils.clock import Clock, ensure_aware

logger = logging.getLogger(__name__)


class MarkPaidResult(BaseModel):
    merchant_id: str
    marked_as_paid: int
    cutoff_date: str
    message: str


class PayoutSummary(BaseModel):
    merchant_id: str
    by_status: Dict[str, dict]


class PayoutAdminService:
    """Payouts handled outside the automated Stripe flow."""

    def __init__(self, db, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or Clock()
        self.payouts = PayoutRepository(db)
        self.merchants = MerchantRepository(db)

    async def mark_paid_manually(self, merchant_id: str, paid_up_to: datetime) -> MarkPaidResult:
        merchant = await self.merchants.get_by_id(merchant_id)
        if not merchant:
            raise NotFoundError("Merchant", merchant_id)

        cutoff = ensure_aware(paid_up_to)
        cutoff_date = cutoff.date().isoformat()
        count = await self.payouts.mark_paid_manually(
            merchant.id,
            cutoff,
            self.clock.now(),
            f"Marked as paid manually up to {cutoff_date}"
        )
        logger.info("Marked %d payout item(s) paid manually for merchant %s up to %s", count, merchant_id, cutoff_date)

        if count == 0:
            message = "No pending items found for the specified date range"
        else:
            message = f"Successfully marked {count} items as paid"
        return MarkPaidResult(
            merchant_id=merchant_id,
            marked_as_paid=count,
            cutoff_date=cutoff_date,
            message=message,
        )

    async def summary(self, merchant_id: str) -> PayoutSummary:
        merchant = await self.merchants.get_by_id(merchant_id)
        if not merchant:
            raise NotFoundError("Merchant", merchant_id)
        by_status = await self.payouts.summary_for_merchant(merchant.id)
        return PayoutSummary(merchant_id=merchant_id, by_status=by_status)
