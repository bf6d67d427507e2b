"""
Reconciliation of claimed payout items.

An item stays claimed when its transfer outcome is unknown (timeout,
crash between transfer and status update). For each stale claim we ask
Stripe whether a transfer exists for its transfer group:
- yes → the claim is marked paid with that transfer id
- no  → the claim is released back to pending for the next run
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel

from brontie.core.config import settings
from brontie.db.session import transaction
from brontie.models.payout_item import PayoutItem
from brontie.repositories.payout_repo import PayoutRepository
from brontie.repositories.voucher_repo import VoucherRepository
from brontie.utils.clock import Clock

logger = logging.getLogger(__name__)


class ReconciliationResult(BaseModel):
    claims_checked: int = 0
    marked_paid: int = 0
    released: int = 0
    errors: List[str] = []


class ReconciliationService:
    def __init__(self, db, gateway, clock: Optional[Clock] = None, stale_after_minutes: Optional[int] = None):
        self.db = db
        self.gateway = gateway
        self.clock = clock or Clock()
        self.stale_after = timedelta(
            minutes=stale_after_minutes if stale_after_minutes is not None else settings.CLAIM_STALE_AFTER_MINUTES
        )
        self.payouts = PayoutRepository(db)
        self.vouchers = VoucherRepository(db)

    async def reconcile(self, older_than: Optional[timedelta] = None) -> ReconciliationResult:
        """Resolve claims older than older_than (default: the configured staleness window)."""
        now = self.clock.now()
        stale = await self.payouts.list_stale_claims(now - (older_than or self.stale_after))

        claims: Dict[str, List[PayoutItem]] = {}
        for item in stale:
            claims.setdefault(item.claim_token, []).append(item)

        result = ReconciliationResult()
        for claim_token, items in claims.items():
            result.claims_checked += 1
            transfer_group = items[0].transfer_group
            try:
                transfer_id = await self.gateway.find_transfer(transfer_group)
            except Exception as exc:
                logger.error("Could not look up transfers for group %s: %s", transfer_group, exc)
                result.errors.append(f"{transfer_group}: {exc}")
                continue

            if transfer_id:
                paid_at = self.clock.now()
                async with transaction(self.db) as session:
                    count = await self.payouts.mark_claim_paid(claim_token, transfer_id, paid_at, session=session)
                    await self.vouchers.mark_redeemed_many(
                        [item.voucher_id for item in items], paid_at, session=session
                    )
                result.marked_paid += count
                logger.info("Claim %s matched transfer %s; %d item(s) marked paid", claim_token, transfer_id, count)
            else:
                count = await self.payouts.release_claim(claim_token)
                result.released += count
                logger.info("No transfer for group %s; %d item(s) released to pending", transfer_group, count)

        return result
