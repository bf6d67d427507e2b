"""
Batch settlement - one Stripe transfer per merchant per run.

Algorithm:
1. Load pending payout items (not held for review)
2. Group by merchant_id
3. Per merchant: check account → claim group → sum → transfer → mark paid
4. A merchant's failure is recorded and never blocks the others

A merchant whose total is under MIN_TRANSFER_AMOUNT is left pending,
unclaimed, and listed in `below_minimum`. Every other item that is not
paid in this run is counted in `failed` and its merchant appears in `errors`.
"""

import logging
import uuid
from collections import OrderedDict
from typing import Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel

from brontie.core.config import settings
from brontie.core.exceptions import BelowMinimumTransferError, ExternalTransferError, MerchantNotPayableError
from brontie.db.session import transaction
from brontie.models.payout_item import PayoutItem
from brontie.repositories.merchant_repo import MerchantRepository
from brontie.repositories.payout_repo import PayoutRepository
from brontie.repositories.voucher_repo import VoucherRepository
from brontie.services.transfer_service import ensure_minimum, ensure_payable
from brontie.utils.clock import Clock
from brontie.utils.money import sum_money

logger = logging.getLogger(__name__)


class MerchantTransfer(BaseModel):
    merchant_id: str
    merchant_name: str
    transfer_id: str
    transfer_group: str
    amount: float
    payout_count: int


class MerchantError(BaseModel):
    merchant_id: str
    error: str
    payouts: int
    outcome_unknown: bool = False


class MerchantBelowMinimum(BaseModel):
    merchant_id: str
    amount: float
    payouts: int


class BatchSettlementResult(BaseModel):
    success: bool = True
    message: Optional[str] = None
    processed: int = 0
    failed: int = 0
    transfers: List[MerchantTransfer] = []
    errors: List[MerchantError] = []
    below_minimum: List[MerchantBelowMinimum] = []


def group_by_merchant(items: List[PayoutItem]) -> Dict[str, List[PayoutItem]]:
    """merchant id → that merchant's items, in input order."""
    groups: Dict[str, List[PayoutItem]] = OrderedDict()
    for item in items:
        groups.setdefault(str(item.merchant_id), []).append(item)
    return groups


class BatchSettlementService:
    def __init__(
        self,
        db,
        gateway,
        clock: Optional[Clock] = None,
        min_transfer_amount: Optional[float] = None
    ):
        self.db = db
        self.gateway = gateway
        self.clock = clock or Clock()
        self.min_transfer_amount = (
            settings.MIN_TRANSFER_AMOUNT if min_transfer_amount is None else min_transfer_amount
        )

        self.payouts = PayoutRepository(db)
        self.vouchers = VoucherRepository(db)
        self.merchants = MerchantRepository(db)

    async def run(self) -> BatchSettlementResult:
        pending = await self.payouts.list_pending_for_settlement()
        if not pending:
            return BatchSettlementResult(message="No pending payouts found")

        groups = group_by_merchant(pending)
        logger.info("Batch settlement: %d pending item(s) across %d merchant(s)", len(pending), len(groups))

        result = BatchSettlementResult()
        run_stamp = self.clock.now().strftime("%Y%m%dT%H%M%S%f")

        for merchant_id, items in groups.items():
            try:
                transfer = await self._settle_merchant(merchant_id, items, run_stamp)
            except BelowMinimumTransferError as exc:
                logger.info("Skipping merchant %s: %s", merchant_id, exc)
                result.below_minimum.append(MerchantBelowMinimum(
                    merchant_id=merchant_id,
                    amount=exc.amount,
                    payouts=len(items),
                ))
                continue
            except MerchantNotPayableError as exc:
                self._record_error(result, merchant_id, exc.reason, len(items))
                continue
            except ExternalTransferError as exc:
                self._record_error(result, merchant_id, str(exc), len(items), exc.outcome_unknown)
                continue
            except Exception as exc:
                logger.exception("Unexpected error settling merchant %s", merchant_id)
                self._record_error(result, merchant_id, str(exc) or type(exc).__name__, len(items))
                continue

            paid_count = transfer.payout_count if transfer else 0
            if transfer is not None:
                result.transfers.append(transfer)
                result.processed += paid_count
            # Items claimed by a concurrent run between load and claim
            skipped = len(items) - paid_count
            if skipped:
                self._record_error(result, merchant_id, "Payout items claimed by another settlement run", skipped)

        logger.info(
            "Batch settlement finished: %d processed, %d failed, %d transfer(s)",
            result.processed, result.failed, len(result.transfers)
        )
        return result

    async def _settle_merchant(
        self,
        merchant_id: str,
        items: List[PayoutItem],
        run_stamp: str
    ) -> Optional[MerchantTransfer]:
        merchant = await self.merchants.get_by_id(merchant_id)
        if not merchant:
            raise MerchantNotPayableError(merchant_id, "Merchant not found")
        account_id = ensure_payable(merchant, settings.REQUIRE_PAYOUTS_ENABLED)
        ensure_minimum(sum_money(item.amount_payable for item in items), self.min_transfer_amount)

        claim_token = uuid.uuid4().hex
        transfer_group = f"batch_{run_stamp}_{merchant_id}"
        claimed_count = await self.payouts.claim(
            [item.id for item in items], claim_token, transfer_group, self.clock.now()
        )
        if claimed_count == 0:
            logger.warning("No items left to claim for merchant %s", merchant_id)
            return None

        claimed = await self.payouts.list_claimed(claim_token)
        total = sum_money(item.amount_payable for item in claimed)
        try:
            # A concurrent run may have taken part of the group
            ensure_minimum(total, self.min_transfer_amount)
        except BelowMinimumTransferError:
            await self.payouts.release_claim(claim_token)
            raise

        try:
            transfer_id = await self.gateway.create_transfer(
                total,
                account_id,
                transfer_group=transfer_group,
                idempotency_key=claim_token,
                metadata={"merchant_id": merchant_id, "payout_count": str(len(claimed))}
            )
        except ExternalTransferError as exc:
            if not exc.outcome_unknown:
                await self.payouts.release_claim(claim_token)
            raise

        paid_at = self.clock.now()
        voucher_ids: List[ObjectId] = [item.voucher_id for item in claimed]
        async with transaction(self.db) as session:
            await self.payouts.mark_claim_paid(claim_token, transfer_id, paid_at, session=session)
            await self.vouchers.mark_redeemed_many(voucher_ids, paid_at, session=session)

        logger.info(
            "Merchant %s paid %.2f for %d item(s) (transfer %s)",
            merchant_id, total, len(claimed), transfer_id
        )
        return MerchantTransfer(
            merchant_id=merchant_id,
            merchant_name=merchant.name,
            transfer_id=transfer_id,
            transfer_group=transfer_group,
            amount=total,
            payout_count=len(claimed),
        )

    def _record_error(
        self,
        result: BatchSettlementResult,
        merchant_id: str,
        error: str,
        count: int,
        outcome_unknown: bool = False
    ) -> None:
        logger.error("Error processing payouts for merchant %s: %s", merchant_id, error)
        result.errors.append(MerchantError(
            merchant_id=merchant_id,
            error=error,
            payouts=count,
            outcome_unknown=outcome_unknown,
        ))
        result.failed += count
