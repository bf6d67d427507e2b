"""
Single-voucher transfer.

Order of operations:
1. load voucher → gift item → merchant (fresh, not cached)
2. merchant must have a connected account
3. reuse or create the voucher's pending payout item (persisted before money moves)
4. amounts under MIN_TRANSFER_AMOUNT stop here, leaving the item pending
5. claim it, transfer, then mark paid + voucher redeemed in one transaction
A failure after step 3 always leaves an auditable payout item behind.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError

from brontie.core.config import settings
from brontie.core.exceptions import (
    BelowMinimumTransferError,
    ExternalTransferError,
    InvalidStateError,
    MerchantNotPayableError,
    NotFoundError,
)
from brontie.db.session import transaction
from brontie.models.merchant import Merchant
from brontie.models.payout_item import PayoutItem, PayoutStatus
from brontie.models.voucher import VoucherStatus
from brontie.repositories.gift_item_repo import GiftItemRepository
from brontie.repositories.merchant_repo import MerchantRepository
from brontie.repositories.payout_repo import PayoutRepository
from brontie.repositories.voucher_repo import VoucherRepository
from brontie.services.fee_calculator import FeeSchedule, compute_settlement, resolve_processor_fee
from brontie.utils.clock import Clock

logger = logging.getLogger(__name__)

# Vouchers that may be paid out individually
TRANSFERABLE_STATUSES = (VoucherStatus.ISSUED, VoucherStatus.UNREDEEMED, VoucherStatus.REDEEMED)


class TransferResult(BaseModel):
    voucher_id: str
    merchant_id: str
    transfer_id: str
    destination: str
    currency: str
    amount_payable: float
    brontie_fee: float
    stripe_fee: float
    payout_item_id: str
    status: PayoutStatus
    paid_out_at: datetime


def ensure_payable(merchant: Merchant, require_payouts_enabled: bool = False) -> str:
    """Connected account id of a merchant that can receive transfers."""
    account_id = merchant.connected_account_id
    if not account_id:
        raise MerchantNotPayableError(str(merchant.id))
    if require_payouts_enabled and not merchant.stripe_connect_settings.payouts_enabled:
        raise MerchantNotPayableError(str(merchant.id), "Merchant Stripe account has payouts disabled")
    return account_id


def ensure_minimum(amount: float, minimum: float) -> None:
    if amount < minimum:
        raise BelowMinimumTransferError(amount, minimum)


class TransferService:
    def __init__(
        self,
        db,
        gateway,
        clock: Optional[Clock] = None,
        schedule: Optional[FeeSchedule] = None,
        min_transfer_amount: Optional[float] = None
    ):
        self.db = db
        self.gateway = gateway
        self.clock = clock or Clock()
        self.schedule = schedule or FeeSchedule.from_settings()
        self.min_transfer_amount = (
            settings.MIN_TRANSFER_AMOUNT if min_transfer_amount is None else min_transfer_amount
        )

        self.vouchers = VoucherRepository(db)
        self.payouts = PayoutRepository(db)
        self.gift_items = GiftItemRepository(db)
        self.merchants = MerchantRepository(db)

    async def transfer_voucher(self, voucher_id: str) -> TransferResult:
        """Pay one voucher's net amount to its merchant's connected account."""
        voucher = await self.vouchers.get_by_id(voucher_id)
        if not voucher:
            raise NotFoundError("Voucher", voucher_id)
        gift_item = await self.gift_items.get_by_id(voucher.gift_item_id)
        if not gift_item:
            raise NotFoundError("GiftItem", str(voucher.gift_item_id))
        merchant = await self.merchants.get_by_id(gift_item.merchant_id)
        if not merchant:
            raise NotFoundError("Merchant", str(gift_item.merchant_id))

        account_id = ensure_payable(merchant, settings.REQUIRE_PAYOUTS_ENABLED)

        if voucher.status not in TRANSFERABLE_STATUSES:
            raise InvalidStateError(f"Cannot pay out a {voucher.status.value} voucher")

        item = await self._open_item(voucher, merchant, gift_item.price)
        # Small amounts stay pending for the next batch run
        ensure_minimum(item.amount_payable, self.min_transfer_amount)

        now = self.clock.now()
        claim_token = uuid.uuid4().hex
        transfer_group = f"voucher_{voucher.id}"
        claimed = await self.payouts.claim([item.id], claim_token, transfer_group, now)
        if claimed != 1:
            raise InvalidStateError(f"Payout item {item.id} is already being settled")

        try:
            transfer_id = await self.gateway.create_transfer(
                item.amount_payable,
                account_id,
                transfer_group=transfer_group,
                idempotency_key=claim_token,
                metadata={"voucher_id": str(voucher.id), "payout_item_id": str(item.id)}
            )
        except ExternalTransferError as exc:
            if exc.outcome_unknown:
                logger.error(
                    "Transfer outcome unknown for voucher %s; payout item %s left claimed for reconciliation",
                    voucher.id, item.id
                )
            else:
                await self.payouts.release_claim(claim_token)
                logger.error("Transfer for voucher %s rejected; payout item %s back to pending", voucher.id, item.id)
            raise

        paid_at = self.clock.now()
        async with transaction(self.db) as session:
            await self.payouts.mark_claim_paid(claim_token, transfer_id, paid_at, session=session)
            if voucher.status != VoucherStatus.REDEEMED:
                await self.vouchers.mark_redeemed_many([voucher.id], paid_at, session=session)

        logger.info(
            "Voucher %s paid out: %.2f to %s (transfer %s)",
            voucher.id, item.amount_payable, account_id, transfer_id
        )
        return TransferResult(
            voucher_id=str(voucher.id),
            merchant_id=str(merchant.id),
            transfer_id=transfer_id,
            destination=account_id,
            currency=self.gateway.currency,
            amount_payable=item.amount_payable,
            brontie_fee=item.brontie_fee,
            stripe_fee=item.stripe_fee,
            payout_item_id=str(item.id),
            status=PayoutStatus.PAID,
            paid_out_at=paid_at,
        )

    async def _open_item(self, voucher, merchant: Merchant, fallback_price: float) -> PayoutItem:
        """The voucher's pending payout item, created if it has none."""
        item = await self.payouts.find_open_for_voucher(voucher.id)
        if item is not None:
            if item.status != PayoutStatus.PENDING:
                raise InvalidStateError(f"Voucher {voucher.id} already has a {item.status.value} payout item")
            if item.review_required:
                raise InvalidStateError(f"Payout item {item.id} is held for review")
            return item

        fee_hint = await resolve_processor_fee(voucher, self.gateway)
        breakdown = compute_settlement(
            voucher.gross() or fallback_price,
            merchant,
            processor_fee_hint=fee_hint,
            now=self.clock.now(),
            schedule=self.schedule
        )
        try:
            return await self.payouts.insert(PayoutItem(
                voucher_id=voucher.id,
                merchant_id=merchant.id,
                gross_amount=breakdown.gross_amount,
                amount_payable=breakdown.amount_payable,
                brontie_fee=breakdown.platform_fee,
                stripe_fee=breakdown.processor_fee,
                status=PayoutStatus.PENDING,
            ))
        except DuplicateKeyError:
            raise InvalidStateError(f"Voucher {voucher.id} already has an open payout item")
