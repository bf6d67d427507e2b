"""
Voucher lifecycle.

Every status change goes through VoucherRepository.transition, whose
filter only matches statuses allowed by VOUCHER_TRANSITIONS. A guard that
does not match is an InvalidStateError, never a silent no-op.
"""

import logging
import secrets
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict
from pymongo.errors import DuplicateKeyError

from brontie.core.config import settings
from brontie.core.exceptions import ExternalTransferError, InvalidStateError, NotFoundError
from brontie.db.session import transaction
from brontie.models.payout_item import PayoutItem, PayoutStatus
from brontie.models.transaction import RedemptionLog, Transaction, TransactionType
from brontie.models.voucher import (
    REDEEMABLE_STATUSES,
    Voucher,
    VoucherStatus,
    can_transition,
    default_expiry,
)
from brontie.repositories.gift_item_repo import GiftItemRepository
from brontie.repositories.merchant_repo import MerchantRepository
from brontie.repositories.payout_repo import PayoutRepository
from brontie.repositories.transaction_repo import TransactionRepository
from brontie.repositories.voucher_repo import VoucherRepository
from brontie.services.fee_calculator import FeeSchedule, compute_settlement, resolve_processor_fee
from brontie.services.merchant_directory import MerchantDirectory
from brontie.utils.clock import Clock
from brontie.utils.money import round_money

logger = logging.getLogger(__name__)

# Messages shown at the till when a voucher can't be used
UNUSABLE_MESSAGES = {
    VoucherStatus.PENDING: "Voucher payment is still being processed. Please try again later.",
    VoucherStatus.REDEEMED: "Voucher has already been redeemed",
    VoucherStatus.REFUNDED: "This voucher has been refunded and is no longer valid.",
    VoucherStatus.EXPIRED: "This voucher has expired.",
    VoucherStatus.DISPUTED: "This voucher is under dispute and cannot be redeemed.",
}


class RedemptionResult(BaseModel):
    voucher: Voucher
    payout_item: PayoutItem

    model_config = ConfigDict(arbitrary_types_allowed=True)


class VoucherService:
    def __init__(
        self,
        db,
        gateway,
        directory: MerchantDirectory,
        clock: Optional[Clock] = None,
        schedule: Optional[FeeSchedule] = None
    ):
        self.db = db
        self.gateway = gateway
        self.directory = directory
        self.clock = clock or Clock()
        self.schedule = schedule or FeeSchedule.from_settings()

        self.vouchers = VoucherRepository(db)
        self.payouts = PayoutRepository(db)
        self.gift_items = GiftItemRepository(db)
        self.merchants = MerchantRepository(db)
        self.transactions = TransactionRepository(db)

    # ===== ISSUANCE =====

    async def issue(
        self,
        gift_item_id: str,
        payment_intent_id: str,
        amount_total: float,
        sender_name: Optional[str] = None,
        recipient_name: Optional[str] = None,
        email: Optional[str] = None,
        recipient_email: Optional[str] = None,
        recipient_token: Optional[str] = None,
        product_sku: Optional[str] = None
    ) -> Voucher:
        """
        Create the voucher for a completed checkout.

        A pending voucher already created for the same payment is confirmed
        instead; a replayed checkout event returns the existing voucher.
        """
        now = self.clock.now()

        existing = await self.vouchers.get_by_payment_intent(payment_intent_id)
        if existing:
            if existing.status != VoucherStatus.PENDING:
                logger.info("Checkout for %s already processed (voucher %s)", payment_intent_id, existing.id)
                return existing
            fields = {"confirmed_at": now}
            if email and not existing.email:
                fields["email"] = email
            confirmed = await self.vouchers.transition(existing.id, VoucherStatus.UNREDEEMED, fields)
            if confirmed is None:
                raise InvalidStateError(f"Voucher {existing.id} could not be confirmed")
            logger.info("Voucher %s confirmed for payment %s", confirmed.id, payment_intent_id)
            return confirmed

        gift_item = await self.gift_items.get_by_id(gift_item_id)
        if not gift_item:
            raise NotFoundError("GiftItem", gift_item_id)

        code = secrets.token_urlsafe(8)
        voucher = Voucher(
            gift_item_id=gift_item.id,
            status=VoucherStatus.ISSUED,
            redemption_link=code,
            redemption_code=code,
            valid_location_ids=gift_item.location_ids,
            payment_intent_id=payment_intent_id,
            amount_gross=round_money(amount_total),
            product_sku=product_sku or gift_item.name,
            sender_name=sender_name or "Anonymous",
            recipient_name=recipient_name or "",
            email=email,
            recipient_email=recipient_email,
            recipient_token=recipient_token or None,
            issued_at=now,
            confirmed_at=now,
            expires_at=default_expiry(now, settings.VOUCHER_VALIDITY_DAYS),
        )
        stripe_fee = await resolve_processor_fee(voucher, self.gateway)
        if stripe_fee is not None:
            voucher.stripe_fee = round_money(stripe_fee)
            voucher.amount = round_money(amount_total - stripe_fee)
        else:
            voucher.amount = voucher.amount_gross

        try:
            voucher = await self.vouchers.insert(voucher)
        except DuplicateKeyError:
            # Concurrent delivery of the same checkout event
            existing = await self.vouchers.get_by_payment_intent(payment_intent_id)
            if existing is None:
                raise
            return existing

        await self.transactions.record(Transaction(
            voucher_id=voucher.id,
            merchant_id=gift_item.merchant_id,
            gift_item_id=gift_item.id,
            type=TransactionType.PURCHASE,
            amount=voucher.amount_gross,
            stripe_fee=voucher.stripe_fee,
            customer_email=email,
            sender_name=voucher.sender_name,
            recipient_name=voucher.recipient_name,
            completed_at=now,
        ))
        logger.info("Voucher %s issued for gift item %s", voucher.id, gift_item.id)
        return voucher

    # ===== REDEMPTION =====

    async def redeem(self, redemption_link: str, merchant_location_id: str) -> RedemptionResult:
        """
        Redeem a voucher at a merchant location.

        Marks the voucher redeemed and books exactly one pending payout item
        for settlement. A second redemption fails with InvalidStateError.
        """
        now = self.clock.now()

        voucher = await self.vouchers.get_by_redemption_link(redemption_link)
        if not voucher:
            raise NotFoundError("Voucher", redemption_link)

        if voucher.status not in REDEEMABLE_STATUSES:
            raise InvalidStateError(UNUSABLE_MESSAGES[voucher.status])

        if voucher.is_overdue(now):
            await self.vouchers.transition(voucher.id, VoucherStatus.EXPIRED)
            logger.info("Voucher %s expired at redemption attempt", voucher.id)
            raise InvalidStateError(UNUSABLE_MESSAGES[VoucherStatus.EXPIRED])

        if not ObjectId.is_valid(merchant_location_id) or \
                ObjectId(merchant_location_id) not in voucher.valid_location_ids:
            raise InvalidStateError("This voucher cannot be redeemed at this location")
        location_oid = ObjectId(merchant_location_id)

        gift_item = await self.gift_items.get_by_id(voucher.gift_item_id)
        if not gift_item:
            raise NotFoundError("GiftItem", str(voucher.gift_item_id))
        merchant = await self.directory.get(self.merchants, gift_item.merchant_id)
        if not merchant:
            raise NotFoundError("Merchant", str(gift_item.merchant_id))

        fee_hint = await resolve_processor_fee(voucher, self.gateway)
        breakdown = compute_settlement(
            voucher.gross() or gift_item.price,
            merchant,
            processor_fee_hint=fee_hint,
            now=now,
            schedule=self.schedule
        )

        existing_item = await self.payouts.find_open_for_voucher(voucher.id)

        async with transaction(self.db) as session:
            redeemed = await self.vouchers.transition(
                voucher.id,
                VoucherStatus.REDEEMED,
                {"redeemed_at": now},
                session=session
            )
            if redeemed is None:
                raise InvalidStateError(UNUSABLE_MESSAGES[VoucherStatus.REDEEMED])

            if existing_item is not None:
                payout_item = existing_item
            else:
                try:
                    payout_item = await self.payouts.insert(PayoutItem(
                        voucher_id=voucher.id,
                        merchant_id=merchant.id,
                        gross_amount=breakdown.gross_amount,
                        amount_payable=breakdown.amount_payable,
                        brontie_fee=breakdown.platform_fee,
                        stripe_fee=breakdown.processor_fee,
                        status=PayoutStatus.PENDING,
                    ), session=session)
                except DuplicateKeyError:
                    # A concurrent transfer opened the item first
                    raise InvalidStateError(f"Voucher {voucher.id} already has an open payout item")

            await self.transactions.record_redemption(RedemptionLog(
                voucher_id=voucher.id,
                merchant_location_id=location_oid,
                timestamp=now,
            ), session=session)
            await self.transactions.record(Transaction(
                voucher_id=voucher.id,
                merchant_id=merchant.id,
                gift_item_id=gift_item.id,
                type=TransactionType.REDEMPTION,
                amount=breakdown.gross_amount,
                stripe_fee=breakdown.processor_fee,
                brontie_commission=breakdown.platform_fee,
                merchant_payout=breakdown.amount_payable,
                customer_email=voucher.email,
                sender_name=voucher.sender_name,
                recipient_name=voucher.recipient_name,
                completed_at=now,
            ), session=session)

        logger.info(
            "Voucher %s redeemed at %s; payout item %s (%.2f payable, %.2f commission)",
            voucher.id, location_oid, payout_item.id,
            payout_item.amount_payable, payout_item.brontie_fee
        )
        return RedemptionResult(voucher=redeemed, payout_item=payout_item)

    # ===== REFUND / DISPUTE / EXPIRY =====

    async def refund(
        self,
        payment_intent_id: Optional[str] = None,
        redemption_link: Optional[str] = None,
        full_refund: bool = True
    ) -> Voucher:
        """
        Invalidate a voucher after its payment was refunded.

        Partial refunds leave the voucher usable. Refunding a redeemed
        voucher is rejected; it needs manual handling.
        """
        voucher = await self._lookup(payment_intent_id, redemption_link)

        if not full_refund:
            logger.info("Partial refund on voucher %s, not invalidating", voucher.id)
            return voucher

        if not can_transition(voucher.status, VoucherStatus.REFUNDED):
            logger.error("Cannot refund voucher %s in status %s", voucher.id, voucher.status.value)
            raise InvalidStateError(f"Cannot refund a {voucher.status.value} voucher")

        now = self.clock.now()
        refunded = await self.vouchers.transition(voucher.id, VoucherStatus.REFUNDED, {"refunded_at": now})
        if refunded is None:
            raise InvalidStateError(f"Voucher {voucher.id} changed state during refund")

        await self._reverse_open_payout(refunded, reason="refund")
        await self._record_event(refunded, TransactionType.REFUND)
        logger.info("Voucher %s invalidated due to refund", voucher.id)
        return refunded

    async def dispute(
        self,
        payment_intent_id: str,
        dispute_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Voucher:
        """Mark a voucher disputed and hold its payout items for review."""
        voucher = await self._lookup(payment_intent_id, None)

        if not can_transition(voucher.status, VoucherStatus.DISPUTED):
            raise InvalidStateError(f"Voucher {voucher.id} is already disputed")

        now = self.clock.now()
        disputed = await self.vouchers.transition(voucher.id, VoucherStatus.DISPUTED, {"disputed_at": now})
        if disputed is None:
            raise InvalidStateError(f"Voucher {voucher.id} changed state during dispute")

        flagged = await self.payouts.flag_voucher_items(
            voucher.id,
            f"dispute {dispute_id or ''}: {reason or 'unspecified'}".strip(),
            now
        )
        await self._record_event(
            disputed,
            TransactionType.DISPUTE,
            stripe_dispute_id=dispute_id,
            dispute_reason=reason
        )
        logger.warning(
            "Voucher %s marked as disputed (dispute %s, reason %s); %d payout item(s) flagged",
            voucher.id, dispute_id, reason, flagged
        )
        return disputed

    async def expire(self, redemption_link: str) -> Voucher:
        voucher = await self._lookup(None, redemption_link)
        if not voucher.is_overdue(self.clock.now()):
            raise InvalidStateError(f"Voucher {voucher.id} has not reached its expiry date")
        expired = await self.vouchers.transition(voucher.id, VoucherStatus.EXPIRED)
        if expired is None:
            raise InvalidStateError(f"Cannot expire a {voucher.status.value} voucher")
        logger.info("Voucher %s expired", voucher.id)
        return expired

    async def expire_due(self) -> int:
        """Expire every overdue usable voucher. Returns how many changed."""
        count = await self.vouchers.expire_overdue(self.clock.now())
        if count:
            logger.info("Expired %d overdue voucher(s)", count)
        return count

    # ===== PRIVATE HELPERS =====

    async def _lookup(self, payment_intent_id: Optional[str], redemption_link: Optional[str]) -> Voucher:
        voucher = None
        if payment_intent_id:
            voucher = await self.vouchers.get_by_payment_intent(payment_intent_id)
        elif redemption_link:
            voucher = await self.vouchers.get_by_redemption_link(redemption_link)
        if not voucher:
            raise NotFoundError("Voucher", payment_intent_id or redemption_link or "")
        return voucher

    async def _reverse_open_payout(self, voucher: Voucher, reason: str) -> Optional[PayoutItem]:
        """
        Undo the voucher's settlement.

        pending: reversed in the ledger only.
        claimed: transfer outcome unknown, flagged for review.
        paid via Stripe: transfer reversal, then reversed; flagged if the clawback fails.
        paid manually: flagged, recovery happens outside Stripe.
        """
        item = await self.payouts.find_open_for_voucher(voucher.id)
        if item is None:
            return None

        now = self.clock.now()
        if item.status == PayoutStatus.PENDING:
            return await self.payouts.reverse(item.id, PayoutStatus.PENDING, reason, now)

        if item.status == PayoutStatus.CLAIMED:
            await self.payouts.flag_for_review(item.id, f"{reason} while transfer in flight", now)
            logger.warning("Payout item %s is mid-transfer; flagged for review after %s", item.id, reason)
            return item

        if item.status == PayoutStatus.PAID:
            if not item.transfer_id:
                await self.payouts.flag_for_review(item.id, f"{reason} after manual payout", now)
                return item
            try:
                reversal_id = await self.gateway.reverse_transfer(item.transfer_id, item.amount_payable, reason)
            except ExternalTransferError as exc:
                logger.error("Clawback of payout item %s failed: %s", item.id, exc)
                await self.payouts.flag_for_review(item.id, f"{reason} clawback failed: {exc}", now)
                return item
            return await self.payouts.reverse(item.id, PayoutStatus.PAID, reason, now, reversal_id)

        return item

    async def _record_event(self, voucher: Voucher, kind: TransactionType, **extra) -> None:
        gift_item = await self.gift_items.get_by_id(voucher.gift_item_id)
        if not gift_item:
            logger.error("Gift item %s missing; %s transaction not recorded", voucher.gift_item_id, kind.value)
            return
        await self.transactions.record(Transaction(
            voucher_id=voucher.id,
            merchant_id=gift_item.merchant_id,
            gift_item_id=gift_item.id,
            type=kind,
            amount=voucher.gross(),
            customer_email=voucher.email,
            sender_name=voucher.sender_name,
            recipient_name=voucher.recipient_name,
            completed_at=self.clock.now(),
            **extra
        ))
