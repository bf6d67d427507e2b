from unittest.mock import AsyncMock

import pytest

from brontie.models.payout_item import PayoutStatus
from brontie.models.voucher import VoucherStatus, can_transition
from brontie.services.batch_settlement_service import BatchSettlementService
from brontie.services.merchant_directory import MerchantDirectory
from brontie.services.voucher_service import VoucherService


class MemoryVouchers:
    def __init__(self, *vouchers):
        self.rows = {v.id: v for v in vouchers}

    async def get_by_redemption_link(self, redemption_link):
        return next((v for v in self.rows.values() if v.redemption_link == redemption_link), None)

    async def transition(self, voucher_id, target, fields=None, session=None):
        voucher = self.rows[voucher_id]
        if not can_transition(voucher.status, target):
            return None
        self.rows[voucher_id] = voucher.model_copy(update={"status": target, **(fields or {})})
        return self.rows[voucher_id]

    async def mark_redeemed_many(self, voucher_ids, redeemed_at, session=None):
        count = 0
        for voucher_id in voucher_ids:
            if await self.transition(voucher_id, VoucherStatus.REDEEMED, {"redeemed_at": redeemed_at}):
                count += 1
        return count


class MemoryPayouts:
    def __init__(self):
        self.rows = {}

    async def find_open_for_voucher(self, voucher_id):
        return next(
            (i for i in self.rows.values() if i.voucher_id == voucher_id and i.status != PayoutStatus.REVERSED),
            None
        )

    async def insert(self, item, session=None):
        self.rows[item.id] = item
        return item

    async def list_pending_for_settlement(self):
        return [i for i in self.rows.values() if i.status == PayoutStatus.PENDING and not i.review_required]

    async def claim(self, item_ids, claim_token, transfer_group, claimed_at):
        claimed = [self.rows[i] for i in item_ids if self.rows[i].status == PayoutStatus.PENDING]
        for item in claimed:
            item.status = PayoutStatus.CLAIMED
            item.claim_token = claim_token
            item.transfer_group = transfer_group
        return len(claimed)

    async def list_claimed(self, claim_token):
        return [i for i in self.rows.values() if i.claim_token == claim_token and i.status == PayoutStatus.CLAIMED]

    async def mark_claim_paid(self, claim_token, transfer_id, paid_at, session=None):
        claimed = await self.list_claimed(claim_token)
        for item in claimed:
            item.status = PayoutStatus.PAID
            item.transfer_id = transfer_id
            item.paid_out_at = paid_at
        return len(claimed)

    async def release_claim(self, claim_token):
        claimed = await self.list_claimed(claim_token)
        for item in claimed:
            item.status = PayoutStatus.PENDING
        return len(claimed)


@pytest.mark.asyncio
async def test_redeem_then_settle_ten_euro_voucher(
    mock_db, gateway, clock, no_transaction, make_merchant, make_gift_item, make_voucher
):
    merchant = make_merchant(account_id="acct_cafe", age_days=10)
    gift_item = make_gift_item(merchant, price=10.0)
    voucher = make_voucher(gift_item, status=VoucherStatus.UNREDEEMED, amount_gross=10.0)

    vouchers = MemoryVouchers(voucher)
    payouts = MemoryPayouts()
    merchants = AsyncMock()
    merchants.get_by_id.return_value = merchant
    gift_items = AsyncMock()
    gift_items.get_by_id.return_value = gift_item
    gateway.get_actual_fee.return_value = None
    gateway.create_transfer.return_value = "tr_e2e"

    voucher_service = VoucherService(mock_db, gateway, MerchantDirectory(clock, 300), clock)
    voucher_service.vouchers = vouchers
    voucher_service.payouts = payouts
    voucher_service.merchants = merchants
    voucher_service.gift_items = gift_items
    voucher_service.transactions = AsyncMock()

    redemption = await voucher_service.redeem(voucher.redemption_link, str(gift_item.location_ids[0]))

    item = redemption.payout_item
    assert item.stripe_fee == 0.39
    assert item.brontie_fee == 0
    assert item.amount_payable == 9.61

    clock.advance(days=1)
    batch = BatchSettlementService(mock_db, gateway, clock)
    batch.payouts = payouts
    batch.vouchers = vouchers
    batch.merchants = merchants

    result = await batch.run()

    assert result.processed == 1
    assert result.failed == 0
    gateway.create_transfer.assert_awaited_once()
    assert gateway.create_transfer.await_args.args == (9.61, "acct_cafe")

    settled = payouts.rows[item.id]
    assert settled.status == PayoutStatus.PAID
    assert settled.transfer_id == "tr_e2e"
    assert vouchers.rows[voucher.id].status == VoucherStatus.REDEEMED

    # Nothing left to settle on the next run
    again = await batch.run()
    assert again.message == "No pending payouts found"
    assert gateway.create_transfer.await_count == 1
