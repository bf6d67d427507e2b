from datetime import datetime, timedelta, timezone

from bson import ObjectId

from brontie.models.payout_item import PAYOUT_TRANSITIONS, PayoutItem, PayoutStatus
from brontie.models.voucher import (
    REDEEMABLE_STATUSES,
    VOUCHER_TRANSITIONS,
    Voucher,
    VoucherStatus,
    can_transition,
    default_expiry,
    sources_for,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def test_transition_tables_cover_every_status():
    assert set(VOUCHER_TRANSITIONS) == set(VoucherStatus)
    assert set(PAYOUT_TRANSITIONS) == set(PayoutStatus)


def test_redeemed_voucher_cannot_be_redeemed_again():
    assert not can_transition(VoucherStatus.REDEEMED, VoucherStatus.REDEEMED)
    assert can_transition(VoucherStatus.UNREDEEMED, VoucherStatus.REDEEMED)
    assert can_transition(VoucherStatus.ISSUED, VoucherStatus.REDEEMED)


def test_disputed_is_terminal():
    for target in VoucherStatus:
        assert not can_transition(VoucherStatus.DISPUTED, target)


def test_sources_for_redeemed_are_the_redeemable_statuses():
    assert sources_for(VoucherStatus.REDEEMED) == sorted(s.value for s in REDEEMABLE_STATUSES)


def test_sources_for_disputed_includes_settled_states():
    sources = sources_for(VoucherStatus.DISPUTED)
    assert "redeemed" in sources
    assert "refunded" in sources
    assert "disputed" not in sources


def test_refund_not_allowed_after_redemption():
    assert not can_transition(VoucherStatus.REDEEMED, VoucherStatus.REFUNDED)


def test_is_overdue():
    voucher = Voucher(
        gift_item_id=ObjectId(),
        redemption_link="qr-1",
        expires_at=default_expiry(NOW - timedelta(days=10), 5),
    )
    assert voucher.is_overdue(NOW)
    assert not voucher.is_overdue(NOW - timedelta(days=6))


def test_voucher_without_expiry_never_overdue():
    voucher = Voucher(gift_item_id=ObjectId(), redemption_link="qr-2")
    assert not voucher.is_overdue(NOW)


def test_gross_falls_back_to_net_amount():
    voucher = Voucher(gift_item_id=ObjectId(), redemption_link="qr-3", amount=9.61)
    assert voucher.gross() == 9.61


def test_payout_item_moves():
    item = PayoutItem(
        voucher_id=ObjectId(),
        merchant_id=ObjectId(),
        amount_payable=9.61,
        brontie_fee=0.0,
        stripe_fee=0.39,
    )
    assert item.can_move_to(PayoutStatus.CLAIMED)
    assert item.can_move_to(PayoutStatus.REVERSED)
    item.status = PayoutStatus.PAID
    assert not item.can_move_to(PayoutStatus.PENDING)
