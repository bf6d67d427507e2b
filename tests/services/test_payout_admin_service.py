from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from brontie.core.exceptions import NotFoundError
from brontie.services.payout_admin_service import PayoutAdminService


@pytest.fixture
def service(mock_db, clock):
    svc = PayoutAdminService(mock_db, clock)
    svc.payouts = AsyncMock()
    svc.merchants = AsyncMock()
    return svc


@pytest.mark.asyncio
async def test_mark_paid_manually(service, clock, make_merchant):
    merchant = make_merchant()
    service.merchants.get_by_id.return_value = merchant
    service.payouts.mark_paid_manually.return_value = 3

    result = await service.mark_paid_manually(str(merchant.id), datetime(2026, 2, 28, 23, 59, tzinfo=timezone.utc))

    assert result.marked_as_paid == 3
    assert result.cutoff_date == "2026-02-28"
    assert result.message == "Successfully marked 3 items as paid"
    service.payouts.mark_paid_manually.assert_awaited_once_with(
        merchant.id,
        datetime(2026, 2, 28, 23, 59, tzinfo=timezone.utc),
        clock.now(),
        "Marked as paid manually up to 2026-02-28"
    )


@pytest.mark.asyncio
async def test_mark_paid_naive_cutoff_is_utc(service, make_merchant):
    merchant = make_merchant()
    service.merchants.get_by_id.return_value = merchant
    service.payouts.mark_paid_manually.return_value = 0

    result = await service.mark_paid_manually(str(merchant.id), datetime(2026, 1, 31))

    cutoff = service.payouts.mark_paid_manually.await_args[0][1]
    assert cutoff.tzinfo is timezone.utc
    assert result.message == "No pending items found for the specified date range"


@pytest.mark.asyncio
async def test_summary(service, make_merchant):
    merchant = make_merchant()
    service.merchants.get_by_id.return_value = merchant
    service.payouts.summary_for_merchant.return_value = {
        "pending": {"count": 2, "amount_payable": 19.22, "brontie_fee": 0.0, "stripe_fee": 0.78}
    }

    summary = await service.summary(str(merchant.id))

    assert summary.by_status["pending"]["count"] == 2


@pytest.mark.asyncio
async def test_unknown_merchant(service):
    service.merchants.get_by_id.return_value = None

    with pytest.raises(NotFoundError):
        await service.summary("665f1f77bcf86cd799439011")
