from unittest.mock import AsyncMock

import pytest

from brontie.api.deps import get_commission_service, get_connect_service, get_payout_admin_service
from brontie.core.exceptions import MerchantNotPayableError, NotFoundError
from brontie.main import app
from brontie.services.commission_service import CommissionStatus
from brontie.services.payout_admin_service import MarkPaidResult, PayoutSummary


@pytest.fixture
def commission_service():
    service = AsyncMock()
    app.dependency_overrides[get_commission_service] = lambda: service
    return service


@pytest.mark.asyncio
async def test_connect_sync(client, admin_headers, make_merchant):
    merchant = make_merchant(account_id="acct_1")
    service = AsyncMock()
    service.sync_account_status.return_value = merchant
    app.dependency_overrides[get_connect_service] = lambda: service

    response = await client.post(f"/api/v1/merchants/{merchant.id}/connect/sync", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["stripe_connect_settings"]["account_id"] == "acct_1"


@pytest.mark.asyncio
async def test_connect_sync_without_account(client, admin_headers):
    service = AsyncMock()
    service.sync_account_status.side_effect = MerchantNotPayableError("m1", "Stripe Connect account not found")
    app.dependency_overrides[get_connect_service] = lambda: service

    response = await client.post("/api/v1/merchants/m1/connect/sync", headers=admin_headers)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_brontie_fee(client, admin_headers, commission_service, make_merchant):
    merchant = make_merchant(age_days=30)
    commission_service.status.return_value = CommissionStatus(
        merchant_id=str(merchant.id),
        brontie_fee_settings=merchant.brontie_fee_settings,
        account_age=30,
        days_until_auto_activation=60,
        commission_active=False,
        should_auto_activate=False,
    )

    response = await client.get(f"/api/v1/merchants/{merchant.id}/brontie-fee", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["days_until_auto_activation"] == 60


@pytest.mark.asyncio
async def test_deactivate_brontie_fee_records_admin(client, admin_headers, commission_service, make_merchant):
    merchant = make_merchant()
    commission_service.deactivate.return_value = merchant

    response = await client.put(
        f"/api/v1/merchants/{merchant.id}/brontie-fee",
        json={"is_active": False, "reason": "Partner deal"},
        headers=admin_headers
    )

    assert response.status_code == 200
    commission_service.deactivate.assert_awaited_once_with(str(merchant.id), "admin-1", "Partner deal")
    commission_service.activate.assert_not_called()


@pytest.mark.asyncio
async def test_activate_unknown_merchant(client, admin_headers, commission_service):
    commission_service.activate.side_effect = NotFoundError("Merchant", "m404")

    response = await client.put("/api/v1/merchants/m404/brontie-fee", json={"is_active": True}, headers=admin_headers)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_mark_paid(client, admin_headers):
    service = AsyncMock()
    service.mark_paid_manually.return_value = MarkPaidResult(
        merchant_id="m1", marked_as_paid=2, cutoff_date="2026-02-28", message="Successfully marked 2 items as paid"
    )
    app.dependency_overrides[get_payout_admin_service] = lambda: service

    response = await client.post(
        "/api/v1/payouts/merchants/m1/mark-paid",
        json={"paid_up_to": "2026-02-28T23:59:00Z"},
        headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["marked_as_paid"] == 2


@pytest.mark.asyncio
async def test_payout_summary(client, admin_headers):
    service = AsyncMock()
    service.summary.return_value = PayoutSummary(
        merchant_id="m1",
        by_status={"pending": {"count": 1, "amount_payable": 9.61, "brontie_fee": 0.0, "stripe_fee": 0.39}}
    )
    app.dependency_overrides[get_payout_admin_service] = lambda: service

    response = await client.get("/api/v1/payouts/merchants/m1/summary", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["by_status"]["pending"]["count"] == 1
