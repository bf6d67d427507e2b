from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

from brontie.core.auth import create_access_token
from brontie.db.mongo import get_db
from brontie.main import app
from brontie.models.gift_item import GiftItem
from brontie.models.merchant import BrontieFeeSettings, Merchant, StripeConnectSettings
from brontie.models.payout_item import PayoutItem, PayoutStatus
from brontie.models.voucher import Voucher, VoucherStatus
from brontie.utils.clock import FrozenClock

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

# Modules that open a Mongo transaction around their multi-document writes
TRANSACTIONAL_MODULES = [
    "brontie.services.voucher_service",
    "brontie.services.transfer_service",
    "brontie.services.batch_settlement_service",
    "brontie.services.reconciliation_service",
]


@asynccontextmanager
async def _fake_transaction(db):
    yield MagicMock(name="session")


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def mock_db():
    return MagicMock(name="db")


@pytest.fixture
def no_transaction(monkeypatch):
    """Replace Mongo transactions with a no-op session (no replica set in unit tests)."""
    for module in TRANSACTIONAL_MODULES:
        monkeypatch.setattr(f"{module}.transaction", _fake_transaction)


@pytest.fixture
def gateway():
    gateway = AsyncMock(name="gateway")
    gateway.currency = "eur"
    return gateway


@pytest.fixture
def make_merchant():
    def _make(
        account_id="acct_123",
        age_days=10,
        is_active=False,
        commission_rate=0.10,
        payouts_enabled=True,
        **fee_overrides
    ):
        return Merchant(
            name="Bean There Café",
            created_at=NOW - timedelta(days=age_days),
            stripe_connect_settings=StripeConnectSettings(
                account_id=account_id,
                is_connected=account_id is not None,
                charges_enabled=account_id is not None,
                payouts_enabled=payouts_enabled,
                details_submitted=account_id is not None,
            ),
            brontie_fee_settings=BrontieFeeSettings(
                is_active=is_active,
                commission_rate=commission_rate,
                **fee_overrides
            ),
        )
    return _make


@pytest.fixture
def make_gift_item():
    def _make(merchant, price=10.0, location_ids=None):
        return GiftItem(
            merchant_id=merchant.id,
            name="Flat White",
            price=price,
            location_ids=location_ids if location_ids is not None else [ObjectId()],
        )
    return _make


@pytest.fixture
def make_voucher():
    def _make(gift_item, status=VoucherStatus.UNREDEEMED, amount_gross=10.0, **fields):
        fields.setdefault("redemption_link", "qr-abc123")
        fields.setdefault("payment_intent_id", "pi_123")
        fields.setdefault("expires_at", NOW + timedelta(days=365))
        return Voucher(
            gift_item_id=gift_item.id,
            status=status,
            valid_location_ids=gift_item.location_ids,
            amount_gross=amount_gross,
            amount=amount_gross,
            issued_at=NOW - timedelta(days=1),
            **fields
        )
    return _make


@pytest.fixture
def make_payout_item():
    def _make(merchant_id, amount_payable=9.61, status=PayoutStatus.PENDING, voucher_id=None, **fields):
        return PayoutItem(
            voucher_id=voucher_id or ObjectId(),
            merchant_id=merchant_id,
            gross_amount=amount_payable,
            amount_payable=amount_payable,
            brontie_fee=0.0,
            stripe_fee=0.0,
            status=status,
            **fields
        )
    return _make


@pytest.fixture
def admin_headers():
    token = create_access_token("admin-1", "admin")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client():
    """HTTP client against the app; no lifespan, no real database."""
    app.dependency_overrides[get_db] = lambda: MagicMock(name="db")
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
