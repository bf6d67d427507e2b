from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from brontie.core.exceptions import ExternalTransferError, FeeLookupUnavailable
from brontie.services.stripe_gateway import StripeGateway


@pytest.fixture
def gateway():
    return StripeGateway(api_key="sk_test_123", currency="eur")


@pytest.mark.asyncio
async def test_create_transfer_sends_cents_and_idempotency_key(gateway):
    with patch("stripe.Transfer.create", return_value=SimpleNamespace(id="tr_1")) as create:
        transfer_id = await gateway.create_transfer(
            12.345, "acct_1", transfer_group="voucher_1", idempotency_key="tok_1"
        )

    assert transfer_id == "tr_1"
    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 1235
    assert kwargs["currency"] == "eur"
    assert kwargs["destination"] == "acct_1"
    assert kwargs["transfer_group"] == "voucher_1"
    assert kwargs["idempotency_key"] == "tok_1"
    assert kwargs["api_key"] == "sk_test_123"


@pytest.mark.asyncio
async def test_rejected_transfer_is_a_definite_failure(gateway):
    error = stripe.InvalidRequestError("No such destination", param="destination", http_status=400)
    with patch("stripe.Transfer.create", side_effect=error):
        with pytest.raises(ExternalTransferError) as exc_info:
            await gateway.create_transfer(10, "acct_x", transfer_group="g", idempotency_key="k")

    assert not exc_info.value.outcome_unknown


@pytest.mark.asyncio
async def test_connection_error_outcome_unknown(gateway):
    with patch("stripe.Transfer.create", side_effect=stripe.APIConnectionError("timed out")):
        with pytest.raises(ExternalTransferError) as exc_info:
            await gateway.create_transfer(10, "acct_x", transfer_group="g", idempotency_key="k")

    assert exc_info.value.outcome_unknown


@pytest.mark.asyncio
async def test_server_error_outcome_unknown(gateway):
    with patch("stripe.Transfer.create", side_effect=stripe.APIError("boom", http_status=500)):
        with pytest.raises(ExternalTransferError) as exc_info:
            await gateway.create_transfer(10, "acct_x", transfer_group="g", idempotency_key="k")

    assert exc_info.value.outcome_unknown


@pytest.mark.asyncio
async def test_actual_fee_from_balance_transaction(gateway):
    intent = SimpleNamespace(latest_charge="ch_1")
    charge = SimpleNamespace(id="ch_1", balance_transaction="txn_1")
    balance = SimpleNamespace(
        id="txn_1",
        fee_details=[
            SimpleNamespace(type="application_fee", amount=100),
            SimpleNamespace(type="stripe_fee", amount=39),
        ]
    )
    with patch("stripe.PaymentIntent.retrieve", return_value=intent), \
            patch("stripe.Charge.retrieve", return_value=charge), \
            patch("stripe.BalanceTransaction.retrieve", return_value=balance):
        assert await gateway.get_actual_fee("pi_1") == 0.39


@pytest.mark.asyncio
async def test_actual_fee_without_charge(gateway):
    with patch("stripe.PaymentIntent.retrieve", return_value=SimpleNamespace(latest_charge=None)):
        with pytest.raises(FeeLookupUnavailable):
            await gateway.get_actual_fee("pi_1")


@pytest.mark.asyncio
async def test_actual_fee_stripe_error(gateway):
    with patch("stripe.PaymentIntent.retrieve", side_effect=stripe.APIConnectionError("down")):
        with pytest.raises(FeeLookupUnavailable):
            await gateway.get_actual_fee("pi_1")


@pytest.mark.asyncio
async def test_get_account(gateway):
    account = SimpleNamespace(id="acct_1", charges_enabled=True, payouts_enabled=None, details_submitted=True)
    with patch("stripe.Account.retrieve", return_value=account):
        status = await gateway.get_account("acct_1")

    assert status.charges_enabled
    assert not status.payouts_enabled
    assert status.details_submitted


@pytest.mark.asyncio
async def test_reverse_transfer(gateway):
    with patch("stripe.Transfer.create_reversal", return_value=SimpleNamespace(id="trr_1")) as reverse:
        reversal_id = await gateway.reverse_transfer("tr_1", 9.61, "refund")

    assert reversal_id == "trr_1"
    assert reverse.call_args.args == ("tr_1",)
    assert reverse.call_args.kwargs["amount"] == 961


@pytest.mark.asyncio
async def test_find_transfer(gateway):
    with patch("stripe.Transfer.list", return_value=MagicMock(data=[SimpleNamespace(id="tr_9")])) as listing:
        assert await gateway.find_transfer("batch_x") == "tr_9"
    assert listing.call_args.kwargs["transfer_group"] == "batch_x"

    with patch("stripe.Transfer.list", return_value=MagicMock(data=[])):
        assert await gateway.find_transfer("batch_y") is None
