"""
Stripe Connect gateway.

The only module that talks to Stripe. The SDK is synchronous, so every
call runs in the threadpool. Amounts cross this boundary as EUR decimals
and are converted to cents here.
"""

import logging
from typing import Optional

import stripe
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from brontie.core.config import settings
from brontie.core.exceptions import ExternalTransferError, FeeLookupUnavailable
from brontie.utils.money import to_minor_units

logger = logging.getLogger(__name__)


class AccountStatus(BaseModel):
    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False


def _outcome_unknown(exc: stripe.StripeError) -> bool:
    """True when Stripe may have executed the request despite the error."""
    if isinstance(exc, stripe.APIConnectionError):
        return True
    status = getattr(exc, "http_status", None)
    return status is None or status >= 500


class StripeGateway:
    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.currency = currency or settings.STRIPE_CURRENCY

    async def create_transfer(
        self,
        amount: float,
        destination: str,
        transfer_group: str,
        idempotency_key: str,
        metadata: Optional[dict] = None
    ) -> str:
        """Move amount (EUR) to a connected account. Returns the transfer id."""
        amount_cents = to_minor_units(amount)
        try:
            transfer = await run_in_threadpool(
                stripe.Transfer.create,
                amount=amount_cents,
                currency=self.currency,
                destination=destination,
                transfer_group=transfer_group,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            unknown = _outcome_unknown(exc)
            logger.error(
                "Stripe transfer to %s failed (%s cents, group %s, outcome_unknown=%s): %s",
                destination, amount_cents, transfer_group, unknown, exc
            )
            raise ExternalTransferError(
                str(exc.user_message or exc),
                outcome_unknown=unknown,
                stripe_code=getattr(exc, "code", None)
            ) from exc

        logger.info("Stripe transfer %s created: %s cents to %s", transfer.id, amount_cents, destination)
        return transfer.id

    async def get_actual_fee(self, payment_intent_id: str) -> Optional[float]:
        """
        Stripe's own fee for a payment, in EUR.

        payment intent → latest charge → balance transaction → "stripe_fee" detail.
        Raises FeeLookupUnavailable when any link is missing or Stripe errors.
        """
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.retrieve, payment_intent_id, api_key=self.api_key
            )
            if not intent.latest_charge:
                raise FeeLookupUnavailable(f"No latest charge for payment intent {payment_intent_id}")

            charge = await run_in_threadpool(
                stripe.Charge.retrieve, intent.latest_charge, api_key=self.api_key
            )
            if not charge.balance_transaction:
                raise FeeLookupUnavailable(f"No balance transaction for charge {charge.id}")

            balance_transaction = await run_in_threadpool(
                stripe.BalanceTransaction.retrieve, charge.balance_transaction, api_key=self.api_key
            )
        except stripe.StripeError as exc:
            raise FeeLookupUnavailable(str(exc)) from exc

        for detail in balance_transaction.fee_details:
            if detail.type == "stripe_fee":
                fee = detail.amount / 100
                logger.info("Actual Stripe fee %.2f for payment intent %s", fee, payment_intent_id)
                return fee

        raise FeeLookupUnavailable(f"No stripe_fee in balance transaction {balance_transaction.id}")

    async def get_account(self, account_id: str) -> AccountStatus:
        account = await run_in_threadpool(stripe.Account.retrieve, account_id, api_key=self.api_key)
        return AccountStatus(
            account_id=account.id,
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
            details_submitted=bool(account.details_submitted),
        )

    async def reverse_transfer(self, transfer_id: str, amount: float, reason: str) -> str:
        """Claw back (part of) a transfer. Returns the reversal id."""
        try:
            reversal = await run_in_threadpool(
                stripe.Transfer.create_reversal,
                transfer_id,
                amount=to_minor_units(amount),
                metadata={"reason": reason},
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            raise ExternalTransferError(
                str(exc.user_message or exc),
                outcome_unknown=_outcome_unknown(exc),
                stripe_code=getattr(exc, "code", None)
            ) from exc

        logger.info("Reversed %.2f of transfer %s (%s)", amount, transfer_id, reversal.id)
        return reversal.id

    async def find_transfer(self, transfer_group: str) -> Optional[str]:
        """Id of the transfer made for a transfer group, if Stripe has one."""
        transfers = await run_in_threadpool(
            stripe.Transfer.list, transfer_group=transfer_group, limit=1, api_key=self.api_key
        )
        if transfers.data:
            return transfers.data[0].id
        return None
