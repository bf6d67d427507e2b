import logging
from typing import Optional

from brontie.core.exceptions import MerchantNotPayableError, NotFoundError
from brontie.models.merchant import Merchant, StripeConnectSettings
from brontie.repositories.merchant_repo import MerchantRepository
from brontie.services.merchant_directory import MerchantDirectory

logger = logging.getLogger(__name__)


class ConnectService:
    """Mirrors a merchant's Stripe Connect capability flags."""

    def __init__(self, db, gateway, directory: Optional[MerchantDirectory] = None):
        self.db = db
        self.gateway = gateway
        self.directory = directory
        self.merchants = MerchantRepository(db)

    async def sync_account_status(self, merchant_id: str) -> Merchant:
        """
        Pull the account from Stripe and copy its flags onto the merchant.

        is_connected = details_submitted and charges_enabled.
        Repeated calls just rewrite the same values.
        """
        merchant = await self.merchants.get_by_id(merchant_id)
        if not merchant:
            raise NotFoundError("Merchant", merchant_id)
        account_id = merchant.connected_account_id
        if not account_id:
            raise MerchantNotPayableError(merchant_id, "Stripe Connect account not found")

        account = await self.gateway.get_account(account_id)
        connect = StripeConnectSettings(
            account_id=account_id,
            is_connected=account.details_submitted and account.charges_enabled,
            onboarding_completed=account.details_submitted,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
            details_submitted=account.details_submitted,
        )
        updated = await self.merchants.update_connect_settings(merchant.id, connect)
        if updated is None:
            raise NotFoundError("Merchant", merchant_id)
        if self.directory is not None:
            self.directory.invalidate(merchant.id)

        logger.info(
            "Stripe Connect status updated for merchant %s (%s): connected=%s charges=%s payouts=%s details=%s",
            merchant_id, account_id, connect.is_connected, connect.charges_enabled,
            connect.payouts_enabled, connect.details_submitted
        )
        return updated
