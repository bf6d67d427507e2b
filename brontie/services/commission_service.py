import logging
from typing import Optional

from pydantic import BaseModel

from brontie.core.exceptions import NotFoundError
from brontie.models.merchant import BrontieFeeSettings, Merchant
from brontie.repositories.merchant_repo import MerchantRepository
from brontie.services.fee_calculator import FeeSchedule, days_since_creation, is_commission_active
from brontie.services.merchant_directory import MerchantDirectory
from brontie.utils.clock import Clock

logger = logging.getLogger(__name__)


class CommissionStatus(BaseModel):
    merchant_id: str
    brontie_fee_settings: BrontieFeeSettings
    account_age: int
    days_until_auto_activation: int
    commission_active: bool
    should_auto_activate: bool


class CommissionService:
    """Admin control over the platform commission."""

    def __init__(
        self,
        db,
        directory: MerchantDirectory,
        clock: Optional[Clock] = None,
        schedule: Optional[FeeSchedule] = None
    ):
        self.db = db
        self.directory = directory
        self.clock = clock or Clock()
        self.schedule = schedule or FeeSchedule.from_settings()
        self.merchants = MerchantRepository(db)

    async def activate(self, merchant_id: str) -> Merchant:
        merchant = await self._get(merchant_id)
        updated = await self.merchants.update_fee_settings(merchant.id, {
            "is_active": True,
            "activated_at": self.clock.now(),
            "deactivated_at": None,
            "deactivated_by": None,
            "deactivation_reason": None,
        })
        self.directory.invalidate(merchant.id)
        logger.info("Brontie fee activated for merchant %s", merchant_id)
        return updated

    async def deactivate(self, merchant_id: str, admin_id: str, reason: Optional[str] = None) -> Merchant:
        merchant = await self._get(merchant_id)
        updated = await self.merchants.update_fee_settings(merchant.id, {
            "is_active": False,
            "deactivated_at": self.clock.now(),
            "deactivated_by": admin_id,
            "deactivation_reason": reason or "Admin deactivated",
        })
        self.directory.invalidate(merchant.id)
        logger.info("Brontie fee deactivated for merchant %s by %s", merchant_id, admin_id)
        return updated

    async def status(self, merchant_id: str) -> CommissionStatus:
        merchant = await self._get(merchant_id)
        now = self.clock.now()
        age = days_since_creation(merchant, now)
        return CommissionStatus(
            merchant_id=str(merchant.id),
            brontie_fee_settings=merchant.brontie_fee_settings,
            account_age=age,
            days_until_auto_activation=max(0, self.schedule.grace_days - age),
            commission_active=is_commission_active(merchant, now, self.schedule),
            should_auto_activate=age >= self.schedule.grace_days and not merchant.brontie_fee_settings.is_active,
        )

    async def _get(self, merchant_id: str) -> Merchant:
        merchant = await self.merchants.get_by_id(merchant_id)
        if not merchant:
            raise NotFoundError("Merchant", merchant_id)
        return merchant
