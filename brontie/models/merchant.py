from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from brontie.models.base import MongoModel


# Embedded documents don't need MongoModel (no separate _id)
class StripeConnectSettings(BaseModel):
    account_id: Optional[str] = None
    is_connected: bool = False
    onboarding_completed: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False


class BrontieFeeSettings(BaseModel):
    is_active: bool = False
    commission_rate: Optional[float] = 0.10
    commission_activate_from: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    deactivated_by: Optional[str] = None
    deactivation_reason: Optional[str] = None


class Merchant(MongoModel):
    name: str
    contact_email: Optional[str] = None
    is_active: bool = True
    status: str = "approved"  # pending | approved | denied

    stripe_connect_settings: StripeConnectSettings = Field(default_factory=StripeConnectSettings)
    brontie_fee_settings: BrontieFeeSettings = Field(default_factory=BrontieFeeSettings)

    @property
    def connected_account_id(self) -> Optional[str]:
        return self.stripe_connect_settings.account_id or None
