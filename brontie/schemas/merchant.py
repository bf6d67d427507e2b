from typing import Optional

from pydantic import BaseModel

from brontie.models.merchant import BrontieFeeSettings, Merchant, StripeConnectSettings


class BrontieFeeUpdate(BaseModel):
    is_active: bool
    reason: Optional[str] = None


class MerchantResponse(BaseModel):
    id: str
    name: str
    is_active: bool
    stripe_connect_settings: StripeConnectSettings
    brontie_fee_settings: BrontieFeeSettings

    @classmethod
    def from_model(cls, merchant: Merchant) -> "MerchantResponse":
        return cls(
            id=str(merchant.id),
            name=merchant.name,
            is_active=merchant.is_active,
            stripe_connect_settings=merchant.stripe_connect_settings,
            brontie_fee_settings=merchant.brontie_fee_settings,
        )
