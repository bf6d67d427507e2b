from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from brontie.models.base import to_object_id
from brontie.models.merchant import Merchant, StripeConnectSettings
from brontie.utils.clock import utcnow


class MerchantRepository:
    """Merchant database operations (settlement-relevant fields only)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["merchants"]

    async def get_by_id(self, merchant_id: str | ObjectId) -> Optional[Merchant]:
        if not ObjectId.is_valid(merchant_id):
            return None
        doc = await self.collection.find_one({"_id": to_object_id(merchant_id)})
        if doc:
            return Merchant(**doc)
        return None

    async def update_connect_settings(
        self,
        merchant_id: ObjectId,
        connect: StripeConnectSettings
    ) -> Optional[Merchant]:
        """Overwrite the mirrored Stripe flags. Safe to repeat."""
        update = {
            f"stripe_connect_settings.{key}": value
            for key, value in connect.model_dump().items()
        }
        update["updated_at"] = utcnow()
        doc = await self.collection.find_one_and_update(
            {"_id": merchant_id},
            {"$set": update},
            return_document=ReturnDocument.AFTER
        )
        if doc:
            return Merchant(**doc)
        return None

    async def update_fee_settings(self, merchant_id: ObjectId, fields: dict) -> Optional[Merchant]:
        """Set brontie_fee_settings sub-fields; a None value unsets the field."""
        to_set = {"updated_at": utcnow()}
        to_unset = {}
        for key, value in fields.items():
            if value is None:
                to_unset[f"brontie_fee_settings.{key}"] = ""
            else:
                to_set[f"brontie_fee_settings.{key}"] = value

        update = {"$set": to_set}
        if to_unset:
            update["$unset"] = to_unset

        doc = await self.collection.find_one_and_update(
            {"_id": merchant_id},
            update,
            return_document=ReturnDocument.AFTER
        )
        if doc:
            return Merchant(**doc)
        return None
