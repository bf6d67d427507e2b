from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from brontie.models.base import to_object_id
from brontie.models.gift_item import GiftItem


class GiftItemRepository:
    """Gift item (product) lookups."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["gift_items"]

    async def get_by_id(self, gift_item_id: str | ObjectId) -> Optional[GiftItem]:
        if not ObjectId.is_valid(gift_item_id):
            return None
        doc = await self.collection.find_one({"_id": to_object_id(gift_item_id)})
        if doc:
            return GiftItem(**doc)
        return None
