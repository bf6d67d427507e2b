from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from brontie.models.base import to_object_id
from brontie.models.voucher import REDEEMABLE_STATUSES, Voucher, VoucherStatus, sources_for
from brontie.utils.clock import utcnow


class VoucherRepository:
    """Voucher database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["vouchers"]

    async def insert(self, voucher: Voucher, session=None) -> Voucher:
        result = await self.collection.insert_one(voucher.to_document(), session=session)
        voucher.id = result.inserted_id
        return voucher

    async def get_by_id(self, voucher_id: str | ObjectId) -> Optional[Voucher]:
        if not ObjectId.is_valid(voucher_id):
            return None
        doc = await self.collection.find_one({"_id": to_object_id(voucher_id)})
        if doc:
            return Voucher(**doc)
        return None

    async def get_by_redemption_link(self, redemption_link: str) -> Optional[Voucher]:
        doc = await self.collection.find_one({"redemption_link": redemption_link})
        if doc:
            return Voucher(**doc)
        return None

    async def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Voucher]:
        doc = await self.collection.find_one({"payment_intent_id": payment_intent_id})
        if doc:
            return Voucher(**doc)
        return None

    async def transition(
        self,
        voucher_id: ObjectId,
        target: VoucherStatus,
        fields: Optional[dict] = None,
        session=None
    ) -> Optional[Voucher]:
        """
        Move a voucher to target if its current status allows it.

        The status check and the write are one atomic find_one_and_update,
        so two concurrent redemptions cannot both succeed.
        Returns the updated voucher, or None when the guard did not match.
        """
        update = {
            "status": target.value,
            "updated_at": utcnow(),
        }
        if fields:
            update.update(fields)

        doc = await self.collection.find_one_and_update(
            {"_id": voucher_id, "status": {"$in": sources_for(target)}},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
            session=session
        )
        if doc:
            return Voucher(**doc)
        return None

    async def mark_redeemed_many(
        self,
        voucher_ids: List[ObjectId],
        redeemed_at: datetime,
        session=None
    ) -> int:
        """Mark still-usable vouchers redeemed. Already redeemed ones keep their redeemed_at."""
        if not voucher_ids:
            return 0
        result = await self.collection.update_many(
            {
                "_id": {"$in": voucher_ids},
                "status": {"$in": [s.value for s in REDEEMABLE_STATUSES]}
            },
            {
                "$set": {
                    "status": VoucherStatus.REDEEMED.value,
                    "redeemed_at": redeemed_at,
                    "updated_at": redeemed_at
                }
            },
            session=session
        )
        return result.modified_count

    async def expire_overdue(self, now: datetime) -> int:
        """Expire every usable voucher whose expires_at has passed."""
        result = await self.collection.update_many(
            {
                "status": {"$in": sources_for(VoucherStatus.EXPIRED)},
                "expires_at": {"$lt": now}
            },
            {
                "$set": {
                    "status": VoucherStatus.EXPIRED.value,
                    "updated_at": now
                }
            }
        )
        return result.modified_count
