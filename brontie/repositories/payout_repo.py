"""
PayoutRepository - merchant earnings per voucher.

Claim protocol:
1. claim(): pending → claimed under a fresh claim_token (atomic update_many)
2. list_claimed(token): exactly the items this run owns
3. mark_claim_paid(token) after the transfer succeeds,
   or release_claim(token) after a definite failure
Items left claimed (unknown transfer outcome) are resolved by reconciliation.
"""

from datetime import datetime
from typing import Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from brontie.models.payout_item import OPEN_STATUSES, PaymentMethod, PayoutItem, PayoutStatus
from brontie.utils.clock import utcnow


class PayoutRepository:
    """Repository for payout items."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["payout_items"]

    async def insert(self, item: PayoutItem, session=None) -> PayoutItem:
        """Insert a payout item. Raises DuplicateKeyError if the voucher already has an open one."""
        result = await self.collection.insert_one(item.to_document(), session=session)
        item.id = result.inserted_id
        return item

    async def find_open_for_voucher(self, voucher_id: ObjectId) -> Optional[PayoutItem]:
        """The voucher's single non-reversed item, if any."""
        doc = await self.collection.find_one({
            "voucher_id": voucher_id,
            "status": {"$in": [s.value for s in OPEN_STATUSES]}
        })
        if doc:
            return PayoutItem(**doc)
        return None

    async def list_pending_for_settlement(self) -> List[PayoutItem]:
        """Pending items not held for review, oldest first."""
        docs = await self.collection.find({
            "status": PayoutStatus.PENDING.value,
            "review_required": {"$ne": True}
        }).sort("created_at", 1).to_list(None)
        return [PayoutItem(**doc) for doc in docs]

    async def claim(
        self,
        item_ids: List[ObjectId],
        claim_token: str,
        transfer_group: str,
        claimed_at: datetime
    ) -> int:
        """Atomically reserve pending items for one transfer. Returns how many were claimed."""
        if not item_ids:
            return 0
        result = await self.collection.update_many(
            {
                "_id": {"$in": item_ids},
                "status": PayoutStatus.PENDING.value,
                "review_required": {"$ne": True}
            },
            {
                "$set": {
                    "status": PayoutStatus.CLAIMED.value,
                    "claim_token": claim_token,
                    "claimed_at": claimed_at,
                    "transfer_group": transfer_group,
                    "updated_at": claimed_at
                }
            }
        )
        return result.modified_count

    async def list_claimed(self, claim_token: str) -> List[PayoutItem]:
        docs = await self.collection.find({
            "claim_token": claim_token,
            "status": PayoutStatus.CLAIMED.value
        }).to_list(None)
        return [PayoutItem(**doc) for doc in docs]

    async def release_claim(self, claim_token: str) -> int:
        """Return claimed items to pending after a definite transfer failure."""
        result = await self.collection.update_many(
            {"claim_token": claim_token, "status": PayoutStatus.CLAIMED.value},
            {
                "$set": {"status": PayoutStatus.PENDING.value, "updated_at": utcnow()},
                "$unset": {"claim_token": "", "claimed_at": "", "transfer_group": ""}
            }
        )
        return result.modified_count

    async def mark_claim_paid(
        self,
        claim_token: str,
        transfer_id: str,
        paid_at: datetime,
        session=None
    ) -> int:
        result = await self.collection.update_many(
            {"claim_token": claim_token, "status": PayoutStatus.CLAIMED.value},
            {
                "$set": {
                    "status": PayoutStatus.PAID.value,
                    "transfer_id": transfer_id,
                    "paid_out_at": paid_at,
                    "payment_method": PaymentMethod.STRIPE_TRANSFER.value,
                    "updated_at": paid_at
                }
            },
            session=session
        )
        return result.modified_count

    async def list_stale_claims(self, claimed_before: datetime) -> List[PayoutItem]:
        docs = await self.collection.find({
            "status": PayoutStatus.CLAIMED.value,
            "claimed_at": {"$lt": claimed_before}
        }).to_list(None)
        return [PayoutItem(**doc) for doc in docs]

    async def reverse(
        self,
        item_id: ObjectId,
        from_status: PayoutStatus,
        reason: str,
        reversed_at: datetime,
        reversal_id: Optional[str] = None
    ) -> Optional[PayoutItem]:
        """Move one item to reversed, guarded on its current status."""
        doc = await self.collection.find_one_and_update(
            {"_id": item_id, "status": from_status.value},
            {
                "$set": {
                    "status": PayoutStatus.REVERSED.value,
                    "reversed_at": reversed_at,
                    "reversal_id": reversal_id,
                    "reversal_reason": reason,
                    "updated_at": reversed_at
                }
            },
            return_document=ReturnDocument.AFTER
        )
        if doc:
            return PayoutItem(**doc)
        return None

    async def flag_for_review(self, item_id: ObjectId, reason: str, flagged_at: datetime) -> bool:
        result = await self.collection.update_one(
            {"_id": item_id},
            {
                "$set": {
                    "review_required": True,
                    "review_reason": reason,
                    "flagged_at": flagged_at,
                    "updated_at": flagged_at
                }
            }
        )
        return result.modified_count > 0

    async def flag_voucher_items(self, voucher_id: ObjectId, reason: str, flagged_at: datetime) -> int:
        """Flag every non-reversed item of a voucher for manual review."""
        result = await self.collection.update_many(
            {
                "voucher_id": voucher_id,
                "status": {"$in": [s.value for s in OPEN_STATUSES]}
            },
            {
                "$set": {
                    "review_required": True,
                    "review_reason": reason,
                    "flagged_at": flagged_at,
                    "updated_at": flagged_at
                }
            }
        )
        return result.modified_count

    async def mark_paid_manually(
        self,
        merchant_id: ObjectId,
        paid_up_to: datetime,
        paid_at: datetime,
        notes: str
    ) -> int:
        """Pending items created up to the cutoff were paid outside Stripe."""
        result = await self.collection.update_many(
            {
                "merchant_id": merchant_id,
                "status": PayoutStatus.PENDING.value,
                "review_required": {"$ne": True},
                "created_at": {"$lte": paid_up_to}
            },
            {
                "$set": {
                    "status": PayoutStatus.PAID.value,
                    "paid_out_at": paid_at,
                    "payment_method": PaymentMethod.MANUAL_BANK_TRANSFER.value,
                    "notes": notes,
                    "updated_at": paid_at
                }
            }
        )
        return result.modified_count

    async def summary_for_merchant(self, merchant_id: ObjectId) -> Dict[str, dict]:
        """
        Per-status totals for one merchant.

        Returns:
        {
            "pending": {"count": 3, "amount_payable": 27.5, "brontie_fee": 0.0, "stripe_fee": 1.2},
            ...
        }
        """
        rows = await self.collection.aggregate([
            {"$match": {"merchant_id": merchant_id}},
            {
                "$group": {
                    "_id": "$status",
                    "count": {"$sum": 1},
                    "amount_payable": {"$sum": "$amount_payable"},
                    "brontie_fee": {"$sum": "$brontie_fee"},
                    "stripe_fee": {"$sum": "$stripe_fee"}
                }
            }
        ]).to_list(None)

        return {
            row["_id"]: {
                "count": row["count"],
                "amount_payable": round(row["amount_payable"], 2),
                "brontie_fee": round(row["brontie_fee"], 2),
                "stripe_fee": round(row["stripe_fee"], 2)
            }
            for row in rows
        }
