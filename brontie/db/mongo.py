import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from brontie.core.config import settings
from brontie.models.payout_item import OPEN_STATUSES

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # Voucher lookups
    await db["vouchers"].create_index("redemption_link", unique=True)
    # Partial on string values: unset tokens are stored as null and must not collide
    await db["vouchers"].create_index(
        "payment_intent_id",
        unique=True,
        name="payment_intent_id_unique",
        partialFilterExpression={"payment_intent_id": {"$type": "string"}},
    )
    await db["vouchers"].create_index(
        "recipient_token",
        unique=True,
        name="recipient_token_unique",
        partialFilterExpression={"recipient_token": {"$type": "string"}},
    )
    await db["vouchers"].create_index("gift_item_id")
    await db["vouchers"].create_index("status")
    await db["vouchers"].create_index("expires_at")

    # One open payout item per voucher; reversed items don't count
    await db["payout_items"].create_index(
        "voucher_id",
        unique=True,
        name="voucher_id_open_unique",
        partialFilterExpression={"status": {"$in": [s.value for s in OPEN_STATUSES]}},
    )
    await db["payout_items"].create_index([("merchant_id", 1), ("status", 1)])
    await db["payout_items"].create_index([("status", 1), ("claimed_at", 1)])
    await db["payout_items"].create_index("paid_out_at")

    # Transactions
    await db["transactions"].create_index([("merchant_id", 1), ("type", 1)])
    await db["transactions"].create_index("voucher_id")

    await db["gift_items"].create_index("merchant_id")
    await db["redemption_logs"].create_index("voucher_id")

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
