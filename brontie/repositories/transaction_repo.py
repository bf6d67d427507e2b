from motor.motor_asyncio import AsyncIOMotorDatabase

from brontie.models.transaction import RedemptionLog, Transaction


class TransactionRepository:
    """Append-only transaction and redemption logs."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["transactions"]
        self.redemption_logs = db["redemption_logs"]

    async def record(self, transaction: Transaction, session=None) -> Transaction:
        result = await self.collection.insert_one(transaction.to_document(), session=session)
        transaction.id = result.inserted_id
        return transaction

    async def record_redemption(self, log: RedemptionLog, session=None) -> RedemptionLog:
        result = await self.redemption_logs.insert_one(log.to_document(), session=session)
        log.id = result.inserted_id
        return log

