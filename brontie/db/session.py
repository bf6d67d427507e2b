from contextlib import asynccontextmanager

from brontie.db.mongo import mongodb


async def get_database():
    """Return the active database connection."""
    return mongodb.db


@asynccontextmanager
async def transaction(db):
    """
    Run a block inside a MongoDB transaction.

    Yields the session; pass it to every write that must commit together.
    Requires a replica set (Atlas or a local rs).
    """
    async with await db.client.start_session() as session:
        async with session.start_transaction():
            yield session
