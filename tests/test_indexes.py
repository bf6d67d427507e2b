from unittest.mock import AsyncMock, MagicMock

import pytest

from brontie.db.mongo import create_indexes


@pytest.fixture
def db():
    collections = {}

    def _collection(name):
        if name not in collections:
            collection = MagicMock(name=name)
            collection.create_index = AsyncMock()
            collections[name] = collection
        return collections[name]

    db = MagicMock()
    db.__getitem__.side_effect = _collection
    db.collections = collections
    return db


def _index(db, collection, key):
    for call in db.collections[collection].create_index.await_args_list:
        if call.args[0] == key:
            return call.kwargs
    raise AssertionError(f"no index on {collection}.{key}")


@pytest.mark.asyncio
async def test_one_open_payout_item_per_voucher(db):
    await create_indexes(db)

    options = _index(db, "payout_items", "voucher_id")
    assert options["unique"] is True
    assert options["name"] == "voucher_id_open_unique"
    assert sorted(options["partialFilterExpression"]["status"]["$in"]) == ["claimed", "paid", "pending"]


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["payment_intent_id", "recipient_token"])
async def test_optional_voucher_keys_ignore_nulls(db, field):
    await create_indexes(db)

    options = _index(db, "vouchers", field)
    assert options["unique"] is True
    # Nulls are stored explicitly, so a sparse index would still collide on them
    assert "sparse" not in options
    assert options["partialFilterExpression"] == {field: {"$type": "string"}}


@pytest.mark.asyncio
async def test_redemption_link_is_unique(db):
    await create_indexes(db)

    assert _index(db, "vouchers", "redemption_link") == {"unique": True}
