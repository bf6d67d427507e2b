from typing import Optional

from bson import ObjectId

from brontie.models.merchant import Merchant
from brontie.repositories.merchant_repo import MerchantRepository
from brontie.utils.cache import TTLCache
from brontie.utils.clock import Clock


class MerchantDirectory:
    """
    Cached merchant lookups for commission decisions.

    One instance per process, created at startup and shared by reference.
    Transfers must not use it: account ids are always read fresh.
    """

    def __init__(self, clock: Clock, ttl_seconds: int):
        self.cache: TTLCache[Merchant] = TTLCache(clock, ttl_seconds)

    async def get(self, repo: MerchantRepository, merchant_id: ObjectId) -> Optional[Merchant]:
        key = str(merchant_id)
        merchant = self.cache.get(key)
        if merchant is not None:
            return merchant

        merchant = await repo.get_by_id(merchant_id)
        if merchant is not None:
            self.cache.set(key, merchant)
        return merchant

    def invalidate(self, merchant_id: ObjectId | str) -> None:
        self.cache.invalidate(str(merchant_id))
