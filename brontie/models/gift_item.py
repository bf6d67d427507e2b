from typing import List, Optional

from brontie.models.base import MongoModel, PyObjectId


class GiftItem(MongoModel):
    """A product sold as a voucher. Owned by one merchant."""
    merchant_id: PyObjectId
    name: str
    price: float
    description: Optional[str] = None
    location_ids: List[PyObjectId] = []
    is_active: bool = True
