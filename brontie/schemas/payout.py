from datetime import datetime

from pydantic import BaseModel


class MarkPaidRequest(BaseModel):
    """Everything pending up to this date was paid by bank transfer."""
    paid_up_to: datetime
