from typing import Optional

from pydantic import BaseModel


class RespondIn(BaseModel):
    accept: bool


class StatusIn(BaseModel):
    status: str  # out_for_delivery|delivered


class StatusChangeOut(BaseModel):
    kind: str
    id: str
    status: str
    paymentStatus: str
    refundStatus: Optional[str] = None
