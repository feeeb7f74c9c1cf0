from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class AddressIn(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    line1: str = ""
    city: str = ""
    postcode: str = ""


class CartCheckoutIn(BaseModel):
    cartType: str = "food"
    orderType: str = "delivery"  # delivery|pickup|dine-in
    deliveryAddress: Optional[AddressIn] = None
    promoCode: Optional[str] = None


class BookingCheckoutIn(BaseModel):
    restaurantId: str
    tableId: str
    date: date
    time: str = Field(pattern=r"^\d{2}:\d{2}$")
    guests: int = Field(ge=1)


class CheckoutOut(BaseModel):
    kind: str
    recordId: str
    number: str
    sessionId: str
    redirectUrl: str
    totalAmount: str
    amountMinor: int
    currency: str
    lockExpiresAt: Optional[str] = None
