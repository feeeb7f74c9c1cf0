from typing import List, Optional

from pydantic import BaseModel, Field

from dinecore.schemas.checkout import AddressIn


class VariantIn(BaseModel):
    group_id: str
    variant_id: str


class AddonIn(BaseModel):
    group_id: str
    addon_id: str


class CartItemIn(BaseModel):
    itemId: str
    quantity: int = 1
    variant: Optional[VariantIn] = None
    addons: List[AddonIn] = Field(default_factory=list)


class CartQuantityIn(BaseModel):
    quantity: int


class CartLineOut(BaseModel):
    id: str
    itemId: str
    cartType: str
    restaurantId: str
    quantity: int
    variant: Optional[dict] = None
    addons: List[dict] = Field(default_factory=list)


class QuoteIn(BaseModel):
    cartType: str = "food"
    orderType: str = "delivery"
    deliveryAddress: Optional[AddressIn] = None
    promoCode: Optional[str] = None
