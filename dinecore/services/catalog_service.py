"""Read-only view of catalog data for checkout.

Menu and restaurant management live elsewhere; checkout only needs the
current price and availability of an item and a restaurant's fee settings.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from dinecore.models.menu_item import MenuItem
from dinecore.models.restaurant import Restaurant
from dinecore.services.delivery_fee_service import Coordinates, DeliverySettings
from dinecore.services.pricing_service import from_minor

BPS = Decimal("10000")


@dataclass(frozen=True)
class Variant:
    id: str
    name: str
    additional_price: Decimal


@dataclass(frozen=True)
class VariantGroup:
    id: str
    title: str
    variants: tuple


@dataclass(frozen=True)
class Addon:
    id: str
    name: str
    price: Decimal


@dataclass(frozen=True)
class AddonGroup:
    id: str
    title: str
    min_selection: int
    max_selection: int
    addons: tuple


@dataclass(frozen=True)
class CatalogItem:
    id: str
    restaurant_id: str
    name: str
    available: bool
    base_price: Decimal
    is_food: bool
    variant_groups: tuple = ()
    addon_groups: tuple = ()

    def find_variant(self, group_id: str, variant_id: str) -> Optional[Variant]:
        for group in self.variant_groups:
            if group.id == group_id:
                return next((v for v in group.variants if v.id == variant_id), None)
        return None

    def find_addon_group(self, group_id: str) -> Optional[AddonGroup]:
        return next((g for g in self.addon_groups if g.id == group_id), None)


@dataclass(frozen=True)
class RestaurantSettings:
    restaurant_id: str
    owner_id: str
    handling_rate: Decimal
    delivery: DeliverySettings
    location: Optional[Coordinates]
    booking_fee: Decimal
    accepts_bookings: bool


def _variant_groups(raw: list | None) -> tuple:
    return tuple(
        VariantGroup(
            id=str(g["id"]),
            title=g.get("title", ""),
            variants=tuple(
                Variant(str(v["id"]), v.get("name", ""), from_minor(v.get("additional_price_minor", 0)))
                for v in g.get("variants", [])
            ),
        )
        for g in raw or []
    )


def _addon_groups(raw: list | None) -> tuple:
    return tuple(
        AddonGroup(
            id=str(g["id"]),
            title=g.get("title", ""),
            min_selection=int(g.get("min_selection", 0)),
            max_selection=int(g.get("max_selection", len(g.get("addons", [])))),
            addons=tuple(Addon(str(a["id"]), a.get("name", ""), from_minor(a.get("price_minor", 0))) for a in g.get("addons", [])),
        )
        for g in raw or []
    )


class CatalogService:
    def __init__(self, db: Session, default_booking_fee_minor: int = 100):
        self.db = db
        self.default_booking_fee_minor = default_booking_fee_minor

    def get_item(self, item_id: str) -> Optional[CatalogItem]:
        item = self.db.get(MenuItem, item_id)
        if not item:
            return None
        return CatalogItem(
            id=item.id,
            restaurant_id=item.restaurant_id,
            name=item.name,
            available=bool(item.is_available),
            base_price=from_minor(item.price_minor),
            is_food=bool(item.is_food),
            variant_groups=_variant_groups(item.variant_groups),
            addon_groups=_addon_groups(item.addon_groups),
        )

    def get_restaurant_settings(self, restaurant_id: str) -> Optional[RestaurantSettings]:
        r = self.db.get(Restaurant, restaurant_id)
        if not r or not r.is_active:
            return None
        location = None
        if r.latitude is not None and r.longitude is not None:
            location = Coordinates(r.latitude, r.longitude)
        fee_minor = r.booking_fee_minor if r.booking_fee_minor is not None else self.default_booking_fee_minor
        return RestaurantSettings(
            restaurant_id=r.id,
            owner_id=r.owner_id,
            handling_rate=Decimal(int(r.handling_charge_bps or 0)) / BPS,
            delivery=DeliverySettings(
                max_radius=float(r.max_delivery_radius or 0.0),
                free_radius=float(r.free_delivery_radius or 0.0),
                charge_per_mile=from_minor(r.charge_per_mile_minor or 0),
            ),
            location=location,
            booking_fee=from_minor(fee_minor),
            accepts_bookings=bool(r.accepts_bookings),
        )
