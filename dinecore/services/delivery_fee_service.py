import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from dinecore.services.pricing_service import ZERO, round_money

EARTH_RADIUS_MILES = 3958.8


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class DeliverySettings:
    max_radius: float  # miles
    free_radius: float
    charge_per_mile: Decimal


def haversine_miles(a: Coordinates, b: Coordinates) -> float:
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(h))


def calculate_delivery_fee(origin: Coordinates, destination: Coordinates, settings: DeliverySettings) -> Optional[Decimal]:
    """Fee for delivering from origin to destination; None when out of range."""
    distance = haversine_miles(origin, destination)
    if distance > settings.max_radius:
        return None
    if distance <= settings.free_radius:
        return ZERO.quantize(Decimal("0.01"))
    excess = Decimal(repr(distance - settings.free_radius))
    return round_money(excess * settings.charge_per_mile)
