"""
Money helpers – rounding and the three-way commission split.

Amounts are plain floats at the storage boundary (MongoDB doubles) but every
rounding step goes through Decimal so that 2.675 rounds to 2.68 the way the
marketplace's price displays do, not to 2.67 as binary floats would.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple, Optional

from settlement_engine.config.settings import settings
from settlement_engine.utils.errors import RoundingInvariantViolation

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value) -> float:
    """Round half-up to 2 decimals"""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def percent_of(total, percentage) -> float:
    """round2(total * percentage / 100)"""
    return round2(to_decimal(total) * to_decimal(percentage) / Decimal(100))


class Split(NamedTuple):
    restaurant: float
    admin: float
    hotel: float

    @property
    def total(self) -> float:
        return round2(to_decimal(self.restaurant) + to_decimal(self.admin) + to_decimal(self.hotel))


def split_total(total, restaurant_pct, admin_pct, hotel_pct=0, tolerance: Optional[float] = None) -> Split:
    """
    Split `total` between restaurant, admin and hotel.

    Each party is rounded independently; whatever rounding leaves over
    (at most one minor unit when the percentages sum to 100) is added to the
    admin share. A larger gap means the percentages themselves are broken and
    raises RoundingInvariantViolation instead of being absorbed.
    """
    tolerance = settings.ROUNDING_TOLERANCE if tolerance is None else tolerance

    restaurant = percent_of(total, restaurant_pct)
    admin = percent_of(total, admin_pct)
    hotel = percent_of(total, hotel_pct)

    remainder = to_decimal(round2(total)) - (to_decimal(restaurant) + to_decimal(admin) + to_decimal(hotel))
    if abs(remainder) > to_decimal(tolerance):
        raise RoundingInvariantViolation(
            f"Shares {restaurant} + {admin} + {hotel} deviate from total {round2(total)} by {float(remainder)}",
            {
                "total": round2(total),
                "shares": {"restaurant": restaurant, "admin": admin, "hotel": hotel},
                "percentages": {"restaurant": restaurant_pct, "admin": admin_pct, "hotel": hotel_pct},
                "remainder": float(remainder),
                "tolerance": tolerance,
            },
        )
    if remainder:
        admin = round2(to_decimal(admin) + remainder)

    return Split(restaurant=restaurant, admin=admin, hotel=hotel)
