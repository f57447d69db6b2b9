"""Stay pricing with length-of-stay discount tiers."""
from __future__ import annotations

import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.orm import Session

from .errors import InvalidRangeError, NotFoundError
from .models import Room
from .schemas import PriceQuote

WEEKLY_THRESHOLD_NIGHTS = 7
MONTHLY_THRESHOLD_NIGHTS = 30

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _percentage(value: Optional[Decimal]) -> Decimal:
    pct = Decimal(value or 0)
    return min(max(pct, Decimal("0")), _HUNDRED)


def count_nights(check_in: date, check_out: date) -> int:
    """Whole nights between two dates; partial days round up."""

    seconds = (check_out - check_in).total_seconds()
    nights = math.ceil(seconds / 86400)
    if nights <= 0:
        raise InvalidRangeError()
    return nights


def quote(room: Room, check_in: date, check_out: date) -> PriceQuote:
    """Price a stay in ``room``.

    At most one tier applies: 30+ nights take the monthly discount, 7-29 nights
    the weekly discount, shorter stays pay the base price.
    """
    nights = count_nights(check_in, check_out)
    rate = Decimal(room.price_per_night)
    base_price = _money(rate * nights)

    if nights >= MONTHLY_THRESHOLD_NIGHTS:
        discount_type, pct = "monthly", _percentage(room.monthly_discount_pct)
    elif nights >= WEEKLY_THRESHOLD_NIGHTS:
        discount_type, pct = "weekly", _percentage(room.weekly_discount_pct)
    else:
        discount_type, pct = "none", Decimal("0")

    discount = _money(base_price * pct / _HUNDRED)
    total = max(base_price - discount, Decimal("0"))
    return PriceQuote(
        nights=nights,
        price_per_night=_money(rate),
        base_price=base_price,
        discount=discount,
        discount_type=discount_type,
        discount_percentage=pct,
        total_price=_money(total),
    )


def price(db: Session, room_id: int, check_in: date, check_out: date) -> PriceQuote:
    room = db.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found")
    return quote(room, check_in, check_out)
