"""Room availability for a requested stay.

Two views are computed from the same set of conflicting bookings:

* the interval check (:func:`is_available`) decides whether a new booking may
  be created; any overlapping active booking blocks the room;
* the bed count (:func:`bed_availability`) sums the guests of those bookings
  against the room capacity. Listings use it on top of the interval check.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from . import ledger
from .database import read_scope
from .errors import InvalidRangeError, NotFoundError
from .models import Room
from .schemas import AvailabilityResult, BedAvailability, RoomAvailability

logger = logging.getLogger(__name__)


def _check_range(check_in: date, check_out: date) -> None:
    if check_out <= check_in:
        raise InvalidRangeError()


def _load_room(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found")
    return room


def is_available(
    db: Session,
    room_id: int,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
) -> AvailabilityResult:
    _check_range(check_in, check_out)
    with read_scope(db):
        _load_room(db, room_id)
        conflicts = ledger.find_conflicts(db, room_id, check_in, check_out, exclude_booking_id)
    if conflicts:
        logger.debug("room %s has %d conflicting bookings for %s..%s", room_id, len(conflicts), check_in, check_out)
    return AvailabilityResult(available=not conflicts, conflicting_count=len(conflicts))


def _occupied_beds(bookings) -> int:
    return sum(booking.guest_count or 1 for booking in bookings)


def bed_availability(db: Session, room_id: int, check_in: date, check_out: date) -> BedAvailability:
    _check_range(check_in, check_out)
    with read_scope(db):
        room = _load_room(db, room_id)
        occupied = _occupied_beds(ledger.find_conflicts(db, room_id, check_in, check_out))
    return BedAvailability(capacity=room.capacity, occupied_beds=occupied, available_beds=room.capacity - occupied)


def check_room_availability(db: Session, room_id: int, check_in: date, check_out: date) -> RoomAvailability:
    """Interval check, bed count and nightly rate in one scan."""

    _check_range(check_in, check_out)
    with read_scope(db):
        room = _load_room(db, room_id)
        conflicts = ledger.find_conflicts(db, room_id, check_in, check_out)
    occupied = _occupied_beds(conflicts)
    return RoomAvailability(
        available=not conflicts,
        conflicting_count=len(conflicts),
        occupied_beds=occupied,
        available_beds=room.capacity - occupied,
        price_per_night=room.price_per_night,
    )
