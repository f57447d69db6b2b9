"""Booking ledger: the stored bookings and the queries run against them.

The ledger is the source of truth for conflict detection. Every read helper
takes the caller's session so it can run inside the caller's transaction.
"""
from __future__ import annotations

import math
from datetime import date
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .models import ACTIVE_STATUSES, STAY_STATUSES, Booking
from .schemas import BookingPage, BookingRead


def overlapping(
    room_id: int,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
    statuses: Iterable[str] = ACTIVE_STATUSES,
):
    """SELECT for bookings on ``room_id`` whose half-open range meets ``[check_in, check_out)``.

    A stay ending on the day another starts does not overlap it.
    """
    stmt = select(Booking).where(
        Booking.room_id == room_id,
        Booking.status.in_(list(statuses)),
        Booking.check_in_date < check_out,
        Booking.check_out_date > check_in,
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    return stmt


def find_conflicts(
    db: Session,
    room_id: int,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
) -> List[Booking]:
    return list(db.scalars(overlapping(room_id, check_in, check_out, exclude_booking_id)))


def contained_in(db: Session, room_id: int, start: date, end: date, statuses: Iterable[str]) -> List[Booking]:
    """Bookings lying entirely inside ``[start, end]``."""

    stmt = select(Booking).where(
        Booking.room_id == room_id,
        Booking.status.in_(list(statuses)),
        Booking.check_in_date >= start,
        Booking.check_out_date <= end,
    )
    return list(db.scalars(stmt))


def get_booking(db: Session, booking_id: int, for_update: bool = False) -> Booking:
    stmt = select(Booking).where(Booking.id == booking_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    booking = db.scalars(stmt).first()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def insert_booking(db: Session, **fields: Any) -> Booking:
    booking = Booking(**fields)
    db.add(booking)
    db.flush()
    return booking


def update_booking_fields(db: Session, booking: Booking, **fields: Any) -> Booking:
    for key, value in fields.items():
        setattr(booking, key, value)
    db.flush()
    return booking


def _page(db: Session, stmt, page: int, limit: int) -> BookingPage:
    page = max(page, 1)
    limit = max(limit, 1)
    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = db.scalars(
        stmt.order_by(Booking.check_in_date.desc(), Booking.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return BookingPage(
        items=[BookingRead.model_validate(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit),
    )


def list_bookings(
    db: Session,
    *,
    room_id: Optional[int] = None,
    guest_id: Optional[int] = None,
    hostel_id: Optional[int] = None,
    status: Optional[str] = None,
    check_in_from: Optional[date] = None,
    check_out_to: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
) -> BookingPage:
    """Filtered, newest-stay-first page of bookings. Filters combine with AND."""

    stmt = select(Booking)
    if room_id is not None:
        stmt = stmt.where(Booking.room_id == room_id)
    if guest_id is not None:
        stmt = stmt.where(Booking.guest_id == guest_id)
    if hostel_id is not None:
        stmt = stmt.where(Booking.hostel_id == hostel_id)
    if status is not None:
        stmt = stmt.where(Booking.status == status)
    if check_in_from is not None:
        stmt = stmt.where(Booking.check_in_date >= check_in_from)
    if check_out_to is not None:
        stmt = stmt.where(Booking.check_out_date <= check_out_to)
    return _page(db, stmt, page, limit)


def list_guest_bookings(db: Session, guest_id: int, page: int = 1, limit: int = 10) -> BookingPage:
    return list_bookings(db, guest_id=guest_id, page=page, limit=limit)


def room_history(db: Session, room_id: int, limit: int = 10) -> List[Booking]:
    stmt = (
        select(Booking)
        .where(Booking.room_id == room_id)
        .order_by(Booking.check_in_date.desc(), Booking.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def count_holding(db: Session, room_id: int) -> int:
    """Non-cancelled bookings on the room.

    Creating a booking takes one unit of the room counter and only cancelling
    gives it back, so this is exactly what the counter has handed out.
    """

    stmt = select(func.count(Booking.id)).where(
        Booking.room_id == room_id,
        Booking.status.in_(STAY_STATUSES),
    )
    return db.scalar(stmt) or 0
