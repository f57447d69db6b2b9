"""Booking lifecycle: create, cancel, check-in, check-out and update.

``confirmed -> checked-in -> checked-out`` is the normal path; a booking can be
cancelled only while it is still ``confirmed``. Operations that touch both the
ledger and the room counter run in one transaction that starts by locking the
room, so concurrent requests for the same room are serialized by the database.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy.orm import Session

from . import availability, ledger, pricing, registry
from .database import atomic
from .errors import ConflictError, InvalidRangeError, InvalidStateError
from .models import ACTIVE_STATUSES, Booking, BookingStatus
from .schemas import BookingCreate, BookingUpdate

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("check_out_date", "special_requests", "notes")


def create_booking(db: Session, booking_in: BookingCreate) -> Booking:
    if booking_in.check_out_date <= booking_in.check_in_date:
        raise InvalidRangeError()
    try:
        with atomic(db):
            room = registry.get_room(db, booking_in.room_id, for_update=True, active_only=True)
            result = availability.is_available(
                db, room.id, booking_in.check_in_date, booking_in.check_out_date
            )
            if not result.available:
                raise ConflictError()

            quote = pricing.quote(room, booking_in.check_in_date, booking_in.check_out_date)
            booking = ledger.insert_booking(
                db,
                **booking_in.model_dump(),
                hostel_id=room.hostel_id,
                status=BookingStatus.CONFIRMED.value,
                total_price=quote.total_price,
            )
            registry.shift_available_rooms(room, -1)
    except Exception as exc:
        logger.error("Error creating booking for room %s: %s", booking_in.room_id, exc)
        raise

    logger.info("Booking created: %s", booking.id)
    return booking


def cancel_booking(db: Session, booking_id: int, reason: str = "") -> Booking:
    try:
        with atomic(db):
            booking = ledger.get_booking(db, booking_id, for_update=True)
            if booking.status == BookingStatus.CANCELLED.value:
                raise InvalidStateError("Booking is already cancelled")
            if booking.status != BookingStatus.CONFIRMED.value:
                raise InvalidStateError(f"A {booking.status} booking cannot be cancelled")

            room = registry.get_room(db, booking.room_id, for_update=True)
            ledger.update_booking_fields(
                db,
                booking,
                status=BookingStatus.CANCELLED.value,
                cancellation_reason=reason,
                cancelled_at=datetime.utcnow(),
            )
            registry.shift_available_rooms(room, 1)
    except Exception as exc:
        logger.error("Error cancelling booking %s: %s", booking_id, exc)
        raise

    logger.info("Booking cancelled: %s", booking_id)
    return booking


def _transition(
    db: Session,
    booking_id: int,
    required: BookingStatus,
    target: BookingStatus,
    stamp: str,
    message: str,
) -> Booking:
    with atomic(db):
        booking = ledger.get_booking(db, booking_id, for_update=True)
        if booking.status != required.value:
            raise InvalidStateError(message)
        ledger.update_booking_fields(db, booking, status=target.value, **{stamp: datetime.utcnow()})
    return booking


def check_in(db: Session, booking_id: int) -> Booking:
    try:
        booking = _transition(
            db,
            booking_id,
            BookingStatus.CONFIRMED,
            BookingStatus.CHECKED_IN,
            "check_in_time",
            "Only confirmed bookings can be checked in",
        )
    except Exception as exc:
        logger.error("Error checking in booking %s: %s", booking_id, exc)
        raise
    logger.info("Guest checked in: %s", booking_id)
    return booking


def check_out(db: Session, booking_id: int) -> Booking:
    try:
        booking = _transition(
            db,
            booking_id,
            BookingStatus.CHECKED_IN,
            BookingStatus.CHECKED_OUT,
            "check_out_time",
            "Only checked-in guests can be checked out",
        )
    except Exception as exc:
        logger.error("Error checking out booking %s: %s", booking_id, exc)
        raise
    logger.info("Guest checked out: %s", booking_id)
    return booking


def _allowed_changes(patch: BookingUpdate | Mapping[str, Any]) -> dict[str, Any]:
    if not isinstance(patch, BookingUpdate):
        patch = BookingUpdate.model_validate(dict(patch))
    data = patch.model_dump(exclude_unset=True)
    return {key: data[key] for key in UPDATABLE_FIELDS if data.get(key) is not None}


def update_booking(db: Session, booking_id: int, patch: BookingUpdate | Mapping[str, Any]) -> Booking:
    """Apply guest-editable fields; unknown fields are dropped.

    A new check-out date is re-validated against the room's other bookings and
    re-priced before it is stored.
    """
    changes = _allowed_changes(patch)
    try:
        with atomic(db):
            booking = ledger.get_booking(db, booking_id, for_update=True)
            new_check_out = changes.get("check_out_date")
            if new_check_out is not None and new_check_out != booking.check_out_date:
                if booking.status not in ACTIVE_STATUSES:
                    raise InvalidStateError(f"Dates of a {booking.status} booking cannot be changed")
                if new_check_out <= booking.check_in_date:
                    raise InvalidRangeError()

                room = registry.get_room(db, booking.room_id, for_update=True)
                result = availability.is_available(
                    db, room.id, booking.check_in_date, new_check_out, exclude_booking_id=booking.id
                )
                if not result.available:
                    raise ConflictError("Room is not available for the extended dates")
                changes["total_price"] = pricing.quote(room, booking.check_in_date, new_check_out).total_price

            if changes:
                ledger.update_booking_fields(db, booking, **changes)
    except Exception as exc:
        logger.error("Error updating booking %s: %s", booking_id, exc)
        raise

    logger.info("Booking updated: %s", booking_id)
    return booking
