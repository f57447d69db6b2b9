"""Room registry: rooms, their availability counters and per-room reports."""
from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import availability, ledger, pricing
from .database import atomic, read_scope
from .errors import ConflictError, InvalidRangeError, NotFoundError
from .models import STAY_STATUSES, Booking, Hostel, Room
from .schemas import (
    AvailableRoom,
    HostelCreate,
    OccupancyReport,
    ReconcileResult,
    RevenueReport,
    RoomCreate,
    RoomRead,
    RoomUpdate,
    StoredBlob,
)
from .uploads import BlobStore

logger = logging.getLogger(__name__)


def get_hostel(db: Session, hostel_id: int) -> Hostel:
    hostel = db.get(Hostel, hostel_id)
    if hostel is None:
        raise NotFoundError("Hostel not found")
    return hostel


def get_room(db: Session, room_id: int, for_update: bool = False, active_only: bool = False) -> Room:
    stmt = select(Room).where(Room.id == room_id)
    if active_only:
        stmt = stmt.where(Room.is_active.is_(True))
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    room = db.scalars(stmt).first()
    if room is None:
        raise NotFoundError("Room not found or inactive" if active_only else "Room not found")
    return room


def create_hostel(db: Session, hostel_in: HostelCreate) -> Hostel:
    with atomic(db):
        hostel = Hostel(**hostel_in.model_dump())
        db.add(hostel)
    logger.info("Hostel created: %s", hostel.id)
    return hostel


def create_room(db: Session, room_in: RoomCreate) -> Room:
    with atomic(db):
        get_hostel(db, room_in.hostel_id)
        taken = db.scalar(
            select(Room.id).where(Room.hostel_id == room_in.hostel_id, Room.room_number == room_in.room_number)
        )
        if taken is not None:
            raise ConflictError("Room number already exists in this hostel")
        room = Room(**room_in.model_dump(), available_rooms=room_in.capacity, images=[])
        db.add(room)
    logger.info("Room created: %s in hostel %s", room.id, room.hostel_id)
    return room


def update_room(db: Session, room_id: int, room_update: RoomUpdate) -> Room:
    with atomic(db):
        room = get_room(db, room_id, for_update=True)
        for key, value in room_update.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(room, key, value)
    logger.info("Room updated: %s", room_id)
    return room


def deactivate_room(db: Session, room_id: int) -> Room:
    """Soft delete; rooms referenced by bookings are never removed."""

    with atomic(db):
        room = get_room(db, room_id, for_update=True)
        room.is_active = False
    logger.info("Room deactivated: %s", room_id)
    return room


def shift_available_rooms(room: Room, delta: int) -> int:
    """Move the counter by ``delta`` within ``[0, capacity]``.

    Only call this inside the transaction that writes the triggering booking.
    """
    target = room.available_rooms + delta
    clamped = min(max(target, 0), room.capacity)
    if clamped != target:
        logger.warning(
            "availability counter for room %s clamped to %s (wanted %s); run reconciliation", room.id, clamped, target
        )
    room.available_rooms = clamped
    return clamped


def reconcile_availability(db: Session, room_id: int) -> ReconcileResult:
    """Recompute the counter from the ledger: capacity minus non-cancelled bookings."""

    with atomic(db):
        room = get_room(db, room_id, for_update=True)
        previous = room.available_rooms
        holding = ledger.count_holding(db, room_id)
        room.available_rooms = min(max(room.capacity - holding, 0), room.capacity)
    result = ReconcileResult(room_id=room_id, previous=previous, current=room.available_rooms)
    if result.drifted:
        logger.warning("Room %s availability drift corrected: %s -> %s", room_id, previous, result.current)
    return result


def reconcile_all(db: Session) -> List[ReconcileResult]:
    room_ids = db.scalars(select(Room.id).order_by(Room.id)).all()
    return [reconcile_availability(db, room_id) for room_id in room_ids]


def list_available_rooms(db: Session, hostel_id: int, check_in: date, check_out: date) -> List[AvailableRoom]:
    if check_out <= check_in:
        raise InvalidRangeError()
    results: List[AvailableRoom] = []
    with read_scope(db):
        rooms = db.scalars(
            select(Room).where(Room.hostel_id == hostel_id, Room.is_active.is_(True)).order_by(Room.id)
        ).all()
        for room in rooms:
            room_availability = availability.check_room_availability(db, room.id, check_in, check_out)
            if not (room_availability.available and room_availability.available_beds > 0):
                continue
            results.append(
                AvailableRoom(
                    room=RoomRead.model_validate(room),
                    availability=room_availability,
                    pricing=pricing.quote(room, check_in, check_out),
                )
            )
    return results


def low_availability_rooms(db: Session, hostel_id: int, threshold: int = 2) -> List[Room]:
    stmt = select(Room).where(
        Room.hostel_id == hostel_id,
        Room.is_active.is_(True),
        Room.available_rooms <= threshold,
    )
    return list(db.scalars(stmt.order_by(Room.id)))


def room_booking_history(db: Session, room_id: int, limit: int = 10) -> List[Booking]:
    get_room(db, room_id)
    return ledger.room_history(db, room_id, limit)


def _report_range(start: date, end: date) -> int:
    days = (end - start).days
    if days <= 0:
        raise InvalidRangeError("End date must be after start date")
    return days


def occupancy_rate(db: Session, room_id: int, start: date, end: date) -> OccupancyReport:
    """Share of bed-nights sold between ``start`` and ``end``.

    Only bookings fully inside the range count; stays straddling either edge
    are left out.
    """
    room = get_room(db, room_id)
    total_days = _report_range(start, end)
    bookings = ledger.contained_in(db, room_id, start, end, STAY_STATUSES)

    occupied = sum(
        pricing.count_nights(b.check_in_date, b.check_out_date) * (b.guest_count or 1) for b in bookings
    )
    capacity_days = total_days * room.capacity
    rate = (Decimal(occupied) * 100 / capacity_days).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return OccupancyReport(
        room_id=room_id,
        occupancy_rate=int(rate),
        occupied_bed_nights=occupied,
        total_capacity_days=capacity_days,
        booking_count=len(bookings),
    )


def revenue(db: Session, room_id: int, start: date, end: date) -> RevenueReport:
    get_room(db, room_id)
    _report_range(start, end)
    bookings = ledger.contained_in(db, room_id, start, end, STAY_STATUSES)

    total = sum((Decimal(b.total_price or 0) for b in bookings), Decimal("0"))
    completed = len(bookings)
    average = (total / completed).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) if completed else Decimal("0")
    return RevenueReport(
        room_id=room_id,
        total_revenue=total,
        completed_bookings=completed,
        average_revenue_per_booking=average,
    )


def add_room_image(db: Session, room_id: int, store: BlobStore, data: bytes, filename: str) -> StoredBlob:
    """Upload an image and attach its record to the room."""

    get_room(db, room_id)
    blob = store.store(data, filename, folder=f"rooms/{room_id}")
    try:
        with atomic(db):
            room = get_room(db, room_id, for_update=True)
            room.images = [*(room.images or []), blob.model_dump()]
    except Exception:
        store.delete(blob.id)
        raise
    logger.info("Image %s attached to room %s", blob.id, room_id)
    return blob


def remove_room_image(db: Session, room_id: int, store: BlobStore, blob_id: str) -> bool:
    with atomic(db):
        room = get_room(db, room_id, for_update=True)
        remaining = [image for image in room.images or [] if image.get("id") != blob_id]
        if len(remaining) == len(room.images or []):
            raise NotFoundError("Image not found")
        room.images = remaining
    return store.delete(blob_id)
