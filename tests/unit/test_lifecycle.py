"""Unit tests for booking lifecycle transitions and counter bookkeeping."""
import logging
import random
from datetime import date, timedelta
from decimal import Decimal
from itertools import combinations

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from roomlink import lifecycle, registry
from roomlink.errors import ConflictError, InvalidRangeError, InvalidStateError, NotFoundError, StorageError
from roomlink.models import ACTIVE_STATUSES, Booking, Room
from roomlink.schemas import BookingCreate, BookingUpdate, RoomUpdate


def request_for(room, check_in=date(2024, 1, 10), check_out=date(2024, 1, 15), **extra) -> BookingCreate:
    return BookingCreate(room_id=room.id, guest_id=7, check_in_date=check_in, check_out_date=check_out, **extra)


def counter(db, room_id: int) -> int:
    value = db.scalar(select(Room.available_rooms).where(Room.id == room_id))
    db.rollback()
    return value


def booking_count(db) -> int:
    value = db.scalar(select(func.count(Booking.id)))
    db.rollback()
    return value


class TestCreate:
    """Test booking creation."""

    def test_create_confirms_and_decrements_counter(self, db_session, room):
        before = counter(db_session, room.id)

        booking = lifecycle.create_booking(db_session, request_for(room))

        assert booking.status == "confirmed"
        assert booking.hostel_id == room.hostel_id
        assert booking.total_price == Decimal("500")
        assert counter(db_session, room.id) == before - 1

    def test_weekly_stay_is_priced_with_discount(self, db_session, room):
        booking = lifecycle.create_booking(
            db_session, request_for(room, date(2024, 2, 1), date(2024, 2, 8))
        )

        assert booking.total_price == Decimal("630")

    def test_overlap_is_rejected_without_side_effects(self, db_session, room):
        lifecycle.create_booking(db_session, request_for(room))
        before = counter(db_session, room.id)

        with pytest.raises(ConflictError):
            lifecycle.create_booking(db_session, request_for(room, date(2024, 1, 12), date(2024, 1, 20)))

        assert counter(db_session, room.id) == before
        assert booking_count(db_session) == 1

    def test_back_to_back_stays_are_allowed(self, db_session, room):
        lifecycle.create_booking(db_session, request_for(room))

        second = lifecycle.create_booking(db_session, request_for(room, date(2024, 1, 15), date(2024, 1, 18)))

        assert second.status == "confirmed"

    def test_unknown_room(self, db_session):
        with pytest.raises(NotFoundError):
            lifecycle.create_booking(
                db_session,
                BookingCreate(room_id=404, guest_id=1, check_in_date=date(2024, 1, 1), check_out_date=date(2024, 1, 2)),
            )

    def test_inactive_room(self, db_session, room):
        registry.deactivate_room(db_session, room.id)

        with pytest.raises(NotFoundError):
            lifecycle.create_booking(db_session, request_for(room))

    def test_invalid_range(self, db_session, room):
        with pytest.raises(InvalidRangeError):
            lifecycle.create_booking(db_session, request_for(room, date(2024, 1, 15), date(2024, 1, 15)))

        assert booking_count(db_session) == 0

    def test_storage_failure_rolls_back_booking(self, db_session, room, monkeypatch):
        def broken_counter(room, delta):
            raise OperationalError("UPDATE rooms", {}, Exception("disk I/O error"))

        monkeypatch.setattr(registry, "shift_available_rooms", broken_counter)
        before = counter(db_session, room.id)

        with pytest.raises(StorageError):
            lifecycle.create_booking(db_session, request_for(room))

        assert booking_count(db_session) == 0
        assert counter(db_session, room.id) == before

    def test_counter_never_drops_below_zero(self, db_session, room_factory):
        room = room_factory(capacity=1)

        lifecycle.create_booking(db_session, request_for(room, date(2024, 1, 1), date(2024, 1, 3)))
        lifecycle.create_booking(db_session, request_for(room, date(2024, 2, 1), date(2024, 2, 3)))

        assert counter(db_session, room.id) == 0

    def test_active_bookings_never_overlap(self, db_session, room):
        rng = random.Random(20240110)
        start = date(2024, 3, 1)
        for _ in range(60):
            check_in = start + timedelta(days=rng.randint(0, 40))
            check_out = check_in + timedelta(days=rng.randint(1, 6))
            try:
                lifecycle.create_booking(db_session, request_for(room, check_in, check_out))
            except ConflictError:
                pass

        active = db_session.scalars(
            select(Booking).where(Booking.room_id == room.id, Booking.status.in_(ACTIVE_STATUSES))
        ).all()
        assert len(active) > 1
        for first, second in combinations(active, 2):
            assert not (
                first.check_in_date < second.check_out_date and first.check_out_date > second.check_in_date
            )


class TestCancel:
    """Test cancellation and counter restoration."""

    def test_cancel_restores_counter(self, db_session, room):
        before = counter(db_session, room.id)
        booking = lifecycle.create_booking(db_session, request_for(room))
        assert counter(db_session, room.id) == before - 1

        cancelled = lifecycle.cancel_booking(db_session, booking.id, "change of plans")

        assert cancelled.status == "cancelled"
        assert cancelled.cancellation_reason == "change of plans"
        assert cancelled.cancelled_at is not None
        assert counter(db_session, room.id) == before

    def test_cancel_frees_the_dates(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.cancel_booking(db_session, booking.id)

        again = lifecycle.create_booking(db_session, request_for(room))

        assert again.id != booking.id

    def test_cancel_twice(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.cancel_booking(db_session, booking.id)
        before = counter(db_session, room.id)

        with pytest.raises(InvalidStateError):
            lifecycle.cancel_booking(db_session, booking.id)

        assert counter(db_session, room.id) == before

    @pytest.mark.parametrize("steps", [("check_in",), ("check_in", "check_out")])
    def test_cannot_cancel_after_arrival(self, db_session, room, steps):
        booking = lifecycle.create_booking(db_session, request_for(room))
        for step in steps:
            getattr(lifecycle, step)(db_session, booking.id)

        with pytest.raises(InvalidStateError):
            lifecycle.cancel_booking(db_session, booking.id)

    def test_unknown_booking(self, db_session):
        with pytest.raises(NotFoundError):
            lifecycle.cancel_booking(db_session, 999)

    def test_counter_never_exceeds_capacity(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        db_session.execute(update(Room).where(Room.id == room.id).values(available_rooms=room.capacity))
        db_session.commit()
        assert counter(db_session, room.id) == room.capacity

        lifecycle.cancel_booking(db_session, booking.id)

        assert counter(db_session, room.id) == room.capacity


class TestArrivalAndDeparture:
    """Test check-in and check-out guards."""

    def test_full_stay(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))

        checked_in = lifecycle.check_in(db_session, booking.id)
        assert checked_in.status == "checked-in"
        assert checked_in.check_in_time is not None

        checked_out = lifecycle.check_out(db_session, booking.id)
        assert checked_out.status == "checked-out"
        assert checked_out.check_out_time is not None

    def test_double_check_in(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.check_in(db_session, booking.id)

        with pytest.raises(InvalidStateError):
            lifecycle.check_in(db_session, booking.id)

    def test_check_out_requires_check_in(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))

        with pytest.raises(InvalidStateError):
            lifecycle.check_out(db_session, booking.id)

    def test_cancelled_booking_cannot_check_in(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.cancel_booking(db_session, booking.id)

        with pytest.raises(InvalidStateError):
            lifecycle.check_in(db_session, booking.id)

    def test_unknown_booking(self, db_session):
        with pytest.raises(NotFoundError):
            lifecycle.check_in(db_session, 999)


class TestUpdate:
    """Test guest-editable fields and stay extension."""

    def test_unlisted_fields_are_dropped(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))

        updated = lifecycle.update_booking(
            db_session, booking.id, {"notes": "late arrival", "status": "cancelled", "guest_count": 9}
        )

        assert updated.notes == "late arrival"
        assert updated.status == "confirmed"
        assert updated.guest_count == 1

    def test_extension_is_repriced(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))

        updated = lifecycle.update_booking(db_session, booking.id, BookingUpdate(check_out_date=date(2024, 1, 17)))

        assert updated.check_out_date == date(2024, 1, 17)
        assert updated.total_price == Decimal("630")

    def test_extension_into_another_stay_conflicts(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.create_booking(db_session, request_for(room, date(2024, 1, 16), date(2024, 1, 18)))

        with pytest.raises(ConflictError):
            lifecycle.update_booking(db_session, booking.id, {"check_out_date": date(2024, 1, 17)})

        db_session.refresh(booking)
        assert booking.check_out_date == date(2024, 1, 15)
        db_session.rollback()

    def test_extension_up_to_next_arrival_is_fine(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.create_booking(db_session, request_for(room, date(2024, 1, 16), date(2024, 1, 18)))

        updated = lifecycle.update_booking(db_session, booking.id, {"check_out_date": date(2024, 1, 16)})

        assert updated.check_out_date == date(2024, 1, 16)

    def test_check_out_before_check_in(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))

        with pytest.raises(InvalidRangeError):
            lifecycle.update_booking(db_session, booking.id, {"check_out_date": date(2024, 1, 9)})

    def test_cancelled_booking_dates_are_frozen(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.cancel_booking(db_session, booking.id)

        with pytest.raises(InvalidStateError):
            lifecycle.update_booking(db_session, booking.id, {"check_out_date": date(2024, 1, 20)})

    def test_notes_on_finished_booking(self, db_session, room):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.check_in(db_session, booking.id)
        lifecycle.check_out(db_session, booking.id)

        updated = lifecycle.update_booking(db_session, booking.id, {"special_requests": "invoice please"})

        assert updated.special_requests == "invoice please"

    def test_unknown_booking(self, db_session):
        with pytest.raises(NotFoundError):
            lifecycle.update_booking(db_session, 999, {"notes": "x"})


def test_room_price_change_does_not_touch_existing_bookings(db_session, room):
    booking = lifecycle.create_booking(db_session, request_for(room))

    registry.update_room(db_session, room.id, RoomUpdate(price_per_night=Decimal("250")))

    db_session.refresh(booking)
    assert booking.total_price == Decimal("500")


class TestFailureLogging:
    """Test that rejected transitions leave an ERROR record."""

    @pytest.mark.parametrize(
        "operation, args, message",
        [
            ("check_in", (), "Error checking in booking"),
            ("check_out", (), "Error checking out booking"),
            ("update_booking", ({"check_out_date": date(2024, 1, 9)},), "Error updating booking"),
        ],
    )
    def test_failures_are_logged(self, db_session, room, caplog, operation, args, message):
        booking = lifecycle.create_booking(db_session, request_for(room))
        lifecycle.cancel_booking(db_session, booking.id)

        with caplog.at_level(logging.ERROR, logger="roomlink.lifecycle"):
            with pytest.raises((InvalidStateError, InvalidRangeError)):
                getattr(lifecycle, operation)(db_session, booking.id, *args)

        assert any(message in record.getMessage() for record in caplog.records)
