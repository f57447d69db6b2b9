"""SQLAlchemy models shared across all services."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked-in"
    CHECKED_OUT = "checked-out"
    CANCELLED = "cancelled"


# Bookings that hold the room and take part in conflict detection.
ACTIVE_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.CHECKED_IN.value)
# Bookings that count as stays for occupancy and revenue.
STAY_STATUSES = ACTIVE_STATUSES + (BookingStatus.CHECKED_OUT.value,)


class Hostel(Base):
    __tablename__ = "hostels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(150))
    address: Mapped[str] = mapped_column(String(255), default="")
    city: Mapped[str] = mapped_column(String(100), default="", index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    rooms: Mapped[List["Room"]] = relationship(back_populates="hostel")


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("hostel_id", "room_number", name="uq_room_number_per_hostel"),
        CheckConstraint("capacity > 0", name="ck_room_capacity_positive"),
        CheckConstraint("price_per_night >= 0", name="ck_room_price_non_negative"),
        CheckConstraint(
            "available_rooms >= 0 AND available_rooms <= capacity", name="ck_room_counter_within_capacity"
        ),
        CheckConstraint("weekly_discount_pct >= 0 AND weekly_discount_pct <= 100", name="ck_room_weekly_pct"),
        CheckConstraint("monthly_discount_pct >= 0 AND monthly_discount_pct <= 100", name="ck_room_monthly_pct"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    hostel_id: Mapped[int] = mapped_column(ForeignKey("hostels.id"), index=True)
    room_number: Mapped[str] = mapped_column(String(20))
    room_type: Mapped[str] = mapped_column(String(30), default="dorm")
    capacity: Mapped[int] = mapped_column(Integer)
    price_per_night: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    weekly_discount_pct: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    monthly_discount_pct: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    available_rooms: Mapped[int] = mapped_column(Integer)
    amenities: Mapped[list[str]] = mapped_column(JSON, default=list)
    images: Mapped[list[dict]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    hostel: Mapped[Hostel] = relationship(back_populates="rooms")
    bookings: Mapped[List["Booking"]] = relationship(back_populates="room")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_booking_dates_ordered"),
        CheckConstraint("guest_count >= 1", name="ck_booking_guest_count"),
        CheckConstraint(
            "status IN ('confirmed', 'checked-in', 'checked-out', 'cancelled')", name="ck_booking_status"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), index=True)
    hostel_id: Mapped[int] = mapped_column(ForeignKey("hostels.id"), index=True)
    guest_id: Mapped[int] = mapped_column(Integer, index=True)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    guest_count: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String(20), default=BookingStatus.CONFIRMED.value, index=True)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, default=None)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, default=None)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None, onupdate=datetime.utcnow)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    check_in_time: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    check_out_time: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    room: Mapped[Room] = relationship(back_populates="bookings")
