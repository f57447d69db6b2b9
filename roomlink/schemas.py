"""Pydantic schemas shared across the services."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .models import BookingStatus


class HostelCreate(BaseModel):
    name: str = Field(..., max_length=150)
    address: str = ""
    city: str = ""
    is_active: bool = True


class HostelRead(HostelCreate):
    id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class RoomBase(BaseModel):
    room_number: str = Field(..., max_length=20)
    room_type: str = "dorm"
    capacity: int = Field(..., gt=0)
    price_per_night: Decimal = Field(..., ge=0)
    weekly_discount_pct: Decimal = Field(Decimal("0"), ge=0, le=100)
    monthly_discount_pct: Decimal = Field(Decimal("0"), ge=0, le=100)
    amenities: List[str] = Field(default_factory=list)
    is_active: bool = True


class RoomCreate(RoomBase):
    hostel_id: int


class RoomUpdate(BaseModel):
    room_type: Optional[str] = None
    price_per_night: Optional[Decimal] = Field(None, ge=0)
    weekly_discount_pct: Optional[Decimal] = Field(None, ge=0, le=100)
    monthly_discount_pct: Optional[Decimal] = Field(None, ge=0, le=100)
    amenities: Optional[List[str]] = None
    is_active: Optional[bool] = None


class StoredBlob(BaseModel):
    id: str
    url: str
    size: int
    format: str


class RoomRead(RoomBase):
    id: int
    hostel_id: int
    available_rooms: int
    images: List[StoredBlob] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class BookingCreate(BaseModel):
    room_id: int
    guest_id: int
    check_in_date: date
    check_out_date: date
    guest_count: int = Field(1, ge=1)
    special_requests: Optional[str] = None
    notes: Optional[str] = None


class BookingUpdate(BaseModel):
    """Fields a guest may change after booking; anything else is ignored."""

    model_config = {"extra": "ignore"}

    check_out_date: Optional[date] = None
    special_requests: Optional[str] = None
    notes: Optional[str] = None


class BookingCancel(BaseModel):
    reason: str = ""


class BookingRead(BaseModel):
    id: int
    room_id: int
    hostel_id: int
    guest_id: int
    check_in_date: date
    check_out_date: date
    guest_count: int
    status: BookingStatus
    total_price: Decimal
    cancellation_reason: Optional[str] = None
    special_requests: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    cancelled_at: Optional[datetime] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingPage(BaseModel):
    items: List[BookingRead]
    total: int
    page: int
    limit: int
    pages: int


class AvailabilityResult(BaseModel):
    available: bool
    conflicting_count: int


class BedAvailability(BaseModel):
    capacity: int
    occupied_beds: int
    available_beds: int


class RoomAvailability(BaseModel):
    available: bool
    conflicting_count: int
    occupied_beds: int
    available_beds: int
    price_per_night: Decimal


class PriceQuote(BaseModel):
    nights: int
    price_per_night: Decimal
    base_price: Decimal
    discount: Decimal
    discount_type: Literal["none", "weekly", "monthly"]
    discount_percentage: Decimal
    total_price: Decimal


class AvailableRoom(BaseModel):
    room: RoomRead
    availability: RoomAvailability
    pricing: PriceQuote


class OccupancyReport(BaseModel):
    room_id: int
    occupancy_rate: int
    occupied_bed_nights: int
    total_capacity_days: int
    booking_count: int


class RevenueReport(BaseModel):
    room_id: int
    total_revenue: Decimal
    completed_bookings: int
    average_revenue_per_booking: Decimal


class ReconcileResult(BaseModel):
    room_id: int
    previous: int
    current: int

    @property
    def drifted(self) -> bool:
        return self.previous != self.current

