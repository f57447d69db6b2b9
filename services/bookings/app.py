from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from roomlink import availability, ledger, lifecycle
from roomlink.config import get_settings
from roomlink.database import Base, engine
from roomlink.dependencies import Pagination, get_db, pagination
from roomlink.errors import add_error_handlers
from roomlink.logging_middleware import add_audit_middleware
from roomlink.models import Booking, BookingStatus
from roomlink.rate_limit import BOOKING_WRITE_LIMIT, SEARCH_LIMIT, apply_rate_limiter, limiter
from roomlink.schemas import (
    AvailabilityResult,
    BookingCancel,
    BookingCreate,
    BookingPage,
    BookingRead,
    BookingUpdate,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    Instrumentator(registry=CollectorRegistry()).instrument(fastapi_app).expose(fastapi_app, include_in_schema=False)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.post("/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(BOOKING_WRITE_LIMIT)
def create_booking(request: Request, booking_in: BookingCreate, db: Session = Depends(get_db)) -> Booking:
    return lifecycle.create_booking(db, booking_in)


@app.get("/bookings", response_model=BookingPage)
def list_bookings(
    room_id: Optional[int] = None,
    guest_id: Optional[int] = None,
    hostel_id: Optional[int] = None,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    check_in_from: Optional[date] = None,
    check_out_to: Optional[date] = None,
    page: Pagination = Depends(pagination),
    db: Session = Depends(get_db),
) -> BookingPage:
    return ledger.list_bookings(
        db,
        room_id=room_id,
        guest_id=guest_id,
        hostel_id=hostel_id,
        status=booking_status.value if booking_status else None,
        check_in_from=check_in_from,
        check_out_to=check_out_to,
        page=page.page,
        limit=page.limit,
    )


@app.get("/bookings/availability", response_model=AvailabilityResult)
@limiter.limit(SEARCH_LIMIT)
def check_availability(
    request: Request,
    room_id: int,
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    db: Session = Depends(get_db),
) -> AvailabilityResult:
    return availability.is_available(db, room_id, check_in_date, check_out_date)


@app.get("/bookings/{booking_id}", response_model=BookingRead)
def get_booking(booking_id: int, db: Session = Depends(get_db)) -> Booking:
    return ledger.get_booking(db, booking_id)


@app.patch("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit(BOOKING_WRITE_LIMIT)
def update_booking(
    request: Request,
    booking_id: int,
    booking_update: BookingUpdate,
    db: Session = Depends(get_db),
) -> Booking:
    return lifecycle.update_booking(db, booking_id, booking_update)


@app.post("/bookings/{booking_id}/cancel", response_model=BookingRead)
@limiter.limit(BOOKING_WRITE_LIMIT)
def cancel_booking(
    request: Request,
    booking_id: int,
    body: Optional[BookingCancel] = None,
    db: Session = Depends(get_db),
) -> Booking:
    return lifecycle.cancel_booking(db, booking_id, body.reason if body else "")


@app.post("/bookings/{booking_id}/check-in", response_model=BookingRead)
@limiter.limit(BOOKING_WRITE_LIMIT)
def check_in(request: Request, booking_id: int, db: Session = Depends(get_db)) -> Booking:
    return lifecycle.check_in(db, booking_id)


@app.post("/bookings/{booking_id}/check-out", response_model=BookingRead)
@limiter.limit(BOOKING_WRITE_LIMIT)
def check_out(request: Request, booking_id: int, db: Session = Depends(get_db)) -> Booking:
    return lifecycle.check_out(db, booking_id)


@app.get("/guests/{guest_id}/bookings", response_model=BookingPage)
def guest_bookings(
    guest_id: int,
    page: Pagination = Depends(pagination),
    db: Session = Depends(get_db),
) -> BookingPage:
    return ledger.list_guest_bookings(db, guest_id, page=page.page, limit=page.limit)
