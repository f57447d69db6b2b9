import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from circuitbreaker import circuit
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from roomlink import availability, pricing, registry
from roomlink.cache import SimpleTTLCache, price_key, room_prefix
from roomlink.config import get_settings
from roomlink.database import Base, engine
from roomlink.dependencies import get_blob_store, get_db
from roomlink.errors import StorageError, add_error_handlers
from roomlink.logging_middleware import add_audit_middleware
from roomlink.models import Booking, Hostel, Room
from roomlink.rate_limit import ROOM_WRITE_LIMIT, SEARCH_LIMIT, apply_rate_limiter, limiter
from roomlink.schemas import (
    AvailableRoom,
    BookingRead,
    HostelCreate,
    HostelRead,
    OccupancyReport,
    PriceQuote,
    ReconcileResult,
    RevenueReport,
    RoomAvailability,
    RoomCreate,
    RoomRead,
    RoomUpdate,
    StoredBlob,
)
from roomlink.uploads import BlobStore

logger = logging.getLogger(__name__)
settings = get_settings()
AVAILABLE_ROOMS_CIRCUIT = "rooms.available-rooms"
price_cache: SimpleTTLCache[PriceQuote] = SimpleTTLCache(ttl=settings.price_cache_ttl)


def _invalidate_room_cache(room_id: int) -> None:
    dropped = price_cache.pop_prefix(room_prefix(room_id))
    if dropped:
        logger.debug("dropped %d cached quotes for room %s", dropped, room_id)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Rooms Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "rooms")
    Instrumentator(registry=CollectorRegistry()).instrument(fastapi_app).expose(fastapi_app, include_in_schema=False)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


@app.post("/hostels", response_model=HostelRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(ROOM_WRITE_LIMIT)
def add_hostel(request: Request, hostel_in: HostelCreate, db: Session = Depends(get_db)) -> Hostel:
    return registry.create_hostel(db, hostel_in)


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(ROOM_WRITE_LIMIT)
def add_room(request: Request, room_in: RoomCreate, db: Session = Depends(get_db)) -> Room:
    return registry.create_room(db, room_in)


@app.get("/rooms/{room_id}", response_model=RoomRead)
def get_room(room_id: int, db: Session = Depends(get_db)) -> Room:
    return registry.get_room(db, room_id)


@app.put("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit(ROOM_WRITE_LIMIT)
def update_room(request: Request, room_id: int, room_update: RoomUpdate, db: Session = Depends(get_db)) -> Room:
    room = registry.update_room(db, room_id, room_update)
    _invalidate_room_cache(room_id)
    return room


@app.delete("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit(ROOM_WRITE_LIMIT)
def deactivate_room(request: Request, room_id: int, db: Session = Depends(get_db)) -> Room:
    room = registry.deactivate_room(db, room_id)
    _invalidate_room_cache(room_id)
    return room


@app.get("/hostels/{hostel_id}/available-rooms", response_model=List[AvailableRoom])
@limiter.limit(SEARCH_LIMIT)
@circuit(failure_threshold=5, recovery_timeout=60, expected_exception=StorageError, name=AVAILABLE_ROOMS_CIRCUIT)
def available_rooms(
    request: Request,
    hostel_id: int,
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    db: Session = Depends(get_db),
) -> List[AvailableRoom]:
    return registry.list_available_rooms(db, hostel_id, check_in_date, check_out_date)


@app.get("/hostels/{hostel_id}/low-availability", response_model=List[RoomRead])
def low_availability(
    hostel_id: int,
    threshold: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
) -> List[Room]:
    limit = settings.low_availability_threshold if threshold is None else threshold
    return registry.low_availability_rooms(db, hostel_id, limit)


@app.get("/rooms/{room_id}/price", response_model=PriceQuote)
@limiter.limit(SEARCH_LIMIT)
def room_price(
    request: Request,
    room_id: int,
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    db: Session = Depends(get_db),
) -> PriceQuote:
    cache_key = price_key(room_id, check_in_date, check_out_date)
    cached = price_cache.get(cache_key)
    if cached is not None:
        return cached
    quote = pricing.price(db, room_id, check_in_date, check_out_date)
    price_cache.set(cache_key, quote)
    return quote


@app.get("/rooms/{room_id}/availability", response_model=RoomAvailability)
@limiter.limit(SEARCH_LIMIT)
def room_availability(
    request: Request,
    room_id: int,
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    db: Session = Depends(get_db),
) -> RoomAvailability:
    return availability.check_room_availability(db, room_id, check_in_date, check_out_date)


@app.get("/rooms/{room_id}/occupancy", response_model=OccupancyReport)
def room_occupancy(
    room_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
) -> OccupancyReport:
    return registry.occupancy_rate(db, room_id, start_date, end_date)


@app.get("/rooms/{room_id}/revenue", response_model=RevenueReport)
def room_revenue(
    room_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
) -> RevenueReport:
    return registry.revenue(db, room_id, start_date, end_date)


@app.get("/rooms/{room_id}/bookings", response_model=List[BookingRead])
def room_bookings(
    room_id: int,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
) -> List[Booking]:
    return registry.room_booking_history(db, room_id, limit)


@app.post("/rooms/{room_id}/reconcile", response_model=ReconcileResult)
@limiter.limit(ROOM_WRITE_LIMIT)
def reconcile_room(request: Request, room_id: int, db: Session = Depends(get_db)) -> ReconcileResult:
    return registry.reconcile_availability(db, room_id)


@app.post("/rooms/{room_id}/images", response_model=StoredBlob, status_code=status.HTTP_201_CREATED)
@limiter.limit(ROOM_WRITE_LIMIT)
async def upload_room_image(
    request: Request,
    room_id: int,
    filename: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> StoredBlob:
    data = await request.body()
    return await run_in_threadpool(registry.add_room_image, db, room_id, store, data, filename)


@app.delete("/rooms/{room_id}/images/{blob_id:path}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(ROOM_WRITE_LIMIT)
def delete_room_image(
    request: Request,
    room_id: int,
    blob_id: str,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> None:
    registry.remove_room_image(db, room_id, store, blob_id)
