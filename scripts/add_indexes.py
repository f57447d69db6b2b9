#!/usr/bin/env python3
"""Script to add the composite indexes used by conflict checks and listings."""
from sqlalchemy import text

from roomlink.database import engine

INDEXES = [
    # Overlap scans filter on room, status and both stay dates.
    "CREATE INDEX IF NOT EXISTS idx_bookings_room_status_dates "
    "ON bookings (room_id, status, check_in_date, check_out_date);",
    "CREATE INDEX IF NOT EXISTS idx_bookings_guest_check_in ON bookings (guest_id, check_in_date);",
    "CREATE INDEX IF NOT EXISTS idx_bookings_hostel_status ON bookings (hostel_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_rooms_hostel_active ON rooms (hostel_id, is_active);",
    "CREATE INDEX IF NOT EXISTS idx_rooms_available ON rooms (hostel_id, available_rooms);",
]


def add_indexes():
    with engine.begin() as conn:
        for statement in INDEXES:
            conn.execute(text(statement))
    print(f"{len(INDEXES)} indexes ensured on {engine.url.render_as_string(hide_password=True)}.")


if __name__ == "__main__":
    add_indexes()
