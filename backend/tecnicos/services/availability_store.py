import re
import sqlite3
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from tecnicos.models import AvailabilitySlot, AvailabilitySlotInput, TimeOff
from tecnicos.services.database import Database, database, new_id, utcnow_iso
from tecnicos.services.errors import (
    StoreNotFoundError,
    StorePermissionError,
    StoreValidationError,
)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Statuses that free the slot again.
RELEASED_STATUSES = ("CANCELLED", "NO_SHOW")

# Monday to Friday, 08:00-17:00.
DEFAULT_WEEKLY_HOURS = [(day, "08:00", "17:00") for day in range(1, 6)]


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise StoreValidationError(f"Fecha inválida: {value}") from None


def validate_time(value: str) -> str:
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise StoreValidationError(f"Hora inválida: {value}")
    return value


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


@dataclass
class AvailabilityStore:
    db: Database

    def __post_init__(self) -> None:
        self._init_db()

    def _init_db(self) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS availability_slots (
                        id TEXT PRIMARY KEY,
                        technician_id TEXT NOT NULL,
                        day_of_week INTEGER NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        is_recurring INTEGER NOT NULL DEFAULT 1,
                        is_available INTEGER NOT NULL DEFAULT 1
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS time_offs (
                        id TEXT PRIMARY KEY,
                        technician_id TEXT NOT NULL,
                        start_date TEXT NOT NULL,
                        end_date TEXT NOT NULL,
                        reason TEXT,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_availability_technician ON availability_slots(technician_id, day_of_week)"
                )
                conn.commit()

    def _require_technician(self, conn: sqlite3.Connection, technician_id: str) -> None:
        if not conn.execute("SELECT 1 FROM technicians WHERE id = ?", (technician_id,)).fetchone():
            raise StoreNotFoundError("Técnico no encontrado")

    def _row_to_slot(self, row: sqlite3.Row) -> AvailabilitySlot:
        return AvailabilitySlot(
            id=row["id"],
            technician_id=row["technician_id"],
            day_of_week=row["day_of_week"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            is_recurring=bool(row["is_recurring"]),
            is_available=bool(row["is_available"]),
        )

    def _row_to_time_off(self, row: sqlite3.Row) -> TimeOff:
        return TimeOff(
            id=row["id"],
            technician_id=row["technician_id"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            reason=row["reason"],
            created_at=row["created_at"],
        )

    def insert_default_hours(self, conn: sqlite3.Connection, technician_id: str) -> None:
        conn.executemany(
            """
            INSERT INTO availability_slots (id, technician_id, day_of_week, start_time, end_time, is_recurring, is_available)
            VALUES (?, ?, ?, ?, ?, 1, 1)
            """,
            [(new_id("av"), technician_id, day, start, end) for day, start, end in DEFAULT_WEEKLY_HOURS],
        )

    def ensure_default_hours(self, technician_id: str) -> bool:
        """Give a technician the default week when they have no slots at all."""
        with self.db.lock:
            with self.db.connect() as conn:
                if conn.execute("SELECT 1 FROM availability_slots WHERE technician_id = ?", (technician_id,)).fetchone():
                    return False
                self.insert_default_hours(conn, technician_id)
                conn.commit()
        return True

    def set_availability(self, technician_id: str, slots: List[AvailabilitySlotInput]) -> List[AvailabilitySlot]:
        for slot in slots:
            validate_time(slot.start_time)
            validate_time(slot.end_time)
            if not 0 <= slot.day_of_week <= 6:
                raise StoreValidationError("day_of_week debe estar entre 0 y 6")
            if slot.start_time >= slot.end_time:
                raise StoreValidationError("La hora de inicio debe ser anterior a la hora de fin")
        with self.db.lock:
            with self.db.connect() as conn:
                self._require_technician(conn, technician_id)
                conn.execute(
                    "DELETE FROM availability_slots WHERE technician_id = ? AND is_recurring = 1", (technician_id,)
                )
                conn.executemany(
                    """
                    INSERT INTO availability_slots (id, technician_id, day_of_week, start_time, end_time, is_recurring, is_available)
                    VALUES (?, ?, ?, ?, ?, 1, ?)
                    """,
                    [
                        (new_id("av"), technician_id, slot.day_of_week, slot.start_time, slot.end_time, 1 if slot.is_available else 0)
                        for slot in slots
                    ],
                )
                conn.commit()
        return self.get_availability(technician_id)

    def get_availability(self, technician_id: str) -> List[AvailabilitySlot]:
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM availability_slots
                    WHERE technician_id = ?
                    ORDER BY day_of_week ASC, start_time ASC
                    """,
                    (technician_id,),
                ).fetchall()
        return [self._row_to_slot(row) for row in rows]

    def _windows_for(self, conn: sqlite3.Connection, technician_id: str, day: date) -> List[sqlite3.Row]:
        return conn.execute(
            """
            SELECT * FROM availability_slots
            WHERE technician_id = ? AND day_of_week = ? AND is_available = 1 AND is_recurring = 1
            ORDER BY start_time ASC
            """,
            (technician_id, day_of_week(day)),
        ).fetchall()

    def _on_time_off(self, conn: sqlite3.Connection, technician_id: str, day: date) -> bool:
        iso_day = day.isoformat()
        row = conn.execute(
            "SELECT 1 FROM time_offs WHERE technician_id = ? AND start_date <= ? AND end_date >= ?",
            (technician_id, iso_day, iso_day),
        ).fetchone()
        return row is not None

    def _booked_times(self, conn: sqlite3.Connection, technician_id: str, day: date) -> set[str]:
        rows = conn.execute(
            """
            SELECT scheduled_time FROM bookings
            WHERE technician_id = ? AND scheduled_date = ? AND status NOT IN (?, ?)
            """,
            (technician_id, day.isoformat(), *RELEASED_STATUSES),
        ).fetchall()
        return {row["scheduled_time"] for row in rows}

    def is_available(self, conn: sqlite3.Connection, technician_id: str, day: date, time: str) -> bool:
        """Availability check on an open connection; the caller holds the lock."""
        windows = self._windows_for(conn, technician_id, day)
        if not any(window["start_time"] <= time < window["end_time"] for window in windows):
            return False
        if self._on_time_off(conn, technician_id, day):
            return False
        return time not in self._booked_times(conn, technician_id, day)

    def check_availability(self, technician_id: str, scheduled_date: str, scheduled_time: str) -> bool:
        day = parse_date(scheduled_date)
        validate_time(scheduled_time)
        with self.db.lock:
            with self.db.connect() as conn:
                return self.is_available(conn, technician_id, day, scheduled_time)

    def get_available_slots(self, technician_id: str, scheduled_date: str) -> List[str]:
        day = parse_date(scheduled_date)
        with self.db.lock:
            with self.db.connect() as conn:
                windows = self._windows_for(conn, technician_id, day)
                if not windows or self._on_time_off(conn, technician_id, day):
                    return []
                booked = self._booked_times(conn, technician_id, day)
        slots = []
        for hour in range(24):
            slot = f"{hour:02d}:00"
            if slot in booked:
                continue
            # Only whole hours that fall inside a window, same rule as is_available.
            if any(window["start_time"] <= slot < window["end_time"] for window in windows):
                slots.append(slot)
        return slots

    def add_time_off(self, technician_id: str, start_date: str, end_date: str, reason: Optional[str] = None) -> TimeOff:
        start = parse_date(start_date)
        end = parse_date(end_date)
        if end < start:
            raise StoreValidationError("La fecha de fin debe ser posterior a la de inicio")
        time_off_id = new_id("off")
        with self.db.lock:
            with self.db.connect() as conn:
                self._require_technician(conn, technician_id)
                conn.execute(
                    """
                    INSERT INTO time_offs (id, technician_id, start_date, end_date, reason, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (time_off_id, technician_id, start.isoformat(), end.isoformat(), reason, utcnow_iso()),
                )
                conn.commit()
                row = conn.execute("SELECT * FROM time_offs WHERE id = ?", (time_off_id,)).fetchone()
        return self._row_to_time_off(row)

    def remove_time_off(self, time_off_id: str, technician_id: str) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM time_offs WHERE id = ?", (time_off_id,)).fetchone()
                if not row:
                    raise StoreNotFoundError("Tiempo libre no encontrado")
                if row["technician_id"] != technician_id:
                    raise StorePermissionError("No autorizado")
                conn.execute("DELETE FROM time_offs WHERE id = ?", (time_off_id,))
                conn.commit()

    def list_time_offs(self, technician_id: str) -> List[TimeOff]:
        today = date.today().isoformat()
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM time_offs
                    WHERE technician_id = ? AND end_date >= ?
                    ORDER BY start_date ASC
                    """,
                    (technician_id, today),
                ).fetchall()
        return [self._row_to_time_off(row) for row in rows]

    def delete_for_technician(self, conn: sqlite3.Connection, technician_id: str) -> None:
        conn.execute("DELETE FROM availability_slots WHERE technician_id = ?", (technician_id,))
        conn.execute("DELETE FROM time_offs WHERE technician_id = ?", (technician_id,))


availability_store = AvailabilityStore(db=database)
