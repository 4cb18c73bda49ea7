import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from tecnicos.models import Booking, BookingCreateRequest, BookingList, BookingStatusChange, Review
from tecnicos.services.availability_store import (
    AvailabilityStore,
    availability_store,
    parse_date,
    validate_time,
)
from tecnicos.services.database import Database, database, new_id, utcnow_iso
from tecnicos.services.errors import (
    StoreConflictError,
    StoreNotFoundError,
    StorePermissionError,
    StoreValidationError,
)
from tecnicos.services.gamification_store import GamificationStore, gamification_store
from tecnicos.services.notifier import Notifier, notifier
from tecnicos.services.technician_store import TechnicianStore, technician_store

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"COMPLETED", "CANCELLED", "NO_SHOW"}
QUICK_RESPONSE_WINDOW = timedelta(hours=1)
ON_TIME_GRACE = timedelta(minutes=15)

BOOKING_SELECT = """
    SELECT b.*, cu.name AS customer_name, t.user_id AS technician_user_id, tu.name AS technician_name
    FROM bookings b
    LEFT JOIN users cu ON cu.id = b.customer_id
    LEFT JOIN technicians t ON t.id = b.technician_id
    LEFT JOIN users tu ON tu.id = t.user_id
"""


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class BookingStore:
    db: Database
    availability: AvailabilityStore
    technicians: TechnicianStore
    gamification: GamificationStore
    notifier: Notifier

    def __post_init__(self) -> None:
        self._init_db()

    def _init_db(self) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS bookings (
                        id TEXT PRIMARY KEY,
                        customer_id TEXT NOT NULL,
                        technician_id TEXT NOT NULL,
                        scheduled_date TEXT NOT NULL,
                        scheduled_time TEXT NOT NULL,
                        service_type TEXT NOT NULL,
                        description TEXT NOT NULL DEFAULT '',
                        address TEXT NOT NULL,
                        city TEXT NOT NULL,
                        phone TEXT NOT NULL,
                        estimated_duration INTEGER NOT NULL DEFAULT 60,
                        status TEXT NOT NULL,
                        total_price REAL,
                        cancelled_by TEXT,
                        cancel_reason TEXT,
                        confirmed_at TEXT,
                        completed_at TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS booking_status_history (
                        id TEXT PRIMARY KEY,
                        booking_id TEXT NOT NULL,
                        actor_user_id TEXT NOT NULL,
                        from_status TEXT NOT NULL,
                        to_status TEXT NOT NULL,
                        note TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_bookings_technician_date ON bookings(technician_id, scheduled_date)"
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_bookings_customer ON bookings(customer_id)")
                conn.commit()

    def _row_to_booking(self, row: sqlite3.Row) -> Booking:
        return Booking(
            id=row["id"],
            customer_id=row["customer_id"],
            customer_name=row["customer_name"],
            technician_id=row["technician_id"],
            technician_user_id=row["technician_user_id"],
            technician_name=row["technician_name"],
            scheduled_date=row["scheduled_date"],
            scheduled_time=row["scheduled_time"],
            service_type=row["service_type"],
            description=row["description"],
            address=row["address"],
            city=row["city"],
            phone=row["phone"],
            estimated_duration=row["estimated_duration"],
            status=row["status"],
            total_price=row["total_price"],
            cancelled_by=row["cancelled_by"],
            cancel_reason=row["cancel_reason"],
            confirmed_at=row["confirmed_at"],
            completed_at=row["completed_at"],
            created_at=row["created_at"],
        )

    def _fetch(self, conn: sqlite3.Connection, booking_id: str) -> Booking:
        row = conn.execute(f"{BOOKING_SELECT} WHERE b.id = ?", (booking_id,)).fetchone()
        if not row:
            raise StoreNotFoundError("Reserva no encontrada")
        return self._row_to_booking(row)

    def _append_history(
        self,
        conn: sqlite3.Connection,
        booking_id: str,
        actor_user_id: str,
        from_status: str,
        to_status: str,
        note: str = "",
    ) -> None:
        conn.execute(
            """
            INSERT INTO booking_status_history (id, booking_id, actor_user_id, from_status, to_status, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (new_id("bsh"), booking_id, actor_user_id, from_status, to_status, note, utcnow_iso()),
        )

    def create_booking(self, payload: BookingCreateRequest) -> Booking:
        scheduled_day = parse_date(payload.scheduled_date)
        validate_time(payload.scheduled_time)
        if scheduled_day < date.today():
            raise StoreValidationError("No se pueden crear reservas en fechas pasadas")
        booking_id = new_id("bk")
        with self.db.lock:
            with self.db.connect() as conn:
                if not conn.execute("SELECT 1 FROM users WHERE id = ?", (payload.customer_id,)).fetchone():
                    raise StoreNotFoundError("Usuario no encontrado")
                if not conn.execute("SELECT 1 FROM technicians WHERE id = ?", (payload.technician_id,)).fetchone():
                    raise StoreNotFoundError("Técnico no encontrado")
                if not self.availability.is_available(
                    conn, payload.technician_id, scheduled_day, payload.scheduled_time
                ):
                    raise StoreConflictError("El horario seleccionado no está disponible")
                now_iso = utcnow_iso()
                conn.execute(
                    """
                    INSERT INTO bookings (
                        id, customer_id, technician_id, scheduled_date, scheduled_time, service_type,
                        description, address, city, phone, estimated_duration, status, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'PENDING', ?, ?)
                    """,
                    (
                        booking_id,
                        payload.customer_id,
                        payload.technician_id,
                        scheduled_day.isoformat(),
                        payload.scheduled_time,
                        payload.service_type,
                        payload.description.strip(),
                        payload.address.strip(),
                        payload.city.strip(),
                        payload.phone.strip(),
                        payload.estimated_duration,
                        now_iso,
                        now_iso,
                    ),
                )
                customer_bookings = conn.execute(
                    "SELECT COUNT(*) AS n FROM bookings WHERE customer_id = ?", (payload.customer_id,)
                ).fetchone()["n"]
                conn.commit()
                booking = self._fetch(conn, booking_id)
        logger.info("Booking %s created for technician %s", booking_id, payload.technician_id)
        if customer_bookings == 1:
            self.gamification.award_points_for_event(payload.customer_id, "FIRST_BOOKING", booking_id)
        self.notifier.booking_created(booking)
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        with self.db.lock:
            with self.db.connect() as conn:
                return self._fetch(conn, booking_id)

    def _list(
        self,
        clauses: List[str],
        params: List[Any],
        order_by: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Booking], int]:
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"{BOOKING_SELECT} {where} ORDER BY {order_by}"
        query_params = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            query_params.extend([limit, offset])
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(query, query_params).fetchall()
                total = conn.execute(f"SELECT COUNT(*) AS n FROM bookings b {where}", params).fetchone()["n"]
        return [self._row_to_booking(row) for row in rows], total

    @staticmethod
    def _filters(
        status: Optional[str], start_date: Optional[str], end_date: Optional[str]
    ) -> Tuple[List[str], List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if status:
            clauses.append("b.status = ?")
            params.append(status)
        if start_date:
            clauses.append("b.scheduled_date >= ?")
            params.append(parse_date(start_date).isoformat())
        if end_date:
            clauses.append("b.scheduled_date <= ?")
            params.append(parse_date(end_date).isoformat())
        return clauses, params

    def get_customer_bookings(
        self,
        customer_id: str,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[Booking]:
        clauses, params = self._filters(status, start_date, end_date)
        bookings, _ = self._list(
            ["b.customer_id = ?", *clauses],
            [customer_id, *params],
            "b.scheduled_date DESC, b.scheduled_time DESC",
        )
        return bookings

    def get_technician_bookings(
        self,
        technician_id: str,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[Booking]:
        clauses, params = self._filters(status, start_date, end_date)
        bookings, _ = self._list(
            ["b.technician_id = ?", *clauses],
            [technician_id, *params],
            "b.scheduled_date DESC, b.scheduled_time DESC",
        )
        return bookings

    def get_all_bookings(
        self,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> BookingList:
        clauses, params = self._filters(status, start_date, end_date)
        bookings, total = self._list(
            clauses,
            params,
            "b.created_at DESC",
            limit=max(1, min(limit, 200)),
            offset=max(0, offset),
        )
        return BookingList(bookings=bookings, total=total)

    def _transition(
        self,
        booking_id: str,
        actor_user_id: str,
        allowed_from: Iterable[str],
        to_status: str,
        error_message: str,
        updates: Optional[Dict[str, Any]] = None,
        note: str = "",
        require_technician: bool = True,
    ) -> Tuple[Booking, Booking]:
        """Move a booking between statuses; returns (before, after)."""
        with self.db.lock:
            with self.db.connect() as conn:
                before = self._fetch(conn, booking_id)
                if require_technician and before.technician_user_id != actor_user_id:
                    raise StorePermissionError("No autorizado")
                if before.status not in allowed_from:
                    raise StoreConflictError(error_message)
                fields = {"status": to_status, "updated_at": utcnow_iso(), **(updates or {})}
                assignments = ", ".join(f"{name} = ?" for name in fields)
                conn.execute(f"UPDATE bookings SET {assignments} WHERE id = ?", (*fields.values(), booking_id))
                self._append_history(conn, booking_id, actor_user_id, before.status, to_status, note)
                if to_status == "COMPLETED":
                    self.technicians.record_completed_job(conn, before.technician_id)
                conn.commit()
                after = self._fetch(conn, booking_id)
        logger.info("Booking %s: %s -> %s", booking_id, before.status, to_status)
        return before, after

    def confirm_booking(self, booking_id: str, technician_user_id: str) -> Booking:
        now = datetime.now(timezone.utc)
        before, after = self._transition(
            booking_id,
            technician_user_id,
            {"PENDING"},
            "CONFIRMED",
            "La reserva no puede ser confirmada",
            {"confirmed_at": now.isoformat()},
        )
        if now - _parse_iso(before.created_at) <= QUICK_RESPONSE_WINDOW:
            self.gamification.award_points_for_event(technician_user_id, "QUICK_RESPONSE", booking_id)
        self.notifier.booking_confirmed(after)
        return after

    def start_booking(self, booking_id: str, technician_user_id: str) -> Booking:
        _, after = self._transition(
            booking_id,
            technician_user_id,
            {"CONFIRMED"},
            "IN_PROGRESS",
            "La reserva debe estar confirmada primero",
        )
        self.notifier.booking_started(after)
        return after

    def complete_booking(
        self, booking_id: str, technician_user_id: str, total_price: Optional[float] = None
    ) -> Booking:
        if total_price is not None and total_price < 0:
            raise StoreValidationError("El precio no puede ser negativo")
        completed_at = datetime.now(timezone.utc)
        _, after = self._transition(
            booking_id,
            technician_user_id,
            {"CONFIRMED", "IN_PROGRESS"},
            "COMPLETED",
            "La reserva no puede ser completada",
            {"completed_at": completed_at.isoformat(), "total_price": total_price},
        )
        self.gamification.award_points_for_event(after.customer_id, "BOOKING_COMPLETED", booking_id)
        self.gamification.award_points_for_event(technician_user_id, "JOB_COMPLETED", booking_id)
        # Scheduled times are local wall-clock times.
        scheduled_start = datetime.combine(
            date.fromisoformat(after.scheduled_date),
            datetime.strptime(after.scheduled_time, "%H:%M").time(),
        )
        if datetime.now() - scheduled_start <= ON_TIME_GRACE:
            self.gamification.award_points_for_event(technician_user_id, "ON_TIME_ARRIVAL", booking_id)
        self._reward_referrer(after)
        self.notifier.booking_completed(after)
        return after

    def _reward_referrer(self, booking: Booking) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                customer = conn.execute(
                    "SELECT referred_by FROM users WHERE id = ?", (booking.customer_id,)
                ).fetchone()
                completed = conn.execute(
                    "SELECT COUNT(*) AS n FROM bookings WHERE customer_id = ? AND status = 'COMPLETED'",
                    (booking.customer_id,),
                ).fetchone()["n"]
        referrer_id = customer["referred_by"] if customer else None
        if referrer_id and completed == 1:
            self.gamification.award_points_for_event(referrer_id, "REFERRAL_FIRST_BOOKING", booking.customer_id)

    def mark_no_show(self, booking_id: str, technician_user_id: str) -> Booking:
        _, after = self._transition(
            booking_id,
            technician_user_id,
            {"CONFIRMED"},
            "NO_SHOW",
            "Solo las reservas confirmadas pueden marcarse como no presentadas",
        )
        self.notifier.booking_no_show(after)
        return after

    def cancel_booking(
        self,
        booking_id: str,
        cancelled_by: str,
        canceller_user_id: str,
        reason: Optional[str] = None,
    ) -> Booking:
        if cancelled_by not in {"customer", "technician", "admin"}:
            raise StoreValidationError("cancelled_by inválido")
        current = self.get_booking(booking_id)
        if cancelled_by == "customer" and current.customer_id != canceller_user_id:
            raise StorePermissionError("No autorizado")
        if cancelled_by == "technician" and current.technician_user_id != canceller_user_id:
            raise StorePermissionError("No autorizado")
        if cancelled_by == "admin":
            with self.db.lock:
                with self.db.connect() as conn:
                    role = conn.execute("SELECT role FROM users WHERE id = ?", (canceller_user_id,)).fetchone()
            if not role or role["role"] != "admin":
                raise StorePermissionError("No autorizado")
        _, after = self._transition(
            booking_id,
            canceller_user_id,
            {"PENDING", "CONFIRMED", "IN_PROGRESS"},
            "CANCELLED",
            "La reserva no puede ser cancelada",
            {"cancelled_by": cancelled_by, "cancel_reason": reason},
            note=reason or "",
            require_technician=False,
        )
        self.notifier.booking_cancelled(after)
        return after

    def booking_history(self, booking_id: str) -> List[BookingStatusChange]:
        with self.db.lock:
            with self.db.connect() as conn:
                self._fetch(conn, booking_id)
                rows = conn.execute(
                    "SELECT * FROM booking_status_history WHERE booking_id = ? ORDER BY created_at ASC",
                    (booking_id,),
                ).fetchall()
        return [self._row_to_change(row) for row in rows]

    @staticmethod
    def _row_to_change(row: sqlite3.Row) -> BookingStatusChange:
        return BookingStatusChange(
            id=row["id"],
            booking_id=row["booking_id"],
            actor_user_id=row["actor_user_id"],
            from_status=row["from_status"],
            to_status=row["to_status"],
            note=row["note"],
            created_at=row["created_at"],
        )

    def recent_activity(self, limit: int = 10) -> List[BookingStatusChange]:
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM booking_status_history ORDER BY created_at DESC LIMIT ?", (limit,)
                ).fetchall()
        return [self._row_to_change(row) for row in rows]

    def submit_review(self, booking_id: str, author_id: str, rating: int, comment: str = "") -> Review:
        with self.db.lock:
            with self.db.connect() as conn:
                booking = self._fetch(conn, booking_id)
                if booking.customer_id != author_id:
                    raise StorePermissionError("Solo el cliente puede reseñar esta reserva")
                if booking.status != "COMPLETED":
                    raise StoreConflictError("Solo se pueden reseñar reservas completadas")
                review = self.technicians.insert_review(
                    conn,
                    technician_id=booking.technician_id,
                    author_id=author_id,
                    booking_id=booking_id,
                    rating=rating,
                    comment=comment,
                )
                conn.commit()
        self.gamification.award_points_for_event(author_id, "REVIEW_SUBMITTED", review.id)
        if booking.technician_user_id:
            if rating == 5:
                self.gamification.award_points_for_event(booking.technician_user_id, "FIVE_STAR_REVIEW", review.id)
            else:
                self.gamification.check_and_unlock_achievements(booking.technician_user_id)
        return review

    def delete_for_customer(self, conn: sqlite3.Connection, customer_id: str) -> None:
        self._delete_where(conn, "customer_id = ?", customer_id)

    def delete_for_technician(self, conn: sqlite3.Connection, technician_id: str) -> None:
        self._delete_where(conn, "technician_id = ?", technician_id)

    def _delete_where(self, conn: sqlite3.Connection, clause: str, value: str) -> None:
        conn.execute(
            f"DELETE FROM booking_status_history WHERE booking_id IN (SELECT id FROM bookings WHERE {clause})",
            (value,),
        )
        conn.execute(f"DELETE FROM bookings WHERE {clause}", (value,))


booking_store = BookingStore(
    db=database,
    availability=availability_store,
    technicians=technician_store,
    gamification=gamification_store,
    notifier=notifier,
)
