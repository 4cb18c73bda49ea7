import json
import logging
import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from tecnicos.models import Review, Technician
from tecnicos.services.availability_store import AvailabilityStore, availability_store
from tecnicos.services.database import Database, database, new_id, utcnow_iso
from tecnicos.services.errors import (
    StoreConflictError,
    StoreNotFoundError,
    StoreValidationError,
)
from tecnicos.services.gamification_store import GamificationStore, gamification_store
from tecnicos.services.user_store import UserStore, user_store

logger = logging.getLogger(__name__)


def normalize_specializations(value: Union[List[str], str, None]) -> List[str]:
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else value
    cleaned: List[str] = []
    for item in items:
        text = str(item).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


TECHNICIAN_SELECT = """
    SELECT t.*, u.name AS user_name, u.email AS user_email, u.phone AS user_phone, u.photo_url AS user_photo_url
    FROM technicians t
    JOIN users u ON u.id = t.user_id
"""


@dataclass
class TechnicianStore:
    db: Database
    users: UserStore
    availability: AvailabilityStore
    gamification: GamificationStore

    def __post_init__(self) -> None:
        self._init_db()

    def _init_db(self) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS technicians (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL UNIQUE,
                        specializations_json TEXT NOT NULL DEFAULT '[]',
                        location TEXT NOT NULL,
                        company_name TEXT,
                        rating REAL NOT NULL DEFAULT 0,
                        total_reviews INTEGER NOT NULL DEFAULT 0,
                        total_jobs_completed INTEGER NOT NULL DEFAULT 0,
                        verified INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS reviews (
                        id TEXT PRIMARY KEY,
                        technician_id TEXT NOT NULL,
                        author_id TEXT NOT NULL,
                        booking_id TEXT UNIQUE,
                        rating INTEGER NOT NULL,
                        comment TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL
                    )
                    """
                )
                self.db.ensure_column(conn, "technicians", "company_name", "TEXT")
                conn.commit()

    def _reviews_by_technician(self, conn: sqlite3.Connection, technician_ids: List[str]) -> Dict[str, List[Review]]:
        grouped: Dict[str, List[Review]] = {technician_id: [] for technician_id in technician_ids}
        if not technician_ids:
            return grouped
        placeholders = ",".join("?" for _ in technician_ids)
        rows = conn.execute(
            f"""
            SELECT r.*, u.name AS author_name
            FROM reviews r
            LEFT JOIN users u ON u.id = r.author_id
            WHERE r.technician_id IN ({placeholders})
            ORDER BY r.created_at DESC
            """,
            technician_ids,
        ).fetchall()
        for row in rows:
            grouped[row["technician_id"]].append(self._row_to_review(row))
        return grouped

    def _row_to_review(self, row: sqlite3.Row) -> Review:
        return Review(
            id=row["id"],
            technician_id=row["technician_id"],
            author_id=row["author_id"],
            author_name=row["author_name"],
            booking_id=row["booking_id"],
            rating=row["rating"],
            comment=row["comment"],
            created_at=row["created_at"],
        )

    def _row_to_technician(self, row: sqlite3.Row, reviews: List[Review]) -> Technician:
        specializations = json.loads(row["specializations_json"] or "[]")
        return Technician(
            id=row["id"],
            user_id=row["user_id"],
            name=row["user_name"] or "Unknown",
            email=row["user_email"] or "",
            phone=row["user_phone"] or "",
            photo_url=row["user_photo_url"],
            specialization=", ".join(specializations),
            specializations=specializations,
            location=row["location"],
            company_name=row["company_name"],
            rating=row["rating"],
            total_reviews=row["total_reviews"],
            total_jobs_completed=row["total_jobs_completed"],
            verified=bool(row["verified"]),
            reviews=reviews,
        )

    def _load(self, conn: sqlite3.Connection, where: str = "", params: tuple = ()) -> List[Technician]:
        rows = conn.execute(f"{TECHNICIAN_SELECT} {where} ORDER BY t.rating DESC, t.created_at ASC", params).fetchall()
        reviews = self._reviews_by_technician(conn, [row["id"] for row in rows])
        return [self._row_to_technician(row, reviews[row["id"]]) for row in rows]

    def insert_profile(
        self,
        conn: sqlite3.Connection,
        *,
        user_id: str,
        specializations: List[str],
        location: str,
        company_name: Optional[str] = None,
    ) -> str:
        """Create the profile, promote the user and give them default hours; caller holds the lock."""
        if not specializations:
            raise StoreValidationError("Se requiere al menos una especialización")
        if not location or not location.strip():
            raise StoreValidationError("Se requiere una ubicación")
        if conn.execute("SELECT 1 FROM technicians WHERE user_id = ?", (user_id,)).fetchone():
            raise StoreConflictError("El usuario ya tiene un perfil de técnico")
        technician_id = new_id("tech")
        now_iso = utcnow_iso()
        conn.execute(
            """
            INSERT INTO technicians (
                id, user_id, specializations_json, location, company_name, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                technician_id,
                user_id,
                json.dumps(specializations, ensure_ascii=False),
                location.strip(),
                company_name or None,
                now_iso,
                now_iso,
            ),
        )
        self.users.set_role(conn, user_id, "technician")
        self.availability.insert_default_hours(conn, technician_id)
        return technician_id

    def register_technician(
        self,
        user_id: str,
        specializations: Union[List[str], str],
        location: str,
        phone: Optional[str] = None,
        company_name: Optional[str] = None,
    ) -> Technician:
        with self.db.lock:
            with self.db.connect() as conn:
                if not conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone():
                    raise StoreNotFoundError("Usuario no encontrado")
                if phone:
                    conn.execute(
                        "UPDATE users SET phone = ?, updated_at = ? WHERE id = ?", (phone, utcnow_iso(), user_id)
                    )
                technician_id = self.insert_profile(
                    conn,
                    user_id=user_id,
                    specializations=normalize_specializations(specializations),
                    location=location,
                    company_name=company_name,
                )
                self.gamification.initialize_points(conn, user_id)
                conn.commit()
        logger.info("Registered technician %s for user %s", technician_id, user_id)
        return self.require_technician(technician_id)

    def list_technicians(
        self,
        specialization: Optional[str] = None,
        location: Optional[str] = None,
        verified: Optional[bool] = None,
    ) -> List[Technician]:
        clauses = []
        params: list = []
        if location:
            clauses.append("LOWER(t.location) = LOWER(?)")
            params.append(location.strip())
        if verified is not None:
            clauses.append("t.verified = ?")
            params.append(1 if verified else 0)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self.db.lock:
            with self.db.connect() as conn:
                technicians = self._load(conn, where, tuple(params))
        if specialization:
            wanted = specialization.strip().lower()
            technicians = [
                item for item in technicians if any(spec.lower() == wanted for spec in item.specializations)
            ]
        return technicians

    def get_technician(self, technician_id: str) -> Optional[Technician]:
        with self.db.lock:
            with self.db.connect() as conn:
                found = self._load(conn, "WHERE t.id = ?", (technician_id,))
        return found[0] if found else None

    def require_technician(self, technician_id: str) -> Technician:
        technician = self.get_technician(technician_id)
        if not technician:
            raise StoreNotFoundError("Técnico no encontrado")
        return technician

    def verify_technician(self, technician_id: str) -> Technician:
        with self.db.lock:
            with self.db.connect() as conn:
                cursor = conn.execute(
                    "UPDATE technicians SET verified = 1, updated_at = ? WHERE id = ?", (utcnow_iso(), technician_id)
                )
                if cursor.rowcount == 0:
                    raise StoreNotFoundError("Técnico no encontrado")
                conn.commit()
        technician = self.require_technician(technician_id)
        self.gamification.check_and_unlock_achievements(technician.user_id)
        logger.info("Verified technician %s", technician_id)
        return technician

    def list_reviews(self, technician_id: str) -> List[Review]:
        with self.db.lock:
            with self.db.connect() as conn:
                if not conn.execute("SELECT 1 FROM technicians WHERE id = ?", (technician_id,)).fetchone():
                    raise StoreNotFoundError("Técnico no encontrado")
                return self._reviews_by_technician(conn, [technician_id])[technician_id]

    def refresh_rating(self, conn: sqlite3.Connection, technician_id: str) -> None:
        aggregate = conn.execute(
            "SELECT AVG(rating) AS average, COUNT(*) AS total FROM reviews WHERE technician_id = ?",
            (technician_id,),
        ).fetchone()
        conn.execute(
            "UPDATE technicians SET rating = ?, total_reviews = ?, updated_at = ? WHERE id = ?",
            (round(aggregate["average"] or 0.0, 2), aggregate["total"], utcnow_iso(), technician_id),
        )

    def insert_review(
        self,
        conn: sqlite3.Connection,
        *,
        technician_id: str,
        author_id: str,
        booking_id: Optional[str],
        rating: int,
        comment: str,
    ) -> Review:
        if not 1 <= rating <= 5:
            raise StoreValidationError("La calificación debe estar entre 1 y 5")
        if booking_id and conn.execute("SELECT 1 FROM reviews WHERE booking_id = ?", (booking_id,)).fetchone():
            raise StoreConflictError("Esta reserva ya tiene una reseña")
        review_id = new_id("rev")
        conn.execute(
            """
            INSERT INTO reviews (id, technician_id, author_id, booking_id, rating, comment, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (review_id, technician_id, author_id, booking_id, rating, comment.strip(), utcnow_iso()),
        )
        self.refresh_rating(conn, technician_id)
        row = conn.execute(
            """
            SELECT r.*, u.name AS author_name
            FROM reviews r LEFT JOIN users u ON u.id = r.author_id
            WHERE r.id = ?
            """,
            (review_id,),
        ).fetchone()
        return self._row_to_review(row)

    def record_completed_job(self, conn: sqlite3.Connection, technician_id: str) -> None:
        conn.execute(
            """
            UPDATE technicians
            SET total_jobs_completed = total_jobs_completed + 1, updated_at = ?
            WHERE id = ?
            """,
            (utcnow_iso(), technician_id),
        )

    def delete_profile(self, conn: sqlite3.Connection, technician_id: str) -> None:
        conn.execute("DELETE FROM reviews WHERE technician_id = ?", (technician_id,))
        self.availability.delete_for_technician(conn, technician_id)
        conn.execute("DELETE FROM technicians WHERE id = ?", (technician_id,))


technician_store = TechnicianStore(
    db=database,
    users=user_store,
    availability=availability_store,
    gamification=gamification_store,
)
