from dataclasses import dataclass

from tecnicos.models import AdminStats, RoleCount, StatusCount, TopTechnician
from tecnicos.services.booking_store import BookingStore, booking_store
from tecnicos.services.database import Database, database


@dataclass
class StatsStore:
    db: Database
    bookings: BookingStore

    def get_admin_stats(self) -> AdminStats:
        with self.db.lock:
            with self.db.connect() as conn:
                total_users = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
                total_technicians = conn.execute("SELECT COUNT(*) AS n FROM technicians").fetchone()["n"]
                booking_totals = conn.execute(
                    """
                    SELECT
                        COUNT(*) AS total,
                        SUM(CASE WHEN status = 'COMPLETED' THEN 1 ELSE 0 END) AS completed,
                        SUM(CASE WHEN status = 'PENDING' THEN 1 ELSE 0 END) AS pending,
                        SUM(CASE WHEN status = 'COMPLETED' THEN COALESCE(total_price, 0) ELSE 0 END) AS revenue
                    FROM bookings
                    """
                ).fetchone()
                average_rating = conn.execute("SELECT AVG(rating) AS avg FROM technicians").fetchone()["avg"]
                by_role = conn.execute(
                    "SELECT role, COUNT(*) AS n FROM users GROUP BY role ORDER BY role"
                ).fetchall()
                by_status = conn.execute(
                    "SELECT status, COUNT(*) AS n FROM bookings GROUP BY status ORDER BY status"
                ).fetchall()
                top = conn.execute(
                    """
                    SELECT t.id, u.name, t.rating,
                           (SELECT COUNT(*) FROM bookings b
                            WHERE b.technician_id = t.id AND b.status = 'COMPLETED') AS jobs
                    FROM technicians t
                    JOIN users u ON u.id = t.user_id
                    ORDER BY jobs DESC, t.rating DESC
                    LIMIT 5
                    """
                ).fetchall()
        total_bookings = booking_totals["total"] or 0
        completed = booking_totals["completed"] or 0
        completion_rate = round(completed / total_bookings * 100, 1) if total_bookings else 0.0
        return AdminStats(
            total_users=total_users,
            total_technicians=total_technicians,
            total_bookings=total_bookings,
            completed_bookings=completed,
            pending_bookings=booking_totals["pending"] or 0,
            total_revenue=float(booking_totals["revenue"] or 0),
            completion_rate=completion_rate,
            average_rating=round(average_rating or 0.0, 2),
            users_by_role=[RoleCount(role=row["role"], count=row["n"]) for row in by_role],
            bookings_by_status=[StatusCount(status=row["status"], count=row["n"]) for row in by_status],
            top_technicians=[
                TopTechnician(technician_id=row["id"], name=row["name"], jobs=row["jobs"], rating=row["rating"] or 0.0)
                for row in top
            ],
            recent_activity=self.bookings.recent_activity(limit=10),
        )


stats_store = StatsStore(db=database, bookings=booking_store)
