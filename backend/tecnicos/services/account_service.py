"""Multi-table account operations that must commit or roll back as one unit."""

import logging
from dataclasses import dataclass
from typing import Optional

from tecnicos.models import User, UserRegisterRequest
from tecnicos.services.booking_store import BookingStore, booking_store
from tecnicos.services.database import Database, database
from tecnicos.services.errors import StoreNotFoundError
from tecnicos.services.gamification_store import GamificationStore, gamification_store
from tecnicos.services.notification_store import NotificationStore, notification_store
from tecnicos.services.notifier import Notifier, notifier
from tecnicos.services.passwords import new_token
from tecnicos.services.technician_store import (
    TechnicianStore,
    normalize_specializations,
    technician_store,
)
from tecnicos.services.user_store import UserStore, normalize_email, user_store

logger = logging.getLogger(__name__)


@dataclass
class AccountService:
    db: Database
    users: UserStore
    technicians: TechnicianStore
    bookings: BookingStore
    gamification: GamificationStore
    notifications: NotificationStore
    notifier: Notifier

    def _resolve_referrer(self, conn, referred_by: Optional[str]) -> Optional[str]:
        if not referred_by or not referred_by.strip():
            return None
        value = referred_by.strip()
        row = conn.execute(
            "SELECT id FROM users WHERE id = ? OR email = ?", (value, normalize_email(value))
        ).fetchone()
        return row["id"] if row else None

    def register(self, payload: UserRegisterRequest) -> User:
        specializations = normalize_specializations(payload.specializations)
        create_profile = payload.account_type == "technician" and bool(specializations) and bool(payload.location)
        token = new_token()
        with self.db.lock:
            with self.db.connect() as conn:
                referrer_id = self._resolve_referrer(conn, payload.referred_by)
                user = self.users.insert_user(
                    conn,
                    name=payload.name,
                    email=payload.email,
                    password=payload.password,
                    phone=payload.phone,
                    role="user",
                    photo_url=payload.photo_base64,
                    verification_token=token,
                    referred_by=referrer_id,
                )
                if payload.account_type == "technician":
                    if create_profile:
                        self.technicians.insert_profile(
                            conn,
                            user_id=user.id,
                            specializations=specializations,
                            location=payload.location or "",
                            company_name=payload.company_name,
                        )
                    else:
                        self.users.set_role(conn, user.id, "technician")
                self.gamification.initialize_points(conn, user.id)
                conn.commit()
        logger.info("Registered %s account %s", payload.account_type, user.id)
        user = self.users.require_user(user.id)
        self.notifier.send_verification(user, token)
        if referrer_id:
            self.gamification.award_points_for_event(referrer_id, "REFERRAL_SIGNUP", user.id)
        self.gamification.check_and_unlock_achievements(user.id)
        return user

    def delete_user(self, user_id: str) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                if not conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone():
                    raise StoreNotFoundError("Usuario no encontrado")
                technician = conn.execute("SELECT id FROM technicians WHERE user_id = ?", (user_id,)).fetchone()
                if technician:
                    self.bookings.delete_for_technician(conn, technician["id"])
                    self.technicians.delete_profile(conn, technician["id"])
                reviewed = [
                    row["technician_id"]
                    for row in conn.execute(
                        "SELECT DISTINCT technician_id FROM reviews WHERE author_id = ?", (user_id,)
                    ).fetchall()
                ]
                self.bookings.delete_for_customer(conn, user_id)
                conn.execute("DELETE FROM reviews WHERE author_id = ?", (user_id,))
                for technician_id in reviewed:
                    self.technicians.refresh_rating(conn, technician_id)
                self.gamification.delete_for_user(conn, user_id)
                self.notifications.delete_for_user(conn, user_id)
                conn.execute("DELETE FROM profile_change_history WHERE user_id = ?", (user_id,))
                conn.execute("UPDATE users SET referred_by = NULL WHERE referred_by = ?", (user_id,))
                conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
                conn.commit()
        logger.info("Deleted user %s and dependent records", user_id)

    def delete_technician(self, technician_id: str) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT user_id FROM technicians WHERE id = ?", (technician_id,)).fetchone()
                if not row:
                    raise StoreNotFoundError("Técnico no encontrado")
                self.bookings.delete_for_technician(conn, technician_id)
                self.technicians.delete_profile(conn, technician_id)
                role = conn.execute("SELECT role FROM users WHERE id = ?", (row["user_id"],)).fetchone()
                if role and role["role"] == "technician":
                    self.users.set_role(conn, row["user_id"], "user")
                conn.commit()
        logger.info("Deleted technician %s", technician_id)


account_service = AccountService(
    db=database,
    users=user_store,
    technicians=technician_store,
    bookings=booking_store,
    gamification=gamification_store,
    notifications=notification_store,
    notifier=notifier,
)
