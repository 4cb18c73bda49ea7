import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from tecnicos.models import ProfileChange, User
from tecnicos.services.database import Database, database, new_id, utcnow_iso
from tecnicos.services.errors import StoreNotFoundError, StoreValidationError
from tecnicos.services.passwords import hash_password, new_token, verify_password

logger = logging.getLogger(__name__)

USER_ROLES = {"user", "technician", "admin"}

RESET_TOKEN_TTL = timedelta(hours=1)

MAX_PHOTO_BASE64_CHARS = int(2 * 1024 * 1024 * 1.37)

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@tech.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")


def normalize_email(value: str) -> str:
    return value.strip().lower()


def check_photo_size(photo: Optional[str]) -> None:
    if photo and len(photo) > MAX_PHOTO_BASE64_CHARS:
        raise StoreValidationError("Photo too large. Maximum size is 2MB")


@dataclass
class UserStore:
    db: Database

    def __post_init__(self) -> None:
        self._init_db()
        self._seed_admin()

    def _init_db(self) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS users (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        email TEXT NOT NULL UNIQUE,
                        password_hash TEXT NOT NULL,
                        phone TEXT,
                        role TEXT NOT NULL DEFAULT 'user',
                        photo_url TEXT,
                        email_verified INTEGER NOT NULL DEFAULT 0,
                        verification_token TEXT,
                        reset_password_token TEXT,
                        reset_password_expires TEXT,
                        referred_by TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS profile_change_history (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        field_name TEXT NOT NULL,
                        old_value TEXT,
                        new_value TEXT,
                        changed_by TEXT NOT NULL,
                        ip_address TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                self.db.ensure_column(conn, "users", "referred_by", "TEXT")
                conn.commit()

    def _seed_admin(self) -> None:
        email = normalize_email(ADMIN_EMAIL)
        with self.db.lock:
            with self.db.connect() as conn:
                existing = conn.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
                if existing:
                    return
                self.insert_user(
                    conn,
                    name="Administrador",
                    email=email,
                    password=ADMIN_PASSWORD,
                    phone=None,
                    role="admin",
                    email_verified=True,
                )
                conn.commit()
        logger.info("Seeded admin account %s", email)

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            role=row["role"],
            photo_url=row["photo_url"],
            email_verified=bool(row["email_verified"]),
            referred_by=row["referred_by"],
            created_at=row["created_at"],
        )

    def insert_user(
        self,
        conn: sqlite3.Connection,
        *,
        name: str,
        email: str,
        password: str,
        phone: Optional[str],
        role: str = "user",
        photo_url: Optional[str] = None,
        verification_token: Optional[str] = None,
        referred_by: Optional[str] = None,
        email_verified: bool = False,
    ) -> User:
        """Insert a user row on an open connection; the caller holds the lock and commits."""
        check_photo_size(photo_url)
        normalized = normalize_email(email)
        if conn.execute("SELECT 1 FROM users WHERE email = ?", (normalized,)).fetchone():
            raise StoreValidationError("User already exists")
        now_iso = utcnow_iso()
        user_id = new_id("usr")
        conn.execute(
            """
            INSERT INTO users (
                id, name, email, password_hash, phone, role, photo_url, email_verified,
                verification_token, referred_by, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                name.strip(),
                normalized,
                hash_password(password),
                phone,
                role,
                photo_url,
                1 if email_verified else 0,
                verification_token,
                referred_by,
                now_iso,
                now_iso,
            ),
        )
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row)

    def get_user(self, user_id: str) -> Optional[User]:
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise StoreNotFoundError("Usuario no encontrado")
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),)).fetchone()
        return self._row_to_user(row) if row else None

    def get_role(self, user_id: str) -> Optional[str]:
        user = self.get_user(user_id)
        return user.role if user else None

    def list_users(self) -> List[User]:
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute("SELECT * FROM users ORDER BY created_at DESC").fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate(self, email: str, password: str) -> Optional[User]:
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),)).fetchone()
        if not row or not verify_password(password, row["password_hash"]):
            return None
        return self._row_to_user(row)

    def verify_email(self, token: str) -> User:
        if not token:
            raise StoreValidationError("Invalid token")
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE verification_token = ?", (token,)).fetchone()
                if not row:
                    raise StoreValidationError("Invalid or expired token")
                conn.execute(
                    "UPDATE users SET email_verified = 1, verification_token = NULL, updated_at = ? WHERE id = ?",
                    (utcnow_iso(), row["id"]),
                )
                conn.commit()
                updated = conn.execute("SELECT * FROM users WHERE id = ?", (row["id"],)).fetchone()
        return self._row_to_user(updated)

    def rotate_verification_token(self, email: str) -> Tuple[Optional[User], Optional[str]]:
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),)).fetchone()
                if not row:
                    return None, None
                if row["email_verified"]:
                    raise StoreValidationError("El correo ya esta verificado")
                token = new_token()
                conn.execute(
                    "UPDATE users SET verification_token = ?, updated_at = ? WHERE id = ?",
                    (token, utcnow_iso(), row["id"]),
                )
                conn.commit()
        return self._row_to_user(row), token

    def issue_reset_token(self, email: str) -> Tuple[Optional[User], Optional[str]]:
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),)).fetchone()
                if not row:
                    return None, None
                token = new_token()
                expires = (datetime.now(timezone.utc) + RESET_TOKEN_TTL).isoformat()
                conn.execute(
                    """
                    UPDATE users
                    SET reset_password_token = ?, reset_password_expires = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (token, expires, utcnow_iso(), row["id"]),
                )
                conn.commit()
        return self._row_to_user(row), token

    def _find_by_reset_token(self, conn: sqlite3.Connection, token: str) -> Optional[sqlite3.Row]:
        if not token:
            return None
        return conn.execute(
            """
            SELECT * FROM users
            WHERE reset_password_token = ? AND reset_password_expires > ?
            """,
            (token, utcnow_iso()),
        ).fetchone()

    def is_reset_token_valid(self, token: str) -> bool:
        with self.db.lock:
            with self.db.connect() as conn:
                return self._find_by_reset_token(conn, token) is not None

    def reset_password(self, token: str, new_password: str) -> User:
        if len(new_password) < 6:
            raise StoreValidationError("La contraseña debe tener al menos 6 caracteres")
        with self.db.lock:
            with self.db.connect() as conn:
                row = self._find_by_reset_token(conn, token)
                if not row:
                    raise StoreValidationError("El enlace es inválido o ha expirado")
                conn.execute(
                    """
                    UPDATE users
                    SET password_hash = ?, reset_password_token = NULL, reset_password_expires = NULL, updated_at = ?
                    WHERE id = ?
                    """,
                    (hash_password(new_password), utcnow_iso(), row["id"]),
                )
                conn.commit()
        logger.info("Password reset for user %s", row["id"])
        return self._row_to_user(row)

    def update_user(self, user_id: str, *, name: Optional[str] = None, phone: Optional[str] = None) -> User:
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
                if not row:
                    raise StoreNotFoundError("Usuario no encontrado")
                conn.execute(
                    "UPDATE users SET name = ?, phone = ?, updated_at = ? WHERE id = ?",
                    (
                        name.strip() if name is not None else row["name"],
                        phone if phone is not None else row["phone"],
                        utcnow_iso(),
                        user_id,
                    ),
                )
                conn.commit()
                updated = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(updated)

    def _record_change(
        self,
        conn: sqlite3.Connection,
        *,
        user_id: str,
        field_name: str,
        old_value: Optional[str],
        new_value: Optional[str],
        changed_by: str,
        ip_address: str,
    ) -> None:
        conn.execute(
            """
            INSERT INTO profile_change_history (
                id, user_id, field_name, old_value, new_value, changed_by, ip_address, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (new_id("pch"), user_id, field_name, old_value, new_value, changed_by, ip_address, utcnow_iso()),
        )

    def update_profile(
        self,
        user_id: str,
        *,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        photo_url: Optional[str] = None,
        changed_by: Optional[str] = None,
        ip_address: str = "unknown",
    ) -> User:
        check_photo_size(photo_url)
        requested: Dict[str, Any] = {"name": name, "phone": phone, "photo_url": photo_url}
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
                if not row:
                    raise StoreNotFoundError("Usuario no encontrado")
                changes = {
                    field: value
                    for field, value in requested.items()
                    if value is not None and value != row[field]
                }
                if not changes:
                    return self._row_to_user(row)
                for field, value in changes.items():
                    self._record_change(
                        conn,
                        user_id=user_id,
                        field_name=field,
                        old_value=row[field],
                        new_value=value,
                        changed_by=changed_by or user_id,
                        ip_address=ip_address,
                    )
                assignments = ", ".join(f"{field} = ?" for field in changes)
                conn.execute(
                    f"UPDATE users SET {assignments}, updated_at = ? WHERE id = ?",
                    (*changes.values(), utcnow_iso(), user_id),
                )
                conn.commit()
                updated = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(updated)

    def upload_photo(self, user_id: str, photo_base64: Optional[str], ip_address: str = "unknown") -> User:
        if not photo_base64:
            raise StoreValidationError("No photo provided")
        check_photo_size(photo_base64)
        with self.db.lock:
            with self.db.connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
                if not row:
                    raise StoreNotFoundError("Usuario no encontrado")
                self._record_change(
                    conn,
                    user_id=user_id,
                    field_name="photo_url",
                    old_value="[previous photo]" if row["photo_url"] else None,
                    new_value="[new photo uploaded]",
                    changed_by=user_id,
                    ip_address=ip_address,
                )
                conn.execute(
                    "UPDATE users SET photo_url = ?, updated_at = ? WHERE id = ?",
                    (photo_base64, utcnow_iso(), user_id),
                )
                conn.commit()
                updated = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(updated)

    def profile_history(self, user_id: str, limit: int = 50) -> List[ProfileChange]:
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM profile_change_history
                    WHERE user_id = ?
                    ORDER BY created_at DESC
                    LIMIT ?
                    """,
                    (user_id, limit),
                ).fetchall()
        return [
            ProfileChange(
                id=row["id"],
                user_id=row["user_id"],
                field_name=row["field_name"],
                old_value=row["old_value"],
                new_value=row["new_value"],
                changed_by=row["changed_by"],
                ip_address=row["ip_address"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def set_role(self, conn: sqlite3.Connection, user_id: str, role: str) -> None:
        if role not in USER_ROLES:
            raise StoreValidationError("Invalid role")
        cursor = conn.execute(
            "UPDATE users SET role = ?, updated_at = ? WHERE id = ?",
            (role, utcnow_iso(), user_id),
        )
        if cursor.rowcount == 0:
            raise StoreNotFoundError("Usuario no encontrado")

    def update_role(self, user_id: str, role: str) -> User:
        with self.db.lock:
            with self.db.connect() as conn:
                self.set_role(conn, user_id, role)
                conn.commit()
                updated = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(updated)


user_store = UserStore(db=database)
