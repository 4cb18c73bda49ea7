import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Optional

from tecnicos.models import NotificationRecord
from tecnicos.services.database import Database, database, new_id, utcnow_iso
from tecnicos.services.push_sender import PushSender, push_sender


@dataclass
class NotificationStore:
    db: Database
    sender: PushSender

    def __post_init__(self) -> None:
        self._init_db()

    def _init_db(self) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS notifications (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        body TEXT NOT NULL,
                        category TEXT NOT NULL,
                        read INTEGER NOT NULL DEFAULT 0,
                        deep_link TEXT,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS device_tokens (
                        user_id TEXT NOT NULL,
                        device_token TEXT NOT NULL,
                        platform TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        PRIMARY KEY (user_id, device_token)
                    )
                    """
                )
                conn.commit()

    def _row_to_record(self, row: sqlite3.Row) -> NotificationRecord:
        return NotificationRecord(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            body=row["body"],
            category=row["category"],
            read=bool(row["read"]),
            created_at=row["created_at"],
            deep_link=row["deep_link"],
        )

    def register_device_token(self, user_id: str, device_token: str, platform: str = "web") -> None:
        token = device_token.strip()
        if not token:
            return
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO device_tokens (user_id, device_token, platform, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (user_id, token, platform, utcnow_iso()),
                )
                conn.commit()

    def create(
        self,
        user_id: str,
        title: str,
        body: str,
        category: str = "system",
        deep_link: Optional[str] = None,
    ) -> NotificationRecord:
        notification_id = new_id("ntf")
        now_iso = utcnow_iso()
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO notifications (id, user_id, title, body, category, read, deep_link, created_at)
                    VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                    """,
                    (notification_id, user_id, title, body, category, deep_link, now_iso),
                )
                conn.commit()
                row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
                tokens = [
                    item["device_token"]
                    for item in conn.execute(
                        "SELECT device_token FROM device_tokens WHERE user_id = ?", (user_id,)
                    ).fetchall()
                ]
        record = self._row_to_record(row)
        invalid_tokens = self.sender.send(tokens=tokens, notification=record)
        if invalid_tokens:
            with self.db.lock:
                with self.db.connect() as conn:
                    conn.executemany(
                        "DELETE FROM device_tokens WHERE user_id = ? AND device_token = ?",
                        [(user_id, token) for token in invalid_tokens],
                    )
                    conn.commit()
        return record

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[NotificationRecord]:
        query = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            query += " AND read = 0"
        query += " ORDER BY created_at DESC LIMIT 100"
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(query, (user_id,)).fetchall()
        return [self._row_to_record(row) for row in rows]

    def mark_read(self, user_id: str, notification_id: str) -> Optional[NotificationRecord]:
        with self.db.lock:
            with self.db.connect() as conn:
                cursor = conn.execute(
                    "UPDATE notifications SET read = 1 WHERE id = ? AND user_id = ?",
                    (notification_id, user_id),
                )
                if cursor.rowcount == 0:
                    return None
                conn.commit()
                row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        return self._row_to_record(row)

    def mark_all_read(self, user_id: str) -> int:
        with self.db.lock:
            with self.db.connect() as conn:
                cursor = conn.execute("UPDATE notifications SET read = 1 WHERE user_id = ? AND read = 0", (user_id,))
                conn.commit()
                return cursor.rowcount

    def unread_count(self, user_id: str) -> Dict[str, int]:
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(
                    "SELECT category, COUNT(*) AS total FROM notifications WHERE user_id = ? AND read = 0 "
                    "GROUP BY category",
                    (user_id,),
                ).fetchall()
        counts = {row["category"]: row["total"] for row in rows}
        counts["total"] = sum(counts.values())
        return counts

    def delete_for_user(self, conn: sqlite3.Connection, user_id: str) -> None:
        conn.execute("DELETE FROM notifications WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM device_tokens WHERE user_id = ?", (user_id,))


notification_store = NotificationStore(db=database, sender=push_sender)
