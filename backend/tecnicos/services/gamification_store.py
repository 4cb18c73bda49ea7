import json
import logging
import secrets
import sqlite3
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from tecnicos.models import (
    Achievement,
    AffordableRewards,
    AwardPointsResult,
    LeaderboardEntry,
    Level,
    PointsHistory,
    PointsSummary,
    PointTransaction,
    Reward,
    RewardRedeemResponse,
    RewardRedemption,
    UserAchievement,
)
from tecnicos.services.database import Database, database, new_id, utcnow_iso
from tecnicos.services.errors import (
    StoreConflictError,
    StoreNotFoundError,
    StoreValidationError,
)
from tecnicos.services.gamification_rules import (
    ACHIEVEMENTS,
    EVENT_DESCRIPTIONS,
    LEVELS,
    POINT_VALUES,
    REWARDS,
    calculate_level,
    get_level,
    level_progress,
    next_level,
    points_to_next_level,
)
from tecnicos.services.notifier import Notifier, notifier

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = {"EARNED", "BONUS", "REDEEMED", "ADJUSTMENT"}
LEADERBOARD_PERIODS = {"WEEKLY", "MONTHLY", "ALL_TIME"}
REDEMPTION_TTL = timedelta(days=30)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def leaderboard_window_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Start of the leaderboard window in UTC, or None for all time."""
    now = now or datetime.now(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "WEEKLY":
        # Weeks start on Sunday.
        return midnight - timedelta(days=(midnight.weekday() + 1) % 7)
    if period == "MONTHLY":
        return midnight.replace(day=1)
    return None


def longest_weekly_streak(completed_at: List[str]) -> int:
    """Longest run of consecutive calendar weeks (Monday based) holding at least one timestamp."""
    week_starts = set()
    for value in completed_at:
        try:
            day = datetime.fromisoformat(value).date()
        except ValueError:
            continue
        week_starts.add(day - timedelta(days=day.weekday()))
    best = 0
    current = 0
    previous: Optional[date] = None
    for week in sorted(week_starts):
        current = current + 1 if previous is not None and week - previous == timedelta(days=7) else 1
        best = max(best, current)
        previous = week
    return best


def _achievement_model(item: Dict[str, Any]) -> Achievement:
    return Achievement(**{key: value for key, value in item.items() if key != "requirements"})


@dataclass
class GamificationStore:
    db: Database
    notifier: Notifier

    def __post_init__(self) -> None:
        self._init_db()
        self._seed_rewards()

    def _init_db(self) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS user_points (
                        user_id TEXT PRIMARY KEY,
                        total_points INTEGER NOT NULL DEFAULT 0,
                        lifetime_points INTEGER NOT NULL DEFAULT 0,
                        current_level INTEGER NOT NULL DEFAULT 1,
                        level_progress INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS point_transactions (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        points INTEGER NOT NULL,
                        type TEXT NOT NULL,
                        source TEXT NOT NULL,
                        source_id TEXT,
                        description TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS user_achievements (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        achievement_code TEXT NOT NULL,
                        unlocked_at TEXT NOT NULL,
                        UNIQUE (user_id, achievement_code)
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS rewards (
                        id TEXT PRIMARY KEY,
                        code TEXT NOT NULL UNIQUE,
                        name TEXT NOT NULL,
                        name_es TEXT NOT NULL,
                        description TEXT NOT NULL,
                        description_es TEXT NOT NULL,
                        points_cost INTEGER NOT NULL,
                        category TEXT NOT NULL,
                        value_json TEXT NOT NULL,
                        stock INTEGER,
                        is_active INTEGER NOT NULL DEFAULT 1
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS reward_redemptions (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        reward_id TEXT NOT NULL,
                        points_used INTEGER NOT NULL,
                        code TEXT NOT NULL UNIQUE,
                        status TEXT NOT NULL DEFAULT 'ACTIVE',
                        redeemed_at TEXT NOT NULL,
                        expires_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_point_transactions_user ON point_transactions(user_id, created_at)"
                )
                conn.commit()

    def _seed_rewards(self) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                for reward in REWARDS:
                    conn.execute(
                        """
                        INSERT OR IGNORE INTO rewards (
                            id, code, name, name_es, description, description_es,
                            points_cost, category, value_json, stock, is_active
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, 1)
                        """,
                        (
                            new_id("rw"),
                            reward["code"],
                            reward["name"],
                            reward["name_es"],
                            reward["description"],
                            reward["description_es"],
                            reward["points_cost"],
                            reward["category"],
                            json.dumps(reward["value"]),
                        ),
                    )
                conn.commit()

    # Points

    def initialize_points(self, conn: sqlite3.Connection, user_id: str) -> None:
        now_iso = utcnow_iso()
        conn.execute(
            """
            INSERT OR IGNORE INTO user_points (
                user_id, total_points, lifetime_points, current_level, level_progress, created_at, updated_at
            )
            VALUES (?, 0, 0, 1, 0, ?, ?)
            """,
            (user_id, now_iso, now_iso),
        )

    def _require_user(self, conn: sqlite3.Connection, user_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise StoreNotFoundError("Usuario no encontrado")
        return row

    def initialize_user_points(self, user_id: str) -> PointsSummary:
        with self.db.lock:
            with self.db.connect() as conn:
                self._require_user(conn, user_id)
                self.initialize_points(conn, user_id)
                conn.commit()
        return self.get_points_summary(user_id)

    def get_points_summary(self, user_id: str) -> PointsSummary:
        with self.db.lock:
            with self.db.connect() as conn:
                self._require_user(conn, user_id)
                self.initialize_points(conn, user_id)
                conn.commit()
                row = conn.execute("SELECT * FROM user_points WHERE user_id = ?", (user_id,)).fetchone()
        total = row["total_points"]
        computed = calculate_level(total)
        level = get_level(max(row["current_level"], computed["level_number"]))
        upcoming = next_level(total)
        return PointsSummary(
            total_points=total,
            lifetime_points=row["lifetime_points"],
            current_level=level["level_number"],
            level_name=level["name"],
            level_name_es=level["name_es"],
            level_progress=level_progress(total),
            points_to_next_level=points_to_next_level(total),
            next_level_name=upcoming["name"] if upcoming else None,
            next_level_name_es=upcoming["name_es"] if upcoming else None,
        )

    def _apply_points(
        self,
        conn: sqlite3.Connection,
        *,
        user_id: str,
        points: int,
        type: str,
        source: str,
        description: str,
        source_id: Optional[str] = None,
    ) -> Tuple[AwardPointsResult, Optional[Dict[str, Any]]]:
        if type not in TRANSACTION_TYPES:
            raise StoreValidationError(f"Tipo de transacción inválido: {type}")
        self.initialize_points(conn, user_id)
        now_iso = utcnow_iso()
        conn.execute(
            """
            INSERT INTO point_transactions (id, user_id, points, type, source, source_id, description, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (new_id("pt"), user_id, points, type, source, source_id, description, now_iso),
        )
        conn.execute(
            """
            UPDATE user_points
            SET total_points = total_points + ?, lifetime_points = lifetime_points + ?, updated_at = ?
            WHERE user_id = ?
            """,
            (points, max(points, 0), now_iso, user_id),
        )
        row = conn.execute("SELECT * FROM user_points WHERE user_id = ?", (user_id,)).fetchone()
        new_total = row["total_points"]
        computed = calculate_level(new_total)
        leveled_up = computed["level_number"] > row["current_level"]
        conn.execute(
            "UPDATE user_points SET current_level = ?, level_progress = ? WHERE user_id = ?",
            (max(row["current_level"], computed["level_number"]), level_progress(new_total), user_id),
        )
        result = AwardPointsResult(
            points_awarded=points,
            new_total=new_total,
            level_up=leveled_up,
            new_level=computed["level_number"] if leveled_up else None,
            new_level_name=computed["name_es"] if leveled_up else None,
        )
        return result, (computed if leveled_up else None)

    def award_points(
        self,
        user_id: str,
        points: int,
        type: str,
        source: str,
        description: str,
        source_id: Optional[str] = None,
    ) -> AwardPointsResult:
        with self.db.lock:
            with self.db.connect() as conn:
                self._require_user(conn, user_id)
                result, level = self._apply_points(
                    conn,
                    user_id=user_id,
                    points=points,
                    type=type,
                    source=source,
                    description=description,
                    source_id=source_id,
                )
                conn.commit()
        logger.info("Awarded %s points to %s (%s)", points, user_id, source)
        if level is not None:
            self.notifier.level_up(user_id, level)
        return result

    def award_points_for_event(
        self, user_id: str, event_type: str, source_id: Optional[str] = None
    ) -> Optional[AwardPointsResult]:
        # Bonus values without an event description are catalog entries, not payable events.
        description = EVENT_DESCRIPTIONS.get(event_type)
        if description is None:
            logger.warning("Ignoring unknown gamification event %s", event_type)
            return None
        result = self.award_points(user_id, POINT_VALUES[event_type], "EARNED", event_type, description, source_id)
        self.check_and_unlock_achievements(user_id)
        return result

    def get_points_history(self, user_id: str, limit: int = 20, offset: int = 0) -> PointsHistory:
        limit = max(1, min(limit, 100))
        offset = max(0, offset)
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM point_transactions
                    WHERE user_id = ?
                    ORDER BY created_at DESC
                    LIMIT ? OFFSET ?
                    """,
                    (user_id, limit, offset),
                ).fetchall()
                total = conn.execute(
                    "SELECT COUNT(*) AS total FROM point_transactions WHERE user_id = ?", (user_id,)
                ).fetchone()["total"]
        return PointsHistory(
            transactions=[
                PointTransaction(
                    id=row["id"],
                    user_id=row["user_id"],
                    points=row["points"],
                    type=row["type"],
                    source=row["source"],
                    source_id=row["source_id"],
                    description=row["description"],
                    created_at=row["created_at"],
                )
                for row in rows
            ],
            total=total,
            has_more=offset + limit < total,
        )

    # Achievements

    def _user_stats(self, conn: sqlite3.Connection, user: sqlite3.Row) -> Dict[str, Any]:
        user_id = user["id"]
        technician = conn.execute("SELECT * FROM technicians WHERE user_id = ?", (user_id,)).fetchone()
        stats: Dict[str, Any] = {
            "role": user["role"],
            "created_at": user["created_at"],
            "has_technician": technician is not None,
            "bookings_completed": conn.execute(
                "SELECT COUNT(*) AS n FROM bookings WHERE customer_id = ? AND status = 'COMPLETED'", (user_id,)
            ).fetchone()["n"],
            "reviews_written": conn.execute(
                "SELECT COUNT(*) AS n FROM reviews WHERE author_id = ?", (user_id,)
            ).fetchone()["n"],
            "quick_responses": conn.execute(
                "SELECT COUNT(*) AS n FROM point_transactions WHERE user_id = ? AND source = 'QUICK_RESPONSE'",
                (user_id,),
            ).fetchone()["n"],
            "successful_referrals": conn.execute(
                """
                SELECT COUNT(*) AS n FROM users referred
                WHERE referred.referred_by = ?
                  AND EXISTS (
                      SELECT 1 FROM bookings b
                      WHERE b.customer_id = referred.id AND b.status = 'COMPLETED'
                  )
                """,
                (user_id,),
            ).fetchone()["n"],
            "jobs_completed": 0,
            "five_star_reviews": 0,
            "average_rating": 0.0,
            "total_reviews": 0,
            "is_verified": False,
            "consecutive_weeks": 0,
        }
        if technician is not None:
            completed = conn.execute(
                """
                SELECT completed_at FROM bookings
                WHERE technician_id = ? AND status = 'COMPLETED' AND completed_at IS NOT NULL
                """,
                (technician["id"],),
            ).fetchall()
            stats.update(
                jobs_completed=technician["total_jobs_completed"],
                five_star_reviews=conn.execute(
                    "SELECT COUNT(*) AS n FROM reviews WHERE technician_id = ? AND rating = 5", (technician["id"],)
                ).fetchone()["n"],
                average_rating=technician["rating"],
                total_reviews=technician["total_reviews"],
                is_verified=bool(technician["verified"]),
                consecutive_weeks=longest_weekly_streak([row["completed_at"] for row in completed]),
            )
        return stats

    @staticmethod
    def requirements_met(requirements: Dict[str, Any], stats: Dict[str, Any]) -> bool:
        if requirements.get("role") == "technician" and not stats["has_technician"]:
            return False
        for key in (
            "bookings_completed",
            "jobs_completed",
            "reviews_written",
            "five_star_reviews",
            "quick_responses",
            "consecutive_weeks",
            "successful_referrals",
        ):
            if key in requirements and stats[key] < requirements[key]:
                return False
        if "average_rating" in requirements:
            if stats["total_reviews"] < requirements.get("min_reviews", 0):
                return False
            if stats["average_rating"] < requirements["average_rating"]:
                return False
        if requirements.get("is_verified") and not stats["is_verified"]:
            return False
        if "registered_before" in requirements and stats["created_at"][:10] >= requirements["registered_before"]:
            return False
        return True

    def check_and_unlock_achievements(self, user_id: str) -> List[Achievement]:
        unlocked: List[Dict[str, Any]] = []
        level_ups: List[Dict[str, Any]] = []
        with self.db.lock:
            with self.db.connect() as conn:
                user = self._require_user(conn, user_id)
                stats = self._user_stats(conn, user)
                held = {
                    row["achievement_code"]
                    for row in conn.execute(
                        "SELECT achievement_code FROM user_achievements WHERE user_id = ?", (user_id,)
                    ).fetchall()
                }
                for achievement in ACHIEVEMENTS:
                    if achievement["code"] in held:
                        continue
                    if not self.requirements_met(achievement["requirements"], stats):
                        continue
                    conn.execute(
                        """
                        INSERT INTO user_achievements (id, user_id, achievement_code, unlocked_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (new_id("ach"), user_id, achievement["code"], utcnow_iso()),
                    )
                    _, level = self._apply_points(
                        conn,
                        user_id=user_id,
                        points=achievement["points_reward"],
                        type="BONUS",
                        source="ACHIEVEMENT_UNLOCKED",
                        description=f"Logro desbloqueado: {achievement['name_es']}",
                        source_id=achievement["code"],
                    )
                    unlocked.append(achievement)
                    if level is not None:
                        level_ups.append(level)
                conn.commit()
        for achievement in unlocked:
            logger.info("User %s unlocked %s", user_id, achievement["code"])
            self.notifier.achievement_unlocked(user_id, achievement)
        for level in level_ups:
            self.notifier.level_up(user_id, level)
        return [_achievement_model(item) for item in unlocked]

    def list_achievements(self) -> List[Achievement]:
        return [_achievement_model(item) for item in sorted(ACHIEVEMENTS, key=lambda a: a["sort_order"])]

    def get_user_achievements(self, user_id: str) -> List[UserAchievement]:
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(
                    "SELECT achievement_code, unlocked_at FROM user_achievements WHERE user_id = ?", (user_id,)
                ).fetchall()
        unlocked_at = {row["achievement_code"]: row["unlocked_at"] for row in rows}
        return [
            UserAchievement(
                **_achievement_model(item).model_dump(),
                is_unlocked=item["code"] in unlocked_at,
                unlocked_at=unlocked_at.get(item["code"]),
            )
            for item in sorted(ACHIEVEMENTS, key=lambda a: a["sort_order"])
        ]

    def list_levels(self) -> List[Level]:
        return [Level(**level) for level in LEVELS]

    # Leaderboard

    def get_leaderboard(self, period: str = "ALL_TIME", limit: int = 10) -> List[LeaderboardEntry]:
        if period not in LEADERBOARD_PERIODS:
            period = "ALL_TIME"
        limit = max(1, min(limit, 100))
        start = leaderboard_window_start(period)
        with self.db.lock:
            with self.db.connect() as conn:
                if start is None:
                    rows = conn.execute(
                        """
                        SELECT up.user_id, up.lifetime_points AS points, up.current_level,
                               u.name, u.role, t.total_jobs_completed, t.rating
                        FROM user_points up
                        JOIN users u ON u.id = up.user_id
                        LEFT JOIN technicians t ON t.user_id = up.user_id
                        ORDER BY up.lifetime_points DESC, u.created_at ASC
                        LIMIT ?
                        """,
                        (limit,),
                    ).fetchall()
                else:
                    rows = conn.execute(
                        """
                        SELECT recent.user_id, recent.points, up.current_level,
                               u.name, u.role, t.total_jobs_completed, t.rating
                        FROM (
                            SELECT user_id, SUM(points) AS points
                            FROM point_transactions
                            WHERE points > 0 AND created_at >= ?
                            GROUP BY user_id
                        ) AS recent
                        JOIN users u ON u.id = recent.user_id
                        LEFT JOIN user_points up ON up.user_id = recent.user_id
                        LEFT JOIN technicians t ON t.user_id = recent.user_id
                        ORDER BY recent.points DESC, u.created_at ASC
                        LIMIT ?
                        """,
                        (start.isoformat(), limit),
                    ).fetchall()
        return [
            LeaderboardEntry(
                rank=index + 1,
                user_id=row["user_id"],
                user_name=row["name"] or "Usuario",
                points=row["points"] or 0,
                level=row["current_level"] or 1,
                jobs_completed=row["total_jobs_completed"] or 0,
                average_rating=row["rating"] or 0.0,
                role=row["role"] or "user",
            )
            for index, row in enumerate(rows)
        ]

    # Rewards

    def _row_to_reward(self, row: sqlite3.Row) -> Reward:
        return Reward(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            name_es=row["name_es"],
            description=row["description"],
            description_es=row["description_es"],
            points_cost=row["points_cost"],
            category=row["category"],
            value=json.loads(row["value_json"]),
            stock=row["stock"],
            is_active=bool(row["is_active"]),
        )

    def get_available_rewards(self) -> List[Reward]:
        with self.db.lock:
            with self.db.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM rewards
                    WHERE is_active = 1 AND (stock IS NULL OR stock > 0)
                    ORDER BY points_cost ASC
                    """
                ).fetchall()
        return [self._row_to_reward(row) for row in rows]

    def get_affordable_rewards(self, user_id: str) -> AffordableRewards:
        summary = self.get_points_summary(user_id)
        rewards = [reward for reward in self.get_available_rewards() if reward.points_cost <= summary.total_points]
        return AffordableRewards(user_points=summary.total_points, rewards=rewards)

    def redeem_reward(self, user_id: str, reward_code: str) -> RewardRedeemResponse:
        with self.db.lock:
            with self.db.connect() as conn:
                self._require_user(conn, user_id)
                reward_row = conn.execute("SELECT * FROM rewards WHERE code = ?", (reward_code,)).fetchone()
                if not reward_row or not reward_row["is_active"]:
                    raise StoreNotFoundError("Recompensa no disponible")
                if reward_row["stock"] is not None and reward_row["stock"] <= 0:
                    raise StoreConflictError("Recompensa agotada")
                self.initialize_points(conn, user_id)
                points_row = conn.execute(
                    "SELECT total_points FROM user_points WHERE user_id = ?", (user_id,)
                ).fetchone()
                if points_row["total_points"] < reward_row["points_cost"]:
                    raise StoreValidationError("Puntos insuficientes")
                now = datetime.now(timezone.utc)
                redemption_id = new_id("rdm")
                stamp = to_base36(int(time.time() * 1000))
                redemption_code = f"{reward_code}-{stamp}-{secrets.token_hex(2).upper()}"
                conn.execute(
                    """
                    INSERT INTO reward_redemptions (
                        id, user_id, reward_id, points_used, code, status, redeemed_at, expires_at
                    )
                    VALUES (?, ?, ?, ?, ?, 'ACTIVE', ?, ?)
                    """,
                    (
                        redemption_id,
                        user_id,
                        reward_row["id"],
                        reward_row["points_cost"],
                        redemption_code,
                        now.isoformat(),
                        (now + REDEMPTION_TTL).isoformat(),
                    ),
                )
                self._apply_points(
                    conn,
                    user_id=user_id,
                    points=-reward_row["points_cost"],
                    type="REDEEMED",
                    source="REWARD_REDEMPTION",
                    description=f"Canjeaste: {reward_row['name_es']}",
                    source_id=redemption_id,
                )
                if reward_row["stock"] is not None:
                    conn.execute("UPDATE rewards SET stock = stock - 1 WHERE id = ?", (reward_row["id"],))
                conn.commit()
                row = self._redemption_query(conn, "rr.id = ?", (redemption_id,)).fetchone()
        logger.info("User %s redeemed %s as %s", user_id, reward_code, redemption_code)
        return RewardRedeemResponse(
            message="¡Recompensa canjeada exitosamente!",
            redemption_code=redemption_code,
            reward_name=reward_row["name_es"],
            reward_description=reward_row["description_es"],
            redemption=self._row_to_redemption(row),
        )

    def _redemption_query(self, conn: sqlite3.Connection, where: str, params: tuple) -> sqlite3.Cursor:
        return conn.execute(
            f"""
            SELECT rr.*, r.code AS reward_code, r.name_es AS reward_name_es
            FROM reward_redemptions rr
            JOIN rewards r ON r.id = rr.reward_id
            WHERE {where}
            ORDER BY rr.redeemed_at DESC
            """,
            params,
        )

    def _row_to_redemption(self, row: sqlite3.Row) -> RewardRedemption:
        status = row["status"]
        if status == "ACTIVE" and row["expires_at"] < utcnow_iso():
            status = "EXPIRED"
        return RewardRedemption(
            id=row["id"],
            user_id=row["user_id"],
            reward_id=row["reward_id"],
            reward_code=row["reward_code"],
            reward_name_es=row["reward_name_es"],
            points_used=row["points_used"],
            code=row["code"],
            status=status,
            redeemed_at=row["redeemed_at"],
            expires_at=row["expires_at"],
        )

    def get_user_redemptions(self, user_id: str) -> List[RewardRedemption]:
        with self.db.lock:
            with self.db.connect() as conn:
                rows = self._redemption_query(conn, "rr.user_id = ?", (user_id,)).fetchall()
        return [self._row_to_redemption(row) for row in rows]

    def delete_for_user(self, conn: sqlite3.Connection, user_id: str) -> None:
        conn.execute("DELETE FROM reward_redemptions WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM user_achievements WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM point_transactions WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM user_points WHERE user_id = ?", (user_id,))


gamification_store = GamificationStore(db=database, notifier=notifier)
