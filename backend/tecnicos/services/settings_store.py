import json
from dataclasses import dataclass
from typing import List

from tecnicos.models import AppSettings
from tecnicos.services.database import Database, database, utcnow_iso
from tecnicos.services.errors import StoreNotFoundError, StoreValidationError

SETTINGS_ID = "app_settings"

DEFAULT_SPECIALIZATIONS = [
    "Electricista",
    "Plomero",
    "Mecánico",
    "Carpintero",
    "Albañil",
    "Pintor",
    "Técnico en Aires Acondicionados",
    "Técnico en Refrigeración",
    "Técnico en Electrodomésticos",
    "Cerrajero",
    "Jardinero",
    "Fumigador",
]

DEFAULT_LOCATIONS = [
    "Santiago Centro",
    "Los Jardines",
    "Bella Vista",
    "Reparto del Este",
    "Los Pepines",
    "Cienfuegos",
    "Gurabo",
    "Tamboril",
    "Licey al Medio",
    "Villa González",
    "Puñal",
]

CATALOG_COLUMNS = {"specializations": "Specialization", "locations": "Location"}


def _clean_list(values: List[str], label: str) -> List[str]:
    cleaned: List[str] = []
    for value in values:
        if not isinstance(value, str) or not value.strip():
            raise StoreValidationError(f"{label} must be a non-empty string")
        if value.strip() not in cleaned:
            cleaned.append(value.strip())
    return cleaned


@dataclass
class SettingsStore:
    db: Database

    def __post_init__(self) -> None:
        self._init_db()

    def _init_db(self) -> None:
        with self.db.lock:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS app_settings (
                        id TEXT PRIMARY KEY,
                        specializations_json TEXT NOT NULL,
                        locations_json TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()

    def _load(self, conn) -> AppSettings:
        row = conn.execute("SELECT * FROM app_settings WHERE id = ?", (SETTINGS_ID,)).fetchone()
        if not row:
            conn.execute(
                "INSERT INTO app_settings (id, specializations_json, locations_json, updated_at) VALUES (?, ?, ?, ?)",
                (
                    SETTINGS_ID,
                    json.dumps(DEFAULT_SPECIALIZATIONS, ensure_ascii=False),
                    json.dumps(DEFAULT_LOCATIONS, ensure_ascii=False),
                    utcnow_iso(),
                ),
            )
            conn.commit()
            return AppSettings(specializations=list(DEFAULT_SPECIALIZATIONS), locations=list(DEFAULT_LOCATIONS))
        return AppSettings(
            specializations=json.loads(row["specializations_json"]),
            locations=json.loads(row["locations_json"]),
        )

    def _save(self, conn, field: str, values: List[str]) -> None:
        conn.execute(
            f"UPDATE app_settings SET {field}_json = ?, updated_at = ? WHERE id = ?",
            (json.dumps(values, ensure_ascii=False), utcnow_iso(), SETTINGS_ID),
        )
        conn.commit()

    def get_settings(self) -> AppSettings:
        with self.db.lock:
            with self.db.connect() as conn:
                return self._load(conn)

    def replace(self, field: str, values: List[str]) -> List[str]:
        cleaned = _clean_list(values, CATALOG_COLUMNS[field])
        with self.db.lock:
            with self.db.connect() as conn:
                self._load(conn)
                self._save(conn, field, cleaned)
        return cleaned

    def add(self, field: str, value: str) -> List[str]:
        label = CATALOG_COLUMNS[field]
        if not isinstance(value, str) or not value.strip():
            raise StoreValidationError(f"{label} must be a non-empty string")
        with self.db.lock:
            with self.db.connect() as conn:
                current: List[str] = getattr(self._load(conn), field)
                if value.strip() in current:
                    raise StoreValidationError(f"{label} already exists")
                updated = [*current, value.strip()]
                self._save(conn, field, updated)
        return updated

    def remove(self, field: str, value: str) -> List[str]:
        label = CATALOG_COLUMNS[field]
        with self.db.lock:
            with self.db.connect() as conn:
                current: List[str] = getattr(self._load(conn), field)
                if value not in current:
                    raise StoreNotFoundError(f"{label} not found")
                updated = [item for item in current if item != value]
                self._save(conn, field, updated)
        return updated


settings_store = SettingsStore(db=database)
