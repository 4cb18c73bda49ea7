#!/usr/bin/env python3
import argparse
import os
import sys
from pathlib import Path
from typing import List, Tuple

REPO_BACKEND = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_BACKEND))

DEMO_PASSWORD = "demo1234"

DEMO_TECHNICIANS: List[Tuple[str, str, List[str], str]] = [
    ("Carlos Rodríguez", "carlos.demo@tecnicosenrd.com", ["Electricista"], "Santiago Centro"),
    ("María Fernández", "maria.demo@tecnicosenrd.com", ["Plomero", "Técnico en Aires Acondicionados"], "Los Jardines"),
    ("José Martínez", "jose.demo@tecnicosenrd.com", ["Carpintero", "Pintor"], "Bella Vista"),
]

DEMO_CUSTOMER = ("Ana Gómez", "ana.demo@tecnicosenrd.com")


def create_demo_accounts() -> int:
    from tecnicos.models import UserRegisterRequest
    from tecnicos.services.account_service import account_service
    from tecnicos.services.user_store import user_store

    created = 0
    for name, email, specializations, location in DEMO_TECHNICIANS:
        if user_store.get_user_by_email(email):
            continue
        account_service.register(
            UserRegisterRequest(
                name=name,
                email=email,
                password=DEMO_PASSWORD,
                phone="809-555-0100",
                account_type="technician",
                specializations=specializations,
                location=location,
            )
        )
        created += 1
    name, email = DEMO_CUSTOMER
    if not user_store.get_user_by_email(email):
        account_service.register(
            UserRegisterRequest(name=name, email=email, password=DEMO_PASSWORD, phone="809-555-0199")
        )
        created += 1
    return created


def main() -> int:
    parser = argparse.ArgumentParser(description="Backfill default availability and point records.")
    parser.add_argument("--db-path", type=str, default="", help="SQLite file to seed (defaults to TECNICOS_DB_PATH).")
    parser.add_argument("--demo-accounts", action="store_true", help="Also create demo technicians and a customer.")
    args = parser.parse_args()

    if args.db_path:
        os.environ["TECNICOS_DB_PATH"] = args.db_path

    from tecnicos.services.availability_store import availability_store
    from tecnicos.services.gamification_store import gamification_store
    from tecnicos.services.technician_store import technician_store
    from tecnicos.services.user_store import user_store

    demo_created = create_demo_accounts() if args.demo_accounts else 0

    schedules = 0
    for technician in technician_store.list_technicians():
        if availability_store.ensure_default_hours(technician.id):
            schedules += 1

    users = user_store.list_users()
    for user in users:
        gamification_store.initialize_user_points(user.id)

    print(
        f"Seed complete: demo_accounts={demo_created} default_schedules={schedules} "
        f"point_records_checked={len(users)}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
