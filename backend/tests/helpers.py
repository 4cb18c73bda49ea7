from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from fastapi.testclient import TestClient


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid4().hex[:8]}@example.com"


def next_weekday(weekday: int, min_days: int = 7) -> date:
    """First date at least `min_days` ahead falling on `weekday` (Monday = 0)."""
    day = date.today() + timedelta(days=min_days)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    return day


def register_user(client: TestClient, name: str = "Cliente Prueba", **extra: Any) -> Dict[str, Any]:
    payload = {
        "name": name,
        "email": extra.pop("email", unique_email("cliente")),
        "password": extra.pop("password", "secreto123"),
        "phone": "809-555-0101",
    }
    payload.update(extra)
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def register_technician(
    client: TestClient,
    name: str = "Técnico Prueba",
    specializations: Optional[List[str]] = None,
    location: str = "Santiago Centro",
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    user = register_user(
        client,
        name=name,
        email=unique_email("tecnico"),
        account_type="technician",
        specializations=specializations or ["Electricista"],
        location=location,
    )
    technicians = client.get("/api/technicians").json()
    technician = next(item for item in technicians if item["user_id"] == user["id"])
    return user, technician


def login(client: TestClient, email: str, password: str) -> str:
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


def booking_payload(customer_id: str, technician_id: str, day: date, time: str = "10:00", **extra: Any) -> Dict[str, Any]:
    payload = {
        "customer_id": customer_id,
        "technician_id": technician_id,
        "scheduled_date": day.isoformat(),
        "scheduled_time": time,
        "service_type": "REPAIR",
        "description": "El breaker se dispara",
        "address": "Calle del Sol 12",
        "city": "Santiago",
        "phone": "809-555-0102",
    }
    payload.update(extra)
    return payload
