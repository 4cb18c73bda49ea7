import os
import sys

from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from tecnicos.main import app
from tecnicos.services.settings_store import DEFAULT_LOCATIONS, DEFAULT_SPECIALIZATIONS

from helpers import booking_payload, login, next_weekday, register_technician, register_user, unique_email

client = TestClient(app)


def test_health_ok():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_ready_reports_delivery_channels():
    response = client.get("/ready")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["email_configured"] is False
    assert payload["push_configured"] is False


def test_register_login_and_me():
    email = unique_email()
    user = register_user(client, name="Ana Gómez", email=email, password="secreto123")
    assert user["role"] == "user"
    assert user["email_verified"] is False

    token = login(client, email, "secreto123")
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user"]["id"] == user["id"]


def test_register_duplicate_email_rejected():
    email = unique_email()
    register_user(client, email=email)
    response = client.post(
        "/api/auth/register",
        json={"name": "Otra", "email": email.upper(), "password": "secreto123"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists"


def test_register_short_password_rejected():
    response = client.post(
        "/api/auth/register",
        json={"name": "Corto", "email": unique_email(), "password": "123"},
    )
    assert response.status_code == 400


def test_login_bad_credentials():
    email = unique_email()
    register_user(client, email=email, password="secreto123")
    response = client.post("/api/auth/login", json={"email": email, "password": "incorrecta"})
    assert response.status_code == 401


def test_me_requires_token():
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not.valid"}).status_code == 401


def test_seeded_admin_can_login():
    token = login(client, "admin@tech.com", "admin123")
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["user"]["role"] == "admin"


def test_register_technician_account_creates_profile():
    user, technician = register_technician(
        client, specializations=["Plomero", "Cerrajero"], location="Gurabo"
    )
    assert user["role"] == "technician"
    assert technician["specializations"] == ["Plomero", "Cerrajero"]
    assert technician["specialization"] == "Plomero, Cerrajero"
    assert technician["location"] == "Gurabo"
    assert technician["verified"] is False

    availability = client.get(f"/api/bookings/availability/{technician['id']}").json()
    assert [slot["day_of_week"] for slot in availability] == [1, 2, 3, 4, 5]
    assert all(slot["start_time"] == "08:00" and slot["end_time"] == "17:00" for slot in availability)


def test_technician_filters():
    _, technician = register_technician(client, specializations=["Fumigador"], location="Puñal")
    by_spec = client.get("/api/technicians", params={"specialization": "fumigador"}).json()
    assert technician["id"] in {item["id"] for item in by_spec}

    by_location = client.get("/api/technicians", params={"location": "Tamboril"}).json()
    assert technician["id"] not in {item["id"] for item in by_location}

    unverified = client.get("/api/technicians", params={"verified": "false"}).json()
    assert technician["id"] in {item["id"] for item in unverified}


def test_register_technician_for_existing_user():
    user = register_user(client)
    response = client.post(
        "/api/technicians",
        json={
            "user_id": user["id"],
            "specializations": "Pintor",
            "location": "Bella Vista",
            "phone": "829-555-0303",
        },
    )
    assert response.status_code == 201
    technician = response.json()
    assert technician["specializations"] == ["Pintor"]
    assert technician["phone"] == "829-555-0303"
    assert client.get(f"/api/users/{user['id']}").json()["role"] == "technician"

    again = client.post(
        "/api/technicians",
        json={"user_id": user["id"], "specializations": ["Pintor"], "location": "Bella Vista"},
    )
    assert again.status_code == 409


def test_verify_technician_unlocks_achievement():
    user, technician = register_technician(client)
    response = client.put(f"/api/technicians/{technician['id']}/verify")
    assert response.status_code == 200
    assert response.json()["verified"] is True

    achievements = client.get(f"/api/gamification/achievements/{user['id']}").json()
    verified = next(item for item in achievements if item["code"] == "VERIFIED_TECHNICIAN")
    assert verified["is_unlocked"] is True
    assert verified["unlocked_at"]


def test_get_missing_technician_404():
    assert client.get("/api/technicians/tech_missing").status_code == 404


def test_delete_technician_demotes_user():
    user, technician = register_technician(client)
    response = client.delete(f"/api/technicians/{technician['id']}")
    assert response.status_code == 200
    assert client.get(f"/api/technicians/{technician['id']}").status_code == 404
    assert client.get(f"/api/users/{user['id']}").json()["role"] == "user"


def test_settings_defaults():
    response = client.get("/api/settings")
    assert response.status_code == 200
    payload = response.json()
    assert len(DEFAULT_SPECIALIZATIONS) == 12
    assert len(DEFAULT_LOCATIONS) == 11
    assert set(DEFAULT_SPECIALIZATIONS) <= set(payload["specializations"])
    assert set(DEFAULT_LOCATIONS) <= set(payload["locations"])


def test_notifications_empty_and_device_registration():
    user = register_user(client)
    response = client.get("/api/notifications", params={"user_id": user["id"]})
    assert response.status_code == 200
    assert response.json() == []

    register = client.post(
        "/api/notifications/register-device",
        json={"user_id": user["id"], "device_token": "device-abc", "platform": "android"},
    )
    assert register.status_code == 200
    assert register.json()["status"] == "ok"


def test_mark_unknown_notification_read_404():
    user = register_user(client)
    response = client.post("/api/notifications/ntf_missing/read", params={"user_id": user["id"]})
    assert response.status_code == 404


def test_unread_count_and_read_all():
    customer = register_user(client)
    _, technician = register_technician(client)
    day = next_weekday(0)
    for time in ("09:00", "10:00"):
        created = client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], day, time))
        assert created.status_code == 201

    counts = client.get("/api/notifications/unread-count", params={"user_id": customer["id"]}).json()
    assert counts["booking"] == 2
    assert counts["total"] == sum(value for key, value in counts.items() if key != "total")

    first = client.get("/api/notifications", params={"user_id": customer["id"]}).json()[0]
    client.post(f"/api/notifications/{first['id']}/read", params={"user_id": customer["id"]})
    after_one = client.get("/api/notifications/unread-count", params={"user_id": customer["id"]}).json()
    assert after_one["total"] == counts["total"] - 1

    marked = client.post("/api/notifications/read-all", params={"user_id": customer["id"]})
    assert marked.status_code == 200
    assert marked.json() == {"updated": counts["total"] - 1}
    assert client.get("/api/notifications/unread-count", params={"user_id": customer["id"]}).json() == {"total": 0}
    unread = client.get("/api/notifications", params={"user_id": customer["id"], "unread_only": True}).json()
    assert unread == []
