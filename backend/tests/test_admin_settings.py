import os
import sys
from uuid import uuid4

from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from tecnicos.main import app
from tecnicos.services.user_store import MAX_PHOTO_BASE64_CHARS

from helpers import booking_payload, login, next_weekday, register_technician, register_user, unique_email

client = TestClient(app)


def _admin_headers():
    token = login(client, "admin@tech.com", "admin123")
    return {"Authorization": f"Bearer {token}"}


def test_admin_stats_reflect_bookings():
    before = client.get("/api/users/admin/stats", headers=_admin_headers()).json()

    customer = register_user(client)
    tech_user, technician = register_technician(client)
    day = next_weekday(0)
    done = client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], day, "09:00")).json()
    client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], day, "11:00"))
    client.put(f"/api/bookings/{done['id']}/confirm", json={"technician_user_id": tech_user["id"]})
    client.put(
        f"/api/bookings/{done['id']}/complete",
        json={"technician_user_id": tech_user["id"], "total_price": 2500},
    )

    response = client.get("/api/users/admin/stats", headers=_admin_headers())
    assert response.status_code == 200
    stats = response.json()
    assert stats["total_users"] == before["total_users"] + 2
    assert stats["total_technicians"] == before["total_technicians"] + 1
    assert stats["total_bookings"] == before["total_bookings"] + 2
    assert stats["completed_bookings"] == before["completed_bookings"] + 1
    assert stats["pending_bookings"] == before["pending_bookings"] + 1
    assert stats["total_revenue"] == before["total_revenue"] + 2500
    expected_rate = round(stats["completed_bookings"] / stats["total_bookings"] * 100, 1)
    assert stats["completion_rate"] == expected_rate
    assert len(stats["top_technicians"]) <= 5
    assert len(stats["recent_activity"]) <= 10
    assert stats["recent_activity"][0]["to_status"] == "COMPLETED"
    roles = {item["role"]: item["count"] for item in stats["users_by_role"]}
    assert roles["admin"] >= 1


def test_admin_stats_forbidden_for_regular_user():
    email = unique_email("plain")
    register_user(client, email=email)
    token = login(client, email, "secreto123")
    response = client.get("/api/users/admin/stats", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403


def test_list_users_as_admin():
    user = register_user(client)
    users = client.get("/api/users", headers=_admin_headers()).json()
    assert user["id"] in {item["id"] for item in users}
    assert all("password_hash" not in item for item in users)


def test_update_role():
    user = register_user(client)
    promoted = client.put(f"/api/users/{user['id']}/role", json={"role": "admin"}, headers=_admin_headers())
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "admin"

    invalid = client.put(f"/api/users/{user['id']}/role", json={"role": "superuser"}, headers=_admin_headers())
    assert invalid.status_code == 400
    missing = client.put("/api/users/usr_missing/role", json={"role": "user"}, headers=_admin_headers())
    assert missing.status_code == 404


def test_update_profile_records_history():
    user = register_user(client, name="Nombre Viejo")
    response = client.put(
        f"/api/users/{user['id']}/profile",
        json={"name": "Nombre Nuevo", "phone": "809-555-9999"},
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Nombre Nuevo"

    history = client.get(f"/api/users/{user['id']}/profile-history").json()
    changes = {item["field_name"]: item for item in history}
    assert set(changes) == {"name", "phone"}
    assert changes["name"]["old_value"] == "Nombre Viejo"
    assert changes["name"]["new_value"] == "Nombre Nuevo"
    assert changes["name"]["changed_by"] == user["id"]
    assert changes["name"]["ip_address"] == "203.0.113.7"

    unchanged = client.put(f"/api/users/{user['id']}/profile", json={"name": "Nombre Nuevo"})
    assert unchanged.status_code == 200
    assert len(client.get(f"/api/users/{user['id']}/profile-history").json()) == 2


def test_upload_photo():
    user = register_user(client)
    response = client.post(f"/api/users/{user['id']}/photo", json={"photo_base64": "data:image/png;base64,AAAA"})
    assert response.status_code == 200
    assert response.json()["photo_url"] == "data:image/png;base64,AAAA"

    empty = client.post(f"/api/users/{user['id']}/photo", json={})
    assert empty.status_code == 400
    too_big = client.post(f"/api/users/{user['id']}/photo", json={"photo_base64": "A" * (3 * 1024 * 1024)})
    assert too_big.status_code == 400

    history = client.get(f"/api/users/{user['id']}/profile-history").json()
    assert [item["new_value"] for item in history] == ["[new photo uploaded]"]


def test_oversized_photo_rejected_on_every_path():
    oversized = "A" * (MAX_PHOTO_BASE64_CHARS + 1)
    registration = client.post(
        "/api/auth/register",
        json={
            "name": "Foto Grande",
            "email": unique_email("foto"),
            "password": "secreto123",
            "photo_base64": oversized,
        },
    )
    assert registration.status_code == 400

    user = register_user(client)
    update = client.put(f"/api/users/{user['id']}/profile", json={"photo_url": oversized})
    assert update.status_code == 400
    assert client.get(f"/api/users/{user['id']}").json()["photo_url"] is None
    assert client.get(f"/api/users/{user['id']}/profile-history").json() == []

    at_limit = client.put(f"/api/users/{user['id']}/profile", json={"photo_url": "A" * MAX_PHOTO_BASE64_CHARS})
    assert at_limit.status_code == 200


def test_get_user_404():
    assert client.get("/api/users/usr_missing").status_code == 404


def test_delete_user_cascades():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    booking = client.post(
        "/api/bookings", json=booking_payload(customer["id"], technician["id"], next_weekday(0))
    ).json()

    response = client.delete(f"/api/users/{customer['id']}")
    assert response.status_code == 200
    assert client.get(f"/api/users/{customer['id']}").status_code == 404
    assert client.get(f"/api/bookings/{booking['id']}").status_code == 404
    assert client.get(f"/api/gamification/points/{customer['id']}").status_code == 404
    assert client.get("/api/notifications", params={"user_id": customer["id"]}).json() == []

    assert client.delete(f"/api/users/{customer['id']}").status_code == 404

    removed_tech = client.delete(f"/api/users/{tech_user['id']}")
    assert removed_tech.status_code == 200
    assert client.get(f"/api/technicians/{technician['id']}").status_code == 404
    assert client.get(f"/api/bookings/availability/{technician['id']}").json() == []


def test_specialization_catalog_edits():
    name = f"Instalador Solar {uuid4().hex[:6]}"
    added = client.post("/api/settings/specializations", json={"specialization": name})
    assert added.status_code == 200
    assert added.json()["specializations"][-1] == name

    duplicate = client.post("/api/settings/specializations", json={"specialization": name})
    assert duplicate.status_code == 400
    blank = client.post("/api/settings/specializations", json={"specialization": "   "})
    assert blank.status_code == 400

    removed = client.delete("/api/settings/specializations", params={"specialization": name})
    assert removed.status_code == 200
    assert name not in removed.json()["specializations"]
    missing = client.delete("/api/settings/specializations", params={"specialization": name})
    assert missing.status_code == 404


def test_location_catalog_replace_and_restore():
    original = client.get("/api/settings").json()["locations"]
    replaced = client.put("/api/settings/locations", json={"locations": ["Moca", " Moca ", "La Vega"]})
    assert replaced.status_code == 200
    assert replaced.json()["locations"] == ["Moca", "La Vega"]
    assert client.get("/api/settings").json()["locations"] == ["Moca", "La Vega"]

    invalid = client.put("/api/settings/locations", json={"locations": ["Moca", ""]})
    assert invalid.status_code == 400

    restored = client.put("/api/settings/locations", json={"locations": original})
    assert restored.json()["locations"] == original


def test_location_add_and_remove():
    name = f"Navarrete {uuid4().hex[:6]}"
    assert client.post("/api/settings/locations", json={"location": name}).status_code == 200
    response = client.delete("/api/settings/locations", params={"location": name})
    assert response.status_code == 200
    assert name not in response.json()["locations"]


def test_settings_edit_requires_admin_token():
    email = unique_email("plain")
    register_user(client, email=email)
    token = login(client, email, "secreto123")
    response = client.post(
        "/api/settings/locations",
        json={"location": "Jarabacoa"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 403


def test_deleting_reviewer_recomputes_technician_rating():
    tech_user, technician = register_technician(client)
    day = next_weekday(0)
    for rating, time in ((1, "09:00"), (5, "10:00")):
        customer = register_user(client)
        booking = client.post(
            "/api/bookings", json=booking_payload(customer["id"], technician["id"], day, time)
        ).json()
        client.put(f"/api/bookings/{booking['id']}/confirm", json={"technician_user_id": tech_user["id"]})
        client.put(f"/api/bookings/{booking['id']}/complete", json={"technician_user_id": tech_user["id"]})
        review = client.post(
            f"/api/bookings/{booking['id']}/review", json={"author_id": customer["id"], "rating": rating}
        )
        assert review.status_code == 201

    assert client.get(f"/api/technicians/{technician['id']}").json()["rating"] == 3.0
    assert client.delete(f"/api/users/{customer['id']}").status_code == 200

    profile = client.get(f"/api/technicians/{technician['id']}").json()
    assert profile["rating"] == 1.0
    assert profile["total_reviews"] == 1
    assert [item["rating"] for item in profile["reviews"]] == [1]
