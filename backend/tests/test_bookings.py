import os
import sys
from datetime import date, timedelta

from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from tecnicos.main import app
from tecnicos.services.database import database

from helpers import booking_payload, login, next_weekday, register_technician, register_user

client = TestClient(app)

MONDAY = 0
SATURDAY = 5
SUNDAY = 6


def _create_booking(customer, technician, day=None, time="10:00"):
    day = day or next_weekday(MONDAY)
    response = client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], day, time))
    assert response.status_code == 201, response.text
    return response.json()


def _slots(technician_id: str, day: date):
    response = client.get(f"/api/bookings/availability/{technician_id}/slots", params={"date": day.isoformat()})
    assert response.status_code == 200
    return response.json()["slots"]


def _act(booking_id: str, action: str, technician_user_id: str, **extra):
    return client.put(
        f"/api/bookings/{booking_id}/{action}",
        json={"technician_user_id": technician_user_id, **extra},
    )


def _points(user_id: str) -> int:
    return client.get(f"/api/gamification/points/{user_id}").json()["total_points"]


def test_default_weekday_slots():
    _, technician = register_technician(client)
    slots = _slots(technician["id"], next_weekday(MONDAY))
    assert slots == [f"{hour:02d}:00" for hour in range(8, 17)]


def test_no_slots_on_sunday():
    _, technician = register_technician(client)
    assert _slots(technician["id"], next_weekday(SUNDAY)) == []


def test_invalid_date_for_slots():
    _, technician = register_technician(client)
    response = client.get(f"/api/bookings/availability/{technician['id']}/slots", params={"date": "2025-13-40"})
    assert response.status_code == 400


def test_create_booking_takes_slot():
    customer = register_user(client)
    _, technician = register_technician(client)
    day = next_weekday(MONDAY)

    booking = _create_booking(customer, technician, day)
    assert booking["status"] == "PENDING"
    assert booking["customer_name"] == customer["name"]
    assert booking["technician_id"] == technician["id"]
    assert "10:00" not in _slots(technician["id"], day)

    check = client.get(
        f"/api/bookings/availability/{technician['id']}/check",
        params={"date": day.isoformat(), "time": "10:00"},
    )
    assert check.json()["available"] is False

    again = client.post("/api/bookings", json=booking_payload(register_user(client)["id"], technician["id"], day))
    assert again.status_code == 409
    assert again.json()["detail"] == "El horario seleccionado no está disponible"


def test_first_booking_awards_customer_points():
    customer = register_user(client)
    _, technician = register_technician(client)
    _create_booking(customer, technician)
    assert _points(customer["id"]) == 100

    _create_booking(customer, technician, time="11:00")
    assert _points(customer["id"]) == 100


def test_booking_notifies_both_parties():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    _create_booking(customer, technician)

    customer_titles = [n["title"] for n in client.get("/api/notifications", params={"user_id": customer["id"]}).json()]
    tech_titles = [n["title"] for n in client.get("/api/notifications", params={"user_id": tech_user["id"]}).json()]
    assert "Reserva creada" in customer_titles
    assert "Nueva solicitud de reserva" in tech_titles


def test_booking_outside_hours_rejected():
    customer = register_user(client)
    _, technician = register_technician(client)
    late = client.post(
        "/api/bookings", json=booking_payload(customer["id"], technician["id"], next_weekday(MONDAY), "17:00")
    )
    assert late.status_code == 409
    sunday = client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], next_weekday(SUNDAY)))
    assert sunday.status_code == 409


def test_booking_in_the_past_rejected():
    customer = register_user(client)
    _, technician = register_technician(client)
    yesterday = date.today() - timedelta(days=1)
    response = client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], yesterday))
    assert response.status_code == 400


def test_booking_validation_errors():
    customer = register_user(client)
    _, technician = register_technician(client)
    day = next_weekday(MONDAY)
    bad_time = client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], day, "9am"))
    assert bad_time.status_code == 400
    bad_service = client.post(
        "/api/bookings",
        json=booking_payload(customer["id"], technician["id"], day, service_type="PAINTING"),
    )
    assert bad_service.status_code == 400
    missing = booking_payload(customer["id"], technician["id"], day)
    missing.pop("address")
    assert client.post("/api/bookings", json=missing).status_code == 400


def test_booking_unknown_parties():
    customer = register_user(client)
    _, technician = register_technician(client)
    day = next_weekday(MONDAY)
    assert client.post("/api/bookings", json=booking_payload(customer["id"], "tech_missing", day)).status_code == 404
    assert client.post("/api/bookings", json=booking_payload("usr_missing", technician["id"], day)).status_code == 404


def test_full_lifecycle_awards_points():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    booking = _create_booking(customer, technician)

    confirmed = _act(booking["id"], "confirm", tech_user["id"])
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "CONFIRMED"
    assert confirmed.json()["confirmed_at"]
    assert _points(tech_user["id"]) == 25

    started = _act(booking["id"], "start", tech_user["id"])
    assert started.json()["status"] == "IN_PROGRESS"

    completed = _act(booking["id"], "complete", tech_user["id"], total_price=1500)
    assert completed.status_code == 200
    body = completed.json()
    assert body["status"] == "COMPLETED"
    assert body["total_price"] == 1500
    assert body["completed_at"]

    assert client.get(f"/api/technicians/{technician['id']}").json()["total_jobs_completed"] == 1
    # FIRST_BOOKING + BOOKING_COMPLETED + "Primeros Pasos" achievement.
    assert _points(customer["id"]) == 250
    # QUICK_RESPONSE + JOB_COMPLETED + ON_TIME_ARRIVAL + "Profesional Activo" achievement.
    assert _points(tech_user["id"]) == 300

    history = client.get(f"/api/bookings/{booking['id']}/history").json()
    assert [(item["from_status"], item["to_status"]) for item in history] == [
        ("PENDING", "CONFIRMED"),
        ("CONFIRMED", "IN_PROGRESS"),
        ("IN_PROGRESS", "COMPLETED"),
    ]


def test_complete_directly_from_confirmed():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    booking = _create_booking(customer, technician)
    _act(booking["id"], "confirm", tech_user["id"])
    response = _act(booking["id"], "complete", tech_user["id"])
    assert response.status_code == 200
    assert response.json()["total_price"] is None


def test_invalid_transitions():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    booking = _create_booking(customer, technician)

    assert _act(booking["id"], "start", tech_user["id"]).status_code == 409
    assert _act(booking["id"], "complete", tech_user["id"]).status_code == 409
    assert _act(booking["id"], "no-show", tech_user["id"]).status_code == 409

    assert _act(booking["id"], "confirm", tech_user["id"]).status_code == 200
    assert _act(booking["id"], "confirm", tech_user["id"]).status_code == 409


def test_negative_price_rejected():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    booking = _create_booking(customer, technician)
    _act(booking["id"], "confirm", tech_user["id"])
    assert _act(booking["id"], "complete", tech_user["id"], total_price=-5).status_code == 400


def test_other_technician_cannot_act():
    customer = register_user(client)
    _, technician = register_technician(client)
    other_user, _ = register_technician(client)
    booking = _create_booking(customer, technician)
    response = _act(booking["id"], "confirm", other_user["id"])
    assert response.status_code == 403
    assert client.get(f"/api/bookings/{booking['id']}").json()["status"] == "PENDING"


def test_unknown_booking_404():
    assert client.get("/api/bookings/bk_missing").status_code == 404
    assert _act("bk_missing", "confirm", "usr_missing").status_code == 404


def test_customer_cancel_frees_slot():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    day = next_weekday(MONDAY)
    booking = _create_booking(customer, technician, day)

    stranger = register_user(client)
    forbidden = client.put(
        f"/api/bookings/{booking['id']}/cancel",
        json={"cancelled_by": "customer", "canceller_user_id": stranger["id"]},
    )
    assert forbidden.status_code == 403

    response = client.put(
        f"/api/bookings/{booking['id']}/cancel",
        json={"cancelled_by": "customer", "canceller_user_id": customer["id"], "reason": "Ya no lo necesito"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "CANCELLED"
    assert body["cancelled_by"] == "customer"
    assert body["cancel_reason"] == "Ya no lo necesito"
    assert "10:00" in _slots(technician["id"], day)

    again = client.put(
        f"/api/bookings/{booking['id']}/cancel",
        json={"cancelled_by": "customer", "canceller_user_id": customer["id"]},
    )
    assert again.status_code == 409

    titles = [n["title"] for n in client.get("/api/notifications", params={"user_id": tech_user["id"]}).json()]
    assert "Reserva cancelada" in titles


def test_technician_and_admin_cancel():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    first = _create_booking(customer, technician, time="09:00")
    second = _create_booking(customer, technician, time="13:00")

    by_tech = client.put(
        f"/api/bookings/{first['id']}/cancel",
        json={"cancelled_by": "technician", "canceller_user_id": tech_user["id"]},
    )
    assert by_tech.json()["status"] == "CANCELLED"

    not_admin = client.put(
        f"/api/bookings/{second['id']}/cancel",
        json={"cancelled_by": "admin", "canceller_user_id": customer["id"]},
    )
    assert not_admin.status_code == 403

    token = login(client, "admin@tech.com", "admin123")
    admin_id = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).json()["user"]["id"]
    by_admin = client.put(
        f"/api/bookings/{second['id']}/cancel",
        json={"cancelled_by": "admin", "canceller_user_id": admin_id},
    )
    assert by_admin.status_code == 200
    assert by_admin.json()["cancelled_by"] == "admin"


def test_no_show():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    day = next_weekday(MONDAY)
    booking = _create_booking(customer, technician, day)
    _act(booking["id"], "confirm", tech_user["id"])
    response = _act(booking["id"], "no-show", tech_user["id"])
    assert response.status_code == 200
    assert response.json()["status"] == "NO_SHOW"
    assert "10:00" in _slots(technician["id"], day)


def test_review_rules():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    booking = _create_booking(customer, technician)
    review = {"author_id": customer["id"], "rating": 5, "comment": "Excelente trabajo"}

    early = client.post(f"/api/bookings/{booking['id']}/review", json=review)
    assert early.status_code == 409

    _act(booking["id"], "confirm", tech_user["id"])
    _act(booking["id"], "complete", tech_user["id"], total_price=800)
    tech_points = _points(tech_user["id"])

    stranger = register_user(client)
    forbidden = client.post(
        f"/api/bookings/{booking['id']}/review", json={**review, "author_id": stranger["id"]}
    )
    assert forbidden.status_code == 403

    out_of_range = client.post(f"/api/bookings/{booking['id']}/review", json={**review, "rating": 6})
    assert out_of_range.status_code == 400

    created = client.post(f"/api/bookings/{booking['id']}/review", json=review)
    assert created.status_code == 201
    assert created.json()["rating"] == 5
    assert created.json()["booking_id"] == booking["id"]

    duplicate = client.post(f"/api/bookings/{booking['id']}/review", json=review)
    assert duplicate.status_code == 409

    profile = client.get(f"/api/technicians/{technician['id']}").json()
    assert profile["rating"] == 5.0
    assert profile["total_reviews"] == 1
    assert len(profile["reviews"]) == 1

    reviews = client.get(f"/api/technicians/{technician['id']}/reviews").json()
    assert reviews[0]["comment"] == "Excelente trabajo"
    assert _points(tech_user["id"]) == tech_points + 50


def test_rating_is_average_of_reviews():
    tech_user, technician = register_technician(client)
    for rating, time in ((5, "09:00"), (2, "10:00")):
        customer = register_user(client)
        booking = _create_booking(customer, technician, time=time)
        _act(booking["id"], "confirm", tech_user["id"])
        _act(booking["id"], "complete", tech_user["id"])
        response = client.post(
            f"/api/bookings/{booking['id']}/review", json={"author_id": customer["id"], "rating": rating}
        )
        assert response.status_code == 201
    profile = client.get(f"/api/technicians/{technician['id']}").json()
    assert profile["rating"] == 3.5
    assert profile["total_reviews"] == 2


def test_time_off_blocks_day():
    customer = register_user(client)
    _, technician = register_technician(client)
    day = next_weekday(MONDAY)

    created = client.post(
        "/api/bookings/time-off",
        json={
            "technician_id": technician["id"],
            "start_date": day.isoformat(),
            "end_date": (day + timedelta(days=2)).isoformat(),
            "reason": "Vacaciones",
        },
    )
    assert created.status_code == 201
    time_off = created.json()

    assert _slots(technician["id"], day) == []
    assert _slots(technician["id"], day + timedelta(days=2)) == []
    assert _slots(technician["id"], day + timedelta(days=3)) != []
    blocked = client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], day))
    assert blocked.status_code == 409

    listed = client.get(f"/api/bookings/time-off/{technician['id']}").json()
    assert [item["id"] for item in listed] == [time_off["id"]]

    _, other = register_technician(client)
    wrong_owner = client.delete(
        f"/api/bookings/time-off/{time_off['id']}", params={"technician_id": other["id"]}
    )
    assert wrong_owner.status_code == 403

    removed = client.delete(
        f"/api/bookings/time-off/{time_off['id']}", params={"technician_id": technician["id"]}
    )
    assert removed.status_code == 200
    assert len(_slots(technician["id"], day)) == 9
    assert client.get(f"/api/bookings/time-off/{technician['id']}").json() == []


def test_time_off_validation():
    _, technician = register_technician(client)
    day = next_weekday(MONDAY)
    backwards = client.post(
        "/api/bookings/time-off",
        json={
            "technician_id": technician["id"],
            "start_date": day.isoformat(),
            "end_date": (day - timedelta(days=1)).isoformat(),
        },
    )
    assert backwards.status_code == 400
    missing = client.delete("/api/bookings/time-off/off_missing", params={"technician_id": technician["id"]})
    assert missing.status_code == 404


def test_past_time_off_not_listed():
    _, technician = register_technician(client)
    old = date.today() - timedelta(days=10)
    client.post(
        "/api/bookings/time-off",
        json={
            "technician_id": technician["id"],
            "start_date": old.isoformat(),
            "end_date": (old + timedelta(days=1)).isoformat(),
        },
    )
    assert client.get(f"/api/bookings/time-off/{technician['id']}").json() == []


def test_set_availability_replaces_schedule():
    _, technician = register_technician(client)
    response = client.post(
        "/api/bookings/availability",
        json={
            "technician_id": technician["id"],
            "slots": [
                {"day_of_week": 6, "start_time": "09:00", "end_time": "12:00"},
                {"day_of_week": 3, "start_time": "14:00", "end_time": "18:00"},
                {"day_of_week": 3, "start_time": "08:00", "end_time": "10:00"},
            ],
        },
    )
    assert response.status_code == 200
    schedule = response.json()
    assert [(slot["day_of_week"], slot["start_time"]) for slot in schedule] == [
        (3, "08:00"),
        (3, "14:00"),
        (6, "09:00"),
    ]

    assert _slots(technician["id"], next_weekday(SATURDAY)) == ["09:00", "10:00", "11:00"]
    assert _slots(technician["id"], next_weekday(MONDAY)) == []
    wednesday = next_weekday(2)
    assert _slots(technician["id"], wednesday) == ["08:00", "09:00", "14:00", "15:00", "16:00", "17:00"]


def test_set_availability_validation():
    _, technician = register_technician(client)

    def post(slot):
        return client.post("/api/bookings/availability", json={"technician_id": technician["id"], "slots": [slot]})

    assert post({"day_of_week": 1, "start_time": "12:00", "end_time": "09:00"}).status_code == 400
    assert post({"day_of_week": 1, "start_time": "25:00", "end_time": "26:00"}).status_code == 400
    assert post({"day_of_week": 7, "start_time": "08:00", "end_time": "09:00"}).status_code == 400
    unknown = client.post(
        "/api/bookings/availability",
        json={"technician_id": "tech_missing", "slots": []},
    )
    assert unknown.status_code == 404
    assert len(client.get(f"/api/bookings/availability/{technician['id']}").json()) == 5


def test_booking_lists():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    first = _create_booking(customer, technician, time="09:00")
    second = _create_booking(customer, technician, time="15:00")
    _act(second["id"], "confirm", tech_user["id"])

    mine = client.get(f"/api/bookings/customer/{customer['id']}").json()
    assert [item["id"] for item in mine] == [second["id"], first["id"]]

    confirmed = client.get(f"/api/bookings/customer/{customer['id']}", params={"status": "CONFIRMED"}).json()
    assert [item["id"] for item in confirmed] == [second["id"]]

    assigned = client.get(f"/api/bookings/technician/{technician['id']}").json()
    assert {item["id"] for item in assigned} == {first["id"], second["id"]}

    everything = client.get("/api/bookings/all", params={"limit": 200}).json()
    assert everything["total"] >= 2
    assert {first["id"], second["id"]} <= {item["id"] for item in everything["bookings"]}


def test_service_types_catalog():
    response = client.get("/api/bookings/service-types")
    assert response.status_code == 200
    codes = [item["code"] for item in response.json()]
    assert codes == ["REPAIR", "INSTALLATION", "MAINTENANCE", "INSPECTION", "CONSULTATION", "EMERGENCY"]
    assert response.json()[0]["name_es"] == "Reparación"


def _sources(user_id: str):
    history = client.get(f"/api/gamification/points/{user_id}/history", params={"limit": 100}).json()
    return [(item["source"], item["points"]) for item in history["transactions"]]


def test_slots_start_on_first_whole_hour_inside_window():
    customer = register_user(client)
    _, technician = register_technician(client)
    response = client.post(
        "/api/bookings/availability",
        json={
            "technician_id": technician["id"],
            "slots": [{"day_of_week": 1, "start_time": "08:30", "end_time": "10:00"}],
        },
    )
    assert response.status_code == 200
    day = next_weekday(MONDAY)

    slots = _slots(technician["id"], day)
    assert slots == ["09:00"]
    for slot in slots:
        check = client.get(
            f"/api/bookings/availability/{technician['id']}/check",
            params={"date": day.isoformat(), "time": slot},
        )
        assert check.json()["available"] is True

    early = client.post("/api/bookings", json=booking_payload(customer["id"], technician["id"], day, "08:00"))
    assert early.status_code == 409
    _create_booking(customer, technician, day, slots[0])


def test_referrer_rewarded_once_when_referred_user_completes_first_booking():
    referrer = register_user(client)
    referred = register_user(client, referred_by=referrer["email"])
    tech_user, technician = register_technician(client)

    for time in ("09:00", "11:00"):
        booking = _create_booking(referred, technician, time=time)
        _act(booking["id"], "confirm", tech_user["id"])
        assert _act(booking["id"], "complete", tech_user["id"]).status_code == 200

    rewards = [points for source, points in _sources(referrer["id"]) if source == "REFERRAL_FIRST_BOOKING"]
    assert rewards == [300]


def test_only_five_star_reviews_award_technician():
    tech_user, technician = register_technician(client)
    for rating, time in ((4, "09:00"), (5, "10:00")):
        customer = register_user(client)
        booking = _create_booking(customer, technician, time=time)
        _act(booking["id"], "confirm", tech_user["id"])
        _act(booking["id"], "complete", tech_user["id"])
        client.post(f"/api/bookings/{booking['id']}/review", json={"author_id": customer["id"], "rating": rating})

    five_star = [points for source, points in _sources(tech_user["id"]) if source == "FIVE_STAR_REVIEW"]
    assert five_star == [50]


def test_late_completion_earns_no_punctuality_bonus():
    customer = register_user(client)
    tech_user, technician = register_technician(client)
    booking = _create_booking(customer, technician)
    _act(booking["id"], "confirm", tech_user["id"])
    # The job was scheduled for yesterday and is only being closed now.
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    with database.connect() as conn:
        conn.execute("UPDATE bookings SET scheduled_date = ? WHERE id = ?", (yesterday, booking["id"]))
        conn.commit()

    assert _act(booking["id"], "complete", tech_user["id"]).status_code == 200
    sources = [source for source, _ in _sources(tech_user["id"])]
    assert "JOB_COMPLETED" in sources
    assert "ON_TIME_ARRIVAL" not in sources
