from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query

from tecnicos.auth import assert_actor_authorized, assert_admin
from tecnicos.models import (
    AvailabilitySetRequest,
    AvailabilitySlot,
    Booking,
    BookingCancelRequest,
    BookingCompleteRequest,
    BookingCreateRequest,
    BookingList,
    BookingStatus,
    BookingStatusChange,
    MessageResponse,
    Review,
    ReviewCreateRequest,
    ServiceTypeInfo,
    TechnicianActionRequest,
    TimeOff,
    TimeOffCreateRequest,
)
from tecnicos.services.availability_store import availability_store
from tecnicos.services.booking_store import booking_store
from tecnicos.services.errors import StoreError, raise_store_http_error
from tecnicos.services.gamification_rules import SERVICE_TYPES
from tecnicos.services.technician_store import technician_store

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _assert_technician_owner(technician_id: str, authorization: Optional[str]) -> None:
    technician = technician_store.get_technician(technician_id)
    if not technician:
        raise HTTPException(status_code=404, detail="Técnico no encontrado")
    assert_actor_authorized(actor_user_id=technician.user_id, authorization=authorization)


@router.post("", response_model=Booking, status_code=201)
def create_booking(payload: BookingCreateRequest, authorization: Optional[str] = Header(default=None)):
    assert_actor_authorized(actor_user_id=payload.customer_id, authorization=authorization)
    try:
        return booking_store.create_booking(payload)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/service-types", response_model=list[ServiceTypeInfo])
def list_service_types():
    return SERVICE_TYPES


@router.get("/all", response_model=BookingList)
def list_all_bookings(
    status: Optional[BookingStatus] = Query(default=None),
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    authorization: Optional[str] = Header(default=None),
):
    assert_admin(authorization=authorization)
    try:
        return booking_store.get_all_bookings(
            status=status, start_date=start_date, end_date=end_date, limit=limit, offset=offset
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/customer/{user_id}", response_model=list[Booking])
def customer_bookings(
    user_id: str,
    status: Optional[BookingStatus] = Query(default=None),
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        return booking_store.get_customer_bookings(user_id, status=status, start_date=start_date, end_date=end_date)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/technician/{technician_id}", response_model=list[Booking])
def technician_bookings(
    technician_id: str,
    status: Optional[BookingStatus] = Query(default=None),
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    authorization: Optional[str] = Header(default=None),
):
    _assert_technician_owner(technician_id, authorization)
    try:
        return booking_store.get_technician_bookings(
            technician_id, status=status, start_date=start_date, end_date=end_date
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/availability/{technician_id}", response_model=list[AvailabilitySlot])
def get_availability(technician_id: str):
    return availability_store.get_availability(technician_id)


@router.post("/availability", response_model=list[AvailabilitySlot])
def set_availability(payload: AvailabilitySetRequest, authorization: Optional[str] = Header(default=None)):
    _assert_technician_owner(payload.technician_id, authorization)
    try:
        return availability_store.set_availability(payload.technician_id, payload.slots)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/availability/{technician_id}/slots", response_model=dict)
def available_slots(technician_id: str, date: str = Query(...)):
    try:
        slots = availability_store.get_available_slots(technician_id, date)
    except StoreError as exc:
        raise_store_http_error(exc)
    return {"technician_id": technician_id, "date": date, "slots": slots}


@router.get("/availability/{technician_id}/check", response_model=dict)
def check_availability(technician_id: str, date: str = Query(...), time: str = Query(...)):
    try:
        available = availability_store.check_availability(technician_id, date, time)
    except StoreError as exc:
        raise_store_http_error(exc)
    return {"technician_id": technician_id, "date": date, "time": time, "available": available}


@router.get("/time-off/{technician_id}", response_model=list[TimeOff])
def list_time_offs(technician_id: str):
    return availability_store.list_time_offs(technician_id)


@router.post("/time-off", response_model=TimeOff, status_code=201)
def add_time_off(payload: TimeOffCreateRequest, authorization: Optional[str] = Header(default=None)):
    _assert_technician_owner(payload.technician_id, authorization)
    try:
        return availability_store.add_time_off(
            payload.technician_id, payload.start_date, payload.end_date, payload.reason
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.delete("/time-off/{time_off_id}", response_model=MessageResponse)
def remove_time_off(
    time_off_id: str,
    technician_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    _assert_technician_owner(technician_id, authorization)
    try:
        availability_store.remove_time_off(time_off_id, technician_id)
    except StoreError as exc:
        raise_store_http_error(exc)
    return MessageResponse(message="Tiempo libre eliminado")


@router.get("/{booking_id}", response_model=Booking)
def get_booking(booking_id: str):
    try:
        return booking_store.get_booking(booking_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/{booking_id}/history", response_model=list[BookingStatusChange])
def booking_history(booking_id: str):
    try:
        return booking_store.booking_history(booking_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{booking_id}/confirm", response_model=Booking)
def confirm_booking(
    booking_id: str, payload: TechnicianActionRequest, authorization: Optional[str] = Header(default=None)
):
    assert_actor_authorized(actor_user_id=payload.technician_user_id, authorization=authorization)
    try:
        return booking_store.confirm_booking(booking_id, payload.technician_user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{booking_id}/start", response_model=Booking)
def start_booking(
    booking_id: str, payload: TechnicianActionRequest, authorization: Optional[str] = Header(default=None)
):
    assert_actor_authorized(actor_user_id=payload.technician_user_id, authorization=authorization)
    try:
        return booking_store.start_booking(booking_id, payload.technician_user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{booking_id}/complete", response_model=Booking)
def complete_booking(
    booking_id: str, payload: BookingCompleteRequest, authorization: Optional[str] = Header(default=None)
):
    assert_actor_authorized(actor_user_id=payload.technician_user_id, authorization=authorization)
    try:
        return booking_store.complete_booking(booking_id, payload.technician_user_id, payload.total_price)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{booking_id}/no-show", response_model=Booking)
def mark_no_show(
    booking_id: str, payload: TechnicianActionRequest, authorization: Optional[str] = Header(default=None)
):
    assert_actor_authorized(actor_user_id=payload.technician_user_id, authorization=authorization)
    try:
        return booking_store.mark_no_show(booking_id, payload.technician_user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{booking_id}/cancel", response_model=Booking)
def cancel_booking(
    booking_id: str, payload: BookingCancelRequest, authorization: Optional[str] = Header(default=None)
):
    assert_actor_authorized(actor_user_id=payload.canceller_user_id, authorization=authorization)
    try:
        return booking_store.cancel_booking(
            booking_id, payload.cancelled_by, payload.canceller_user_id, payload.reason
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.post("/{booking_id}/review", response_model=Review, status_code=201)
def submit_review(
    booking_id: str, payload: ReviewCreateRequest, authorization: Optional[str] = Header(default=None)
):
    assert_actor_authorized(actor_user_id=payload.author_id, authorization=authorization)
    try:
        return booking_store.submit_review(booking_id, payload.author_id, payload.rating, payload.comment)
    except StoreError as exc:
        raise_store_http_error(exc)
