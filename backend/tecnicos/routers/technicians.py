from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query

from tecnicos.auth import assert_actor_authorized, assert_admin
from tecnicos.models import MessageResponse, Review, Technician, TechnicianRegisterRequest
from tecnicos.services.account_service import account_service
from tecnicos.services.errors import StoreError, raise_store_http_error
from tecnicos.services.technician_store import technician_store

router = APIRouter(prefix="/technicians", tags=["technicians"])


@router.get("", response_model=list[Technician])
def list_technicians(
    specialization: Optional[str] = Query(default=None),
    location: Optional[str] = Query(default=None),
    verified: Optional[bool] = Query(default=None),
):
    return technician_store.list_technicians(specialization=specialization, location=location, verified=verified)


@router.post("", response_model=Technician, status_code=201)
def register_technician(payload: TechnicianRegisterRequest, authorization: Optional[str] = Header(default=None)):
    assert_actor_authorized(actor_user_id=payload.user_id, authorization=authorization)
    try:
        return technician_store.register_technician(
            user_id=payload.user_id,
            specializations=payload.specializations,
            location=payload.location,
            phone=payload.phone,
            company_name=payload.company_name,
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/{technician_id}", response_model=Technician)
def get_technician(technician_id: str):
    technician = technician_store.get_technician(technician_id)
    if not technician:
        raise HTTPException(status_code=404, detail="Técnico no encontrado")
    return technician


@router.get("/{technician_id}/reviews", response_model=list[Review])
def list_reviews(technician_id: str):
    try:
        return technician_store.list_reviews(technician_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{technician_id}/verify", response_model=Technician)
def verify_technician(technician_id: str, authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    try:
        return technician_store.verify_technician(technician_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.delete("/{technician_id}", response_model=MessageResponse)
def delete_technician(technician_id: str, authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    try:
        account_service.delete_technician(technician_id)
    except StoreError as exc:
        raise_store_http_error(exc)
    return MessageResponse(message="Technician deleted")
