from typing import Optional

from fastapi import APIRouter, Header, Query

from tecnicos.auth import assert_admin
from tecnicos.models import (
    AppSettings,
    LocationRequest,
    LocationsUpdateRequest,
    SpecializationRequest,
    SpecializationsUpdateRequest,
)
from tecnicos.services.errors import StoreError, raise_store_http_error
from tecnicos.services.settings_store import settings_store

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=AppSettings)
def get_settings():
    return settings_store.get_settings()


@router.put("/specializations", response_model=dict)
def replace_specializations(
    payload: SpecializationsUpdateRequest, authorization: Optional[str] = Header(default=None)
):
    assert_admin(authorization=authorization)
    try:
        values = settings_store.replace("specializations", payload.specializations)
    except StoreError as exc:
        raise_store_http_error(exc)
    return {"message": "Specializations updated successfully", "specializations": values}


@router.post("/specializations", response_model=dict)
def add_specialization(payload: SpecializationRequest, authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    try:
        values = settings_store.add("specializations", payload.specialization)
    except StoreError as exc:
        raise_store_http_error(exc)
    return {"message": "Specialization added successfully", "specializations": values}


@router.delete("/specializations", response_model=dict)
def remove_specialization(
    specialization: str = Query(...), authorization: Optional[str] = Header(default=None)
):
    assert_admin(authorization=authorization)
    try:
        values = settings_store.remove("specializations", specialization)
    except StoreError as exc:
        raise_store_http_error(exc)
    return {"message": "Specialization removed successfully", "specializations": values}


@router.put("/locations", response_model=dict)
def replace_locations(payload: LocationsUpdateRequest, authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    try:
        values = settings_store.replace("locations", payload.locations)
    except StoreError as exc:
        raise_store_http_error(exc)
    return {"message": "Locations updated successfully", "locations": values}


@router.post("/locations", response_model=dict)
def add_location(payload: LocationRequest, authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    try:
        values = settings_store.add("locations", payload.location)
    except StoreError as exc:
        raise_store_http_error(exc)
    return {"message": "Location added successfully", "locations": values}


@router.delete("/locations", response_model=dict)
def remove_location(location: str = Query(...), authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    try:
        values = settings_store.remove("locations", location)
    except StoreError as exc:
        raise_store_http_error(exc)
    return {"message": "Location removed successfully", "locations": values}
