from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request

from tecnicos.auth import assert_actor_authorized, assert_admin
from tecnicos.models import (
    AdminStats,
    MessageResponse,
    PhotoUploadRequest,
    PhotoUploadResponse,
    ProfileChange,
    ProfileUpdateRequest,
    RoleUpdateRequest,
    User,
    UserUpdateRequest,
)
from tecnicos.services.account_service import account_service
from tecnicos.services.errors import StoreError, raise_store_http_error
from tecnicos.services.stats_store import stats_store
from tecnicos.services.user_store import user_store

router = APIRouter(prefix="/users", tags=["users"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.get("", response_model=list[User])
def list_users(authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    return user_store.list_users()


@router.get("/admin/stats", response_model=AdminStats)
def admin_stats(authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    return stats_store.get_admin_stats()


@router.get("/{user_id}", response_model=User)
def get_user(user_id: str):
    user = user_store.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    return user


@router.get("/{user_id}/profile-history", response_model=list[ProfileChange])
def profile_history(user_id: str, authorization: Optional[str] = Header(default=None)):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    return user_store.profile_history(user_id)


@router.put("/{user_id}", response_model=User)
def update_user(user_id: str, payload: UserUpdateRequest, authorization: Optional[str] = Header(default=None)):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        return user_store.update_user(user_id, name=payload.name, phone=payload.phone)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{user_id}/profile", response_model=User)
def update_profile(
    user_id: str,
    payload: ProfileUpdateRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        return user_store.update_profile(
            user_id,
            name=payload.name,
            phone=payload.phone,
            photo_url=payload.photo_url,
            changed_by=payload.changed_by,
            ip_address=_client_ip(request),
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{user_id}/role", response_model=User)
def update_role(user_id: str, payload: RoleUpdateRequest, authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    try:
        return user_store.update_role(user_id, payload.role)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.post("/{user_id}/photo", response_model=PhotoUploadResponse)
def upload_photo(
    user_id: str,
    payload: PhotoUploadRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        user = user_store.upload_photo(user_id, payload.photo_base64, ip_address=_client_ip(request))
    except StoreError as exc:
        raise_store_http_error(exc)
    return PhotoUploadResponse(message="Foto de perfil actualizada", photo_url=user.photo_url)


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(user_id: str, authorization: Optional[str] = Header(default=None)):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        account_service.delete_user(user_id)
    except StoreError as exc:
        raise_store_http_error(exc)
    return MessageResponse(message="Usuario eliminado")
