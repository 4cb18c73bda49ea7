import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse

from tecnicos.auth import create_access_token, require_authenticated_user
from tecnicos.models import (
    AuthLoginRequest,
    AuthLoginResponse,
    AuthMeResponse,
    EmailRequest,
    MessageResponse,
    ResetPasswordRequest,
    ResetTokenStatus,
    User,
    UserRegisterRequest,
    VerificationStatus,
)
from tecnicos.services.account_service import account_service
from tecnicos.services.errors import StoreError, raise_store_http_error
from tecnicos.services.notifier import notifier
from tecnicos.services.user_store import user_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

GENERIC_RESEND_MESSAGE = "Si el correo existe, recibirás un enlace de verificación"
GENERIC_RESET_MESSAGE = "Si el correo existe, recibirás un enlace para restablecer tu contraseña"

VERIFIED_PAGE = """
<html>
  <body style="font-family: Arial, sans-serif; text-align: center; padding-top: 60px">
    <h1>¡Correo verificado!</h1>
    <p>Tu cuenta ha sido activada. Ya puedes cerrar esta ventana e iniciar sesión.</p>
  </body>
</html>
"""


@router.post("/register", response_model=User, status_code=201)
def register(payload: UserRegisterRequest):
    try:
        return account_service.register(payload)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.post("/login", response_model=AuthLoginResponse)
def login(payload: AuthLoginRequest):
    if not payload.email.strip() or not payload.password:
        raise HTTPException(status_code=400, detail="email and password are required")
    user = user_store.authenticate(payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token, expires_at = create_access_token(user_id=user.id)
    return AuthLoginResponse(access_token=token, user=user, expires_at=expires_at)


@router.get("/me", response_model=AuthMeResponse)
def me(user_id: str = Depends(require_authenticated_user)):
    user = user_store.get_user(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")
    return AuthMeResponse(user=user)


@router.get("/verify", response_class=HTMLResponse)
def verify_email(token: str = Query(default="")):
    try:
        user = user_store.verify_email(token)
    except StoreError as exc:
        raise_store_http_error(exc)
    notifier.send_welcome(user)
    return HTMLResponse(content=VERIFIED_PAGE)


@router.post("/resend-verification", response_model=MessageResponse)
def resend_verification(payload: EmailRequest):
    try:
        user, token = user_store.rotate_verification_token(payload.email)
    except StoreError as exc:
        raise_store_http_error(exc)
    if user and token:
        notifier.send_verification(user, token)
    return MessageResponse(message=GENERIC_RESEND_MESSAGE)


@router.get("/verification-status", response_model=VerificationStatus)
def verification_status(email: str = Query(...)):
    user = user_store.get_user_by_email(email)
    if not user:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    return VerificationStatus(email_verified=user.email_verified)


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(payload: EmailRequest):
    user, token = user_store.issue_reset_token(payload.email)
    if user and token:
        notifier.send_password_reset(user, token)
    else:
        logger.info("Password reset requested for unknown e-mail")
    return MessageResponse(message=GENERIC_RESET_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(payload: ResetPasswordRequest):
    try:
        user_store.reset_password(payload.token, payload.new_password)
    except StoreError as exc:
        raise_store_http_error(exc)
    return MessageResponse(message="Contraseña actualizada exitosamente")


@router.get("/verify-reset-token", response_model=ResetTokenStatus)
def verify_reset_token(token: str = Query(default="")):
    return ResetTokenStatus(valid=user_store.is_reset_token_valid(token))
