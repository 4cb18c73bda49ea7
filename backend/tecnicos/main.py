import logging
import os

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from tecnicos.routers import auth, bookings, gamification, notifications, settings, technicians, users
from tecnicos.services.database import database
from tecnicos.services.email_sender import email_sender
from tecnicos.services.push_sender import push_sender

logger = logging.getLogger(__name__)

API_PREFIX = "/api"

app = FastAPI(title="Técnicos en RD API", version="0.1.0")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error for %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


cors_origins = _parse_csv_env("CORS_ORIGINS", "*")
allow_any_origin = len(cors_origins) == 1 and cors_origins[0] == "*"

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # Browsers reject wildcard CORS with credentials enabled.
    allow_credentials=not allow_any_origin,
    allow_methods=["*"],
    allow_headers=["*"],
)

trusted_hosts = _parse_csv_env("TRUSTED_HOSTS", "*")
if not (len(trusted_hosts) == 1 and trusted_hosts[0] == "*"):
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

for module in (auth, users, technicians, bookings, gamification, settings, notifications):
    app.include_router(module.router, prefix=API_PREFIX)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/ready")
def ready():
    with database.lock:
        with database.connect() as conn:
            conn.execute("SELECT 1").fetchone()
    return {
        "status": "ready",
        "database": database.db_path,
        "email_configured": email_sender.configured,
        "push_configured": push_sender.configured,
    }
