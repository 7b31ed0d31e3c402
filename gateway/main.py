"""FastAPI application entry point for the verification gateway."""
from __future__ import annotations

import logging
from typing import Optional

import psycopg2
from dotenv import load_dotenv
from fastapi import Cookie, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError, jwt
from pydantic import BaseModel

load_dotenv()

from . import app_context  # noqa: E402
from .app.routes.admin import router as admin_router  # noqa: E402
from .app.routes.catalog import router as catalog_router  # noqa: E402
from .app.routes.payments import router as payments_router  # noqa: E402
from .app.routes.usage import router as usage_router  # noqa: E402
from .app.routes.verification import router as verification_router  # noqa: E402
from .config import get_gateway_config  # noqa: E402

JWT_ALGORITHM = "HS256"
ADMIN_ROLE = "admin"

CONFIG = get_gateway_config()

logger = logging.getLogger("gateway.auth")


class SessionUser(BaseModel):
    id: str
    role: str = "user"


def get_conn():
    return psycopg2.connect(**CONFIG.database.as_connect_kwargs())


def resolve_user_from_session_token(session_token: str) -> Optional[SessionUser]:
    try:
        payload = jwt.decode(session_token, CONFIG.jwt_secret_key, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    if subject is None:
        return None
    return SessionUser(id=str(subject), role=str(payload.get("role") or "user"))


def get_current_user(session_token: Optional[str] = Cookie(None, alias=CONFIG.session_cookie_name)) -> SessionUser:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = resolve_user_from_session_token(session_token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def get_current_admin(session_token: Optional[str] = Cookie(None, alias=CONFIG.session_cookie_name)) -> SessionUser:
    user = get_current_user(session_token=session_token)
    if user.role != ADMIN_ROLE:
        logger.warning("Admin route rejected for user=%s role=%s", user.id, user.role)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


app_context.configure(
    get_conn=get_conn,
    get_current_user=get_current_user,
    get_current_admin=get_current_admin,
)

app = FastAPI(title="Verification Gateway API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(CONFIG.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(verification_router)
app.include_router(usage_router)
app.include_router(payments_router)
app.include_router(catalog_router)
app.include_router(admin_router)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
