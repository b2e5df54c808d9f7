from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from smartlink.core.database import get_db
from smartlink.core.settings import settings
from smartlink.models.user import User


@dataclass(frozen=True)
class CurrentUser:
    id: int
    email: str
    role: str


def _require_jwt_secret() -> str:
    secret = (settings.jwt_secret or "").strip()
    if not secret:
        raise HTTPException(status_code=500, detail="JWT_SECRET is not configured")
    return secret


def _decode_jwt(token: str) -> dict[str, Any]:
    import jwt

    secret = _require_jwt_secret()
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


def _decide_role(*, id_is_admin: bool, claim_is_admin: bool, db_role: str | None) -> tuple[str, str]:
    dbr = str(db_role or "").strip().lower()
    if dbr == "admin":
        return ("admin", "db_user")
    if id_is_admin:
        return ("admin", "admin_user_ids")
    if claim_is_admin:
        return ("admin", "jwt_claim")
    if dbr:
        return (dbr, "db_user")
    return ("user", "default")


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def get_request_meta(request: Request) -> dict[str, str | None]:
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    ip = forwarded or (request.client.host if request.client else None)
    return {"ip_address": ip or None, "user_agent": request.headers.get("user-agent")}


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    token = _get_bearer_token(request)
    claims = _decode_jwt(token)
    try:
        user_id = int(str(claims.get("sub") or "").strip())
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")

    claim_is_admin = str(claims.get("role") or "").strip().lower() == "admin"
    role, _reason = _decide_role(
        id_is_admin=str(user.id) in (settings.admin_user_ids or set()),
        claim_is_admin=claim_is_admin,
        db_role=user.role,
    )
    return CurrentUser(id=user.id, email=user.email or "", role=role)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if (user.role or "").lower() != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
