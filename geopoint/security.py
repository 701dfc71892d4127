from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from geopoint.db import get_db
from geopoint.errors import ApiError, forbidden
from geopoint.models import JobTitle, UserRole
from geopoint.services.directory import get_user
from geopoint.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _invalid_token(message: str) -> ApiError:
    return ApiError(status_code=401, code="INVALID_TOKEN", message=message)


def create_access_token(user_id: int, *, expires_delta: timedelta | None = None) -> tuple[str, int]:
    settings = get_settings()
    now = _utcnow()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_minutes)
    claims = {
        "sub": str(user_id),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, int(lifetime.total_seconds())


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise _invalid_token("Token is invalid.") from exc

    if payload.get("typ") != "access":
        raise _invalid_token("Token type is invalid.")
    return payload


def get_caller_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> int:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _invalid_token("Missing bearer token.")

    payload = decode_token(credentials.credentials)
    subject = str(payload.get("sub") or "")
    if not subject.isdigit():
        raise _invalid_token("Token subject is invalid.")

    caller_id = int(subject)
    request.state.actor_id = caller_id
    return caller_id


def require_admin(
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> int:
    caller = get_user(db, caller_id)
    if caller is None or caller.role != UserRole.ADMIN:
        raise forbidden("Insufficient permissions.")
    return caller_id


def ensure_can_view_user(db: Session, *, caller_id: int, user_id: int) -> None:
    if caller_id == user_id:
        return
    caller = get_user(db, caller_id)
    if caller is None:
        raise forbidden("Insufficient permissions.")
    if caller.role == UserRole.ADMIN or caller.job_title == JobTitle.HR_ANALYST:
        return
    if caller.job_title == JobTitle.MANAGER:
        target = get_user(db, user_id)
        if target is not None and target.department == caller.department:
            return
    raise forbidden("Insufficient permissions.")
