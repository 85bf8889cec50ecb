from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from novaera.core.database import get_db
from novaera.core.settings import settings
from novaera.models.profile import Profile, UserRole
from novaera.services.cache import TTLCache


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"


def _normalize_email(value: str) -> str:
    return str(value or "").strip().lower()


def _is_admin_email(email: str) -> bool:
    normalized = _normalize_email(email)
    if not normalized:
        return False
    return normalized in (settings.admin_emails or set())


def _require_supabase_config() -> str:
    if not settings.supabase_url:
        raise HTTPException(status_code=500, detail="SUPABASE_URL is not configured")
    return settings.supabase_url


def _decode_supabase_jwt(token: str) -> dict[str, Any]:
    import jwt

    supabase_url = _require_supabase_config().rstrip("/")
    jwks_url = f"{supabase_url}/auth/v1/.well-known/jwks.json"
    issuer = settings.supabase_jwt_issuer or f"{supabase_url}/auth/v1"
    audience = settings.supabase_jwt_audience or "authenticated"

    try:
        jwks_client = jwt.PyJWKClient(jwks_url)
        signing_key = jwks_client.get_signing_key_from_jwt(token).key
        payload = jwt.decode(
            token,
            signing_key,
            algorithms=["ES256", "RS256"],
            audience=audience,
            issuer=issuer,
            options={"require": ["exp", "sub"]},
        )
        return dict(payload)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid bearer token")
    except Exception:
        logger.exception("security.jwks.error")
        raise HTTPException(status_code=401, detail="Invalid bearer token")


_USER_ROLE_CACHE = TTLCache(max_items=20000, ttl_s=60)


def _stored_role(db: Session, user_id: str) -> str | None:
    cache_key = f"user_role:{user_id}"
    cached = _USER_ROLE_CACHE.get(cache_key)
    if isinstance(cached, str):
        return cached or None
    rows = db.query(UserRole.role).filter(UserRole.user_id == user_id).all()
    roles = sorted({str(r[0] or "").strip().lower() for r in rows} - {""})
    role = "admin" if "admin" in roles else (roles[0] if roles else "")
    _USER_ROLE_CACHE.set(cache_key, role)
    return role or None


def forget_cached_role(user_id: str) -> None:
    _USER_ROLE_CACHE.pop(f"user_role:{user_id}")


def _decide_role(
    *,
    email_is_admin: bool,
    claim_is_admin: bool,
    db_role: str | None,
) -> tuple[str, str]:
    dbr = str(db_role or "").strip().lower()
    if dbr == "admin":
        return ("admin", "db_user_roles")
    if email_is_admin:
        return ("admin", "admin_emails")
    if claim_is_admin:
        return ("admin", "jwt_claim")
    if dbr:
        return (dbr, "db_user_roles")
    return ("user", "default")


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    token = _get_bearer_token(request)

    claims = _decode_supabase_jwt(token)
    user_id = str(claims.get("sub") or "").strip()
    email = str(claims.get("email") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    app_meta = claims.get("app_metadata") or {}
    if not isinstance(app_meta, dict):
        app_meta = {}
    claim_is_admin = str(app_meta.get("role") or "").strip().lower() == "admin"

    user_meta = claims.get("user_metadata") or {}
    if not isinstance(user_meta, dict):
        user_meta = {}
    full_name = str(user_meta.get("full_name") or "").strip()

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        profile = Profile(id=user_id, email=_normalize_email(email), full_name=full_name or None)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        logger.info("security.profile.created user_id=%s", user_id)
    elif email and (profile.email or "") != _normalize_email(email):
        profile.email = _normalize_email(email)
        try:
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("security.profile.update_failed user_id=%s", user_id)

    role, reason = _decide_role(
        email_is_admin=_is_admin_email(email),
        claim_is_admin=claim_is_admin,
        db_role=_stored_role(db, user_id),
    )
    logger.debug("security.role user_id=%s role=%s reason=%s", user_id, role, reason)
    return CurrentUser(id=user_id, email=profile.email or "", role=role)


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser | None:
    if not (request.headers.get("authorization") or "").strip():
        return None
    return get_current_user(request, db)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
