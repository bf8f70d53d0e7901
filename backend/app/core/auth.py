import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

import jwt
from fastapi import Depends, Header, HTTPException
from jwt import PyJWKClient

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

ALLOWED_ROLES = {"USER", "AGENT", "ADMIN"}
STAFF_ROLES = ("ADMIN", "AGENT")

_jwks_client: Optional[PyJWKClient] = None
_jwks_lock = threading.Lock()


def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    global _jwks_client
    with _jwks_lock:
        if _jwks_client is None:
            _jwks_client = PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)
        return _jwks_client


@dataclass
class CurrentUser:
    id: str
    role: str
    email: Optional[str] = None


def _extract_role(payload: dict) -> Optional[str]:
    # Role comes only from app_metadata; user_metadata is editable by the user in Supabase Auth.
    raw = (payload.get("app_metadata") or {}).get("role")
    if raw is None:
        return None
    role = str(raw).strip().upper()
    return role if role in ALLOWED_ROLES else None


def _decode(token: str, key: Any, algorithm: str, settings: Settings) -> Optional[dict]:
    audience = (settings.supabase_jwt_audience or "").strip()
    try:
        return jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            audience=audience or None,
            options={"verify_aud": bool(audience)},
        )
    except jwt.InvalidTokenError as exc:
        logger.debug("%s verification failed: %s", algorithm, exc)
        return None


def _verify_token(token: str, settings: Settings) -> Optional[dict]:
    try:
        alg = jwt.get_unverified_header(token).get("alg", "")
    except jwt.DecodeError:
        return None

    if alg == "HS256":
        if not settings.supabase_jwt_secret:
            return None
        return _decode(token, settings.supabase_jwt_secret, "HS256", settings)

    supabase_url = (settings.supabase_url or "").rstrip("/")
    if alg != "ES256" or not supabase_url:
        return None
    try:
        signing_key = _get_jwks_client(f"{supabase_url}/auth/v1/.well-known/jwks.json").get_signing_key_from_jwt(token)
    except jwt.PyJWKClientError as exc:
        logger.warning("JWKS lookup failed: %s", exc)
        return None
    return _decode(token, signing_key.key, "ES256", settings)


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing bearer token")

    settings = get_settings()
    if not settings.supabase_jwt_secret and not settings.supabase_url:
        raise HTTPException(500, "SUPABASE_JWT_SECRET is not configured")

    payload = _verify_token(authorization.split(" ", 1)[1].strip(), settings)
    if payload is None or not payload.get("sub"):
        raise HTTPException(401, "Invalid token")

    role = _extract_role(payload)
    if not role:
        raise HTTPException(403, "Missing role")

    return CurrentUser(id=payload["sub"], role=role, email=payload.get("email"))


def require_roles(*roles: str):
    def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(403, "Forbidden")
        return user

    return _dependency
