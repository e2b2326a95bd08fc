# backend/backoffice/auth.py
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from fastapi import Depends, Header, Request

from .config import settings
from .domain.approval_policy import has_permission
from .domain.statuses import ROLES
from .errors import AuthError, ForbiddenError


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str  # admin | director | vp | manager | agent | call_center
    email: Optional[str] = None


# -------------------------
# JWT helpers
# -------------------------
def _b64(x: bytes) -> str:
    return base64.urlsafe_b64encode(x).decode().rstrip("=")


def _ub64(s: str) -> bytes:
    s2 = s + "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s2.encode())


def _secret() -> bytes:
    if not settings.jwt_secret:
        raise AuthError("Token verification is not configured", code="INVALID_TOKEN")
    return settings.jwt_secret.encode()


def sign_token(*, user_id: int, role: str, email: Optional[str] = None, exp_minutes: Optional[int] = None) -> str:
    """
    Minimal HS256 JWT. Token issuance belongs to the login service; this is
    used by the seed CLI and tests.
    """
    minutes = int(exp_minutes if exp_minutes is not None else settings.jwt_exp_minutes)
    payload: dict[str, Any] = {
        "sub": str(int(user_id)),
        "role": role,
        "exp": int((datetime.utcnow() + timedelta(minutes=minutes)).timestamp()),
    }
    if email:
        payload["email"] = email

    header = {"alg": "HS256", "typ": "JWT"}
    header_b = _b64(json.dumps(header, separators=(",", ":")).encode())
    payload_b = _b64(json.dumps(payload, separators=(",", ":")).encode())
    msg = f"{header_b}.{payload_b}".encode()
    sig_b = _b64(hmac.new(_secret(), msg, hashlib.sha256).digest())
    return f"{header_b}.{payload_b}.{sig_b}"


def verify_token(token: str) -> dict[str, Any]:
    try:
        header_b, payload_b, sig_b = token.split(".", 2)
        header = json.loads(_ub64(header_b).decode())
        if not isinstance(header, dict) or header.get("alg") != settings.jwt_algorithm:
            raise AuthError("Unsupported token algorithm")

        msg = f"{header_b}.{payload_b}".encode()
        expected = hmac.new(_secret(), msg, hashlib.sha256).digest()
        if not hmac.compare_digest(_ub64(sig_b), expected):
            raise AuthError("Invalid token signature")

        payload = json.loads(_ub64(payload_b).decode())
        if not isinstance(payload, dict):
            raise AuthError("Invalid or expired token")

        exp = payload.get("exp")
        expires_at = int(exp) if exp is not None else None
    except AuthError:
        raise
    except (ValueError, TypeError, UnicodeDecodeError):
        raise AuthError("Invalid or expired token")

    if expires_at is not None and expires_at < int(datetime.utcnow().timestamp()):
        raise AuthError("Token expired")
    return payload


def _principal_from_claims(claims: dict[str, Any]) -> Principal:
    sub = str(claims.get("sub") or "").strip()
    role = str(claims.get("role") or "").strip().lower()
    if not sub.isdigit():
        raise AuthError("Token missing sub")
    if role not in ROLES:
        raise AuthError(f"Unknown role '{role}'")
    return Principal(user_id=int(sub), role=role, email=claims.get("email"))


# -------------------------
# get_principal
# -------------------------
def get_principal(
    request: Request,
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Principal:
    """
    Identity sources (in priority order):
      1) Authorization: Bearer <token>
      2) dev headers X-User-Id / X-User-Role (ONLY if settings.auth_mode == "dev")

    Claims are trusted as-is; user existence is not re-checked here.
    """
    if authorization and str(authorization).lower().startswith("bearer "):
        token = str(authorization).split(" ", 1)[1].strip()
        if not token:
            raise AuthError("Access token is required", code="TOKEN_REQUIRED")
        return _principal_from_claims(verify_token(token))

    if settings.auth_mode == "dev":
        uid = (request.headers.get(settings.dev_header_user_id) or "").strip()
        role = (request.headers.get(settings.dev_header_user_role) or "").strip().lower()
        if uid:
            return _principal_from_claims({"sub": uid, "role": role})

    raise AuthError("Access token is required", code="TOKEN_REQUIRED")


def require_permission(permission: str) -> Callable[..., Principal]:
    """Dependency factory backed by the central role-permission table."""

    def _dep(p: Principal = Depends(get_principal)) -> Principal:
        if not has_permission(p.role, permission):
            raise ForbiddenError(f"Role '{p.role}' lacks permission {permission}")
        return p

    return _dep
