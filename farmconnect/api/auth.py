# farmconnect/api/auth.py
# Bearer JWT helpers shared by every router.

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from farmconnect.app_config import DEFAULT_JWT_SECRET

# --- one HTTPBearer scheme for all routers (docs will show a lock) ---
bearer = HTTPBearer(scheme_name="AccessToken", bearerFormat="JWT", auto_error=False)


def _secret(request: Request = None) -> str:
    config = getattr(getattr(request, "app", None), "state", None)
    config = getattr(config, "config", None) or {}
    return config.get("JWT_SECRET_KEY") or os.environ.get("JWT_SECRET_KEY", DEFAULT_JWT_SECRET)


def jwt_issue(identity: Dict[str, Any], secret: str, hours: int = 6) -> str:
    """Access token with string sub and full identity in 'user'."""
    now = datetime.now(tz=timezone.utc)
    return jwt.encode(
        {"sub": str(identity.get("userId", "")), "user": identity, "type": "access",
         "iat": int(now.timestamp()), "exp": int((now + timedelta(hours=hours)).timestamp())},
        secret, algorithm="HS256"
    )


def _jwt_decode(token: str, secret: str) -> Dict[str, Any]:
    try:
        # allow legacy tokens with dict sub
        return jwt.decode(token, secret, algorithms=["HS256"], options={"verify_sub": False})
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def auth_identity(request: Request, credentials: HTTPAuthorizationCredentials = Security(bearer)) -> Dict[str, Any]:
    if not credentials or (credentials.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    payload = _jwt_decode(credentials.credentials.strip(), _secret(request))
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Not an access token")

    # prefer identity in 'user'; fallback to legacy 'sub'
    identity = payload.get("user")
    if not identity and isinstance(payload.get("sub"), dict):
        identity = payload["sub"]
    if not identity and isinstance(payload.get("sub"), str):
        identity = {"userId": payload["sub"]}

    if not identity:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return identity


def _require_role(identity: Dict[str, Any], role: str) -> str:
    if (identity.get("role") or "").lower() != role:
        raise HTTPException(status_code=403, detail=f"Only {role}s can access this endpoint")
    uid = identity.get("userId")
    if not uid:
        raise HTTPException(status_code=401, detail="Missing userId in token")
    return uid


def require_farmer(identity: Dict[str, Any]) -> str:
    """Ensure role is farmer; return userId."""
    return _require_role(identity, "farmer")


def require_buyer(identity: Dict[str, Any]) -> str:
    return _require_role(identity, "buyer")
