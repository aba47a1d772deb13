import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone

import jwt
from fastapi import HTTPException, Request, status

logger = logging.getLogger("auth")


def _require_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(f"Missing required env var: {name}")
    return value


def _decode_access_token(token: str) -> dict:
    secret = _require_env("JWT_SECRET_KEY")
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


@dataclass(frozen=True)
class CallerContext:
    """Verified principal making the request."""

    Id: str


def RequireAuthenticated(request: Request) -> CallerContext:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    token = auth_header.replace("Bearer ", "", 1).strip()
    payload = _decode_access_token(token)
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return CallerContext(Id=user_id)


def NowUtc() -> datetime:
    return datetime.now(tz=timezone.utc)
