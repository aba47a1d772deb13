from datetime import timedelta

import jwt

from edutime.modules.auth.deps import NowUtc, _require_env


def CreateAccessToken(user_id: str, ttl_minutes: int | None = None) -> tuple[str, int]:
    secret = _require_env("JWT_SECRET_KEY")
    if ttl_minutes is None:
        ttl_minutes = int(_require_env("JWT_ACCESS_TTL_MINUTES"))
    now = NowUtc()
    expires = now + timedelta(minutes=ttl_minutes)
    payload = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int(expires.timestamp()),
    }
    token = jwt.encode(payload, secret, algorithm="HS256")
    return token, ttl_minutes * 60
