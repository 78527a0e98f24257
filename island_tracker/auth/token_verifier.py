# island_tracker/auth/token_verifier.py
import datetime as dt
import logging
from typing import Optional

import jwt

from island_tracker.config.settings import settings

logger = logging.getLogger(__name__)

_ISS = "island-tracker"


def issue_access_token(user_id: str, minutes: Optional[int] = None) -> str:
    """
    Signs an access token for `user_id`.
    Credential checks (password, one-time code) happen before this is called
    and are not part of this service.
    """
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": user_id,
        "iss": _ISS,
        "iat": now,
        "exp": now + dt.timedelta(minutes=minutes or settings.access_token_minutes),
        "token_use": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str):
    """
    Access token check:
    - signature / iss / exp
    - token_use == "access"
    Returns the payload, or None when the token is not acceptable.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=_ISS,
        )
    except jwt.PyJWTError as e:
        logger.info("[auth] rejected token: %s", e)
        return None
    if payload.get("token_use") != "access":
        return None
    return payload
