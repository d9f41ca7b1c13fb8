"""
Bearer token handling. A token carries the user's pennkey, which scopes
every box key in Redis.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Header

from errors import Unauthorized

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_TOKEN_SECRET", "placeholder-key")
JWT_ALGORITHM = "HS256"
TOKEN_TTL = timedelta(hours=24)


def issue_token(pennkey: str, secret: Optional[str] = None) -> str:
    now = datetime.now(timezone.utc)
    claims = {"pennkey": pennkey, "iat": now, "exp": now + TOKEN_TTL}
    return jwt.encode(claims, secret or JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_authorization(header_value: Optional[str], secret: Optional[str] = None) -> str:
    """Return the pennkey from an ``Authorization: Bearer <token>`` value."""
    if not header_value:
        raise Unauthorized("Missing authorization header")

    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise Unauthorized("Invalid authorization header format")

    try:
        claims = jwt.decode(parts[1], secret or JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected token: %s", exc)
        raise Unauthorized("Invalid or expired token")

    pennkey = claims.get("pennkey")
    if not isinstance(pennkey, str) or not pennkey:
        raise Unauthorized("Invalid or expired token")
    return pennkey


def require_pennkey(authorization: Optional[str] = Header(None)) -> str:
    return verify_authorization(authorization)
