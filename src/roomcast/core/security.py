"""Bearer token issuance and verification built on JWT."""
from __future__ import annotations

import hmac
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from roomcast.core.settings import settings
from roomcast.services.errors import UnauthorizedError


def create_access_token(nickname: str) -> str:
    """Issue a signed access token carrying ``nickname``."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode: dict[str, object] = {"nickname": nickname, "exp": expire}
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str) -> str:
    """Return the nickname carried by ``token``.

    Raises:
        UnauthorizedError: If the token is malformed, expired, badly signed or
            carries no nickname.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as err:
        raise UnauthorizedError("Unauthorized") from err

    nickname = str(payload.get("nickname") or "").strip()
    if not nickname:
        raise UnauthorizedError("Unauthorized")
    return nickname


def verify_password(candidate: str) -> bool:
    """Compare a login password against the configured shared password."""
    return hmac.compare_digest(candidate.encode("utf-8"), settings.login_password.encode("utf-8"))
