from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from werkzeug.security import check_password_hash

from ..common.validators import require_non_empty
from ..core.constants import DEFAULT_TOKEN_TTL_MINUTES
from ..core.exceptions import AuthenticationError
from .model import Guard, IssuedToken
from .repository import GuardRepository

logger = logging.getLogger(__name__)


class AuthService:
    """Use case: guard login and bearer token verification."""

    def __init__(
        self,
        guards: GuardRepository,
        *,
        secret_key: str,
        algorithm: str = "HS256",
        ttl_minutes: int = DEFAULT_TOKEN_TTL_MINUTES,
    ):
        self._guards = guards
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._ttl = timedelta(minutes=int(ttl_minutes))

    def authenticate(self, username: str, password: str) -> IssuedToken:
        username = require_non_empty(username, "Username")
        guard = self._guards.get_by_username(username)
        if not guard or not guard.is_active:
            logger.info("login rejected username=%s", username)
            raise AuthenticationError("Wrong username or password")

        try:
            ok = check_password_hash(guard.password_hash, password or "")
        except ValueError:
            # placeholder or corrupted hash
            ok = False

        if not ok:
            logger.info("login rejected username=%s", username)
            raise AuthenticationError("Wrong username or password")

        logger.info("login guard=%s site=%s", guard.guard_id, guard.site_id)
        return self.issue_token(guard)

    def issue_token(self, guard: Guard, *, now: Optional[datetime] = None) -> IssuedToken:
        now = now or datetime.now(timezone.utc)
        claims = {
            "sub": str(guard.guard_id),
            "site": guard.site_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        token = jwt.encode(claims, self._secret_key, algorithm=self._algorithm)
        return IssuedToken(access_token=token, expires_in=int(self._ttl.total_seconds()), guard=guard)

    def verify(self, token: Optional[str]) -> Guard:
        if not token:
            raise AuthenticationError("Missing bearer token")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            raise AuthenticationError("Invalid or expired token")

        sub = payload.get("sub")
        if sub is None or not str(sub).isdigit():
            raise AuthenticationError("Invalid token subject")

        guard = self._guards.get_by_id(int(sub))
        if not guard or not guard.is_active:
            raise AuthenticationError("Guard account is disabled")
        return guard
