from __future__ import annotations

import hmac
import logging
import secrets
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gatelink.errors import Unauthorized
from gatelink.registry import Clock, utcnow

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


class AdminTokenStore:
    """Токены администратора, выданные при входе и живущие ограниченное время."""

    def __init__(self, password: str, ttl: timedelta, clock: Clock = utcnow):
        if not password:
            raise ValueError("admin password must not be empty")
        self._password = password.encode("utf-8")
        self.ttl = ttl
        self.clock = clock
        self._tokens: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def login(self, password: str) -> Tuple[str, datetime]:
        if not hmac.compare_digest(password.encode("utf-8"), self._password):
            logger.warning("Rejected admin login")
            raise Unauthorized("Invalid password")

        token = secrets.token_urlsafe(32)
        expires_at = self.clock() + self.ttl
        with self._lock:
            self._tokens[token] = expires_at
        logger.info("Admin token issued")
        return token, expires_at

    def verify(self, token: Optional[str]) -> None:
        if not token:
            raise Unauthorized()
        now = self.clock()
        with self._lock:
            # expired tokens are dropped lazily
            self._tokens = {t: exp for t, exp in self._tokens.items() if exp >= now}
            expires_at = self._tokens.get(token)
        if expires_at is None:
            raise Unauthorized()

    def revoke(self, token: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)


def get_token_store(request: Request) -> AdminTokenStore:
    return request.app.state.admin_tokens


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tokens: AdminTokenStore = Depends(get_token_store),
) -> str:
    token = credentials.credentials if credentials else None
    tokens.verify(token)
    return token
