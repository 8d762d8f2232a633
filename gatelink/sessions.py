import logging
import secrets
from datetime import timedelta
from typing import Optional

from gatelink.entities import REQUIRED_STEPS, SessionRecord
from gatelink.errors import LinkMissing, LinkNotFound, SessionExpired, SessionNotFound, StepsIncomplete
from gatelink.registry import Clock, LinkRegistry, utcnow
from gatelink.storage import Storage

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(minutes=30)
FIRST_STEP = 1


def generate_session_id() -> str:
    return secrets.token_hex(16)


class SessionStateMachine:
    """
    Сессия проверки: Active до истечения срока, затем Expired навсегда.
    Номер шага не сверяется с текущим: шаги можно проходить в любом порядке.
    """

    def __init__(
        self,
        storage: Storage,
        links: LinkRegistry,
        clock: Clock = utcnow,
        ttl: timedelta = SESSION_TTL,
    ):
        self.storage = storage
        self.links = links
        self.clock = clock
        self.ttl = ttl

    def init(self, link_id: str) -> SessionRecord:
        link = self.links.get(link_id)
        if link is None or not link.active:
            raise LinkNotFound()

        now = self.clock()
        session = self.storage.add_session(
            SessionRecord(
                id=generate_session_id(),
                link_id=link.id,
                step=FIRST_STEP,
                verified_steps=frozenset(),
                expires_at=now + self.ttl,
                created_at=now,
            )
        )
        self.links.record_view(link.id)
        logger.info("Session started", extra={"link_id": link.id, "session_id": session.id})
        return session

    def status(self, session_id: str) -> SessionRecord:
        """Возвращает сессию, если она существует и не истекла."""
        return self._active(self.storage.get_session(session_id))

    def advance(self, session_id: str, step: int) -> int:
        self.status(session_id)

        updated = self.storage.mark_step_verified(session_id, step)
        if updated is None:
            raise SessionNotFound()

        logger.info("Step verified", extra={"session_id": session_id, "step": step})
        return step + 1

    def resolve(self, session_id: str) -> str:
        session = self.status(session_id)
        if not session.is_complete:
            missing = sorted(REQUIRED_STEPS - session.verified_steps)
            raise StepsIncomplete(details={"missing_steps": missing})

        link = self.links.get(session.link_id)
        if link is None:
            raise LinkMissing()

        logger.info("Destination disclosed", extra={"link_id": link.id, "session_id": session_id})
        return link.original_url

    def _active(self, session: Optional[SessionRecord]) -> SessionRecord:
        if session is None:
            raise SessionNotFound()
        if session.is_expired(self.clock()):
            raise SessionExpired()
        return session
