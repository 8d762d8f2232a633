from __future__ import annotations

import itertools
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from gatelink import models
from gatelink.database import Base, make_session_factory
from gatelink.entities import AdRecord, LinkRecord, SessionRecord
from gatelink.errors import Conflict

logger = logging.getLogger(__name__)


class Storage(Protocol):
    def get_link(self, link_id: str) -> Optional[LinkRecord]: ...

    def list_links(self) -> List[LinkRecord]: ...

    def add_link(self, link: LinkRecord) -> LinkRecord:
        """Сохраняет ссылку; если id занят, поднимается Conflict."""
        ...

    def delete_link(self, link_id: str) -> None: ...

    def increment_link_views(self, link_id: str) -> None: ...

    def add_session(self, session: SessionRecord) -> SessionRecord: ...

    def get_session(self, session_id: str) -> Optional[SessionRecord]: ...

    def mark_step_verified(self, session_id: str, step: int) -> Optional[SessionRecord]:
        """
        Атомарно добавляет `step` в пройденные шаги и переводит сессию на `step + 1`.
        Возвращает обновленную сессию или None, если ее нет.
        """
        ...

    def add_ad(self, placement: str, content: str, active: bool = True) -> AdRecord: ...

    def list_ads(self) -> List[AdRecord]: ...

    def delete_ad(self, ad_id: int) -> None: ...


class KeyedLock:
    """Отдельная блокировка на каждый ключ."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._waiters[key] -= 1
                if not self._waiters[key]:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class MemoryStorage:
    def __init__(self):
        self._links: Dict[str, LinkRecord] = {}
        self._sessions: Dict[str, SessionRecord] = {}
        self._ads: Dict[int, AdRecord] = {}
        self._ad_ids = itertools.count(1)
        self._ads_lock = threading.Lock()
        self._locks = KeyedLock()

    # Links

    def get_link(self, link_id: str) -> Optional[LinkRecord]:
        return self._links.get(link_id)

    def list_links(self) -> List[LinkRecord]:
        return list(self._links.values())

    def add_link(self, link: LinkRecord) -> LinkRecord:
        with self._locks.hold(f"link:{link.id}"):
            if link.id in self._links:
                raise Conflict(f"Link '{link.id}' already exists")
            self._links[link.id] = link
        return link

    def delete_link(self, link_id: str) -> None:
        with self._locks.hold(f"link:{link_id}"):
            self._links.pop(link_id, None)

    def increment_link_views(self, link_id: str) -> None:
        with self._locks.hold(f"link:{link_id}"):
            link = self._links.get(link_id)
            if link is not None:
                self._links[link_id] = replace(link, views=link.views + 1)

    # Sessions

    def add_session(self, session: SessionRecord) -> SessionRecord:
        self._sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def mark_step_verified(self, session_id: str, step: int) -> Optional[SessionRecord]:
        with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if session is None:
                return None
            updated = replace(
                session,
                step=step + 1,
                verified_steps=session.verified_steps | {step},
            )
            self._sessions[session_id] = updated
        return updated

    # Ads

    def add_ad(self, placement: str, content: str, active: bool = True) -> AdRecord:
        with self._ads_lock:
            ad = AdRecord(id=next(self._ad_ids), placement=placement, content=content, active=active)
            self._ads[ad.id] = ad
        return ad

    def list_ads(self) -> List[AdRecord]:
        with self._ads_lock:
            return sorted(self._ads.values(), key=lambda ad: ad.id)

    def delete_ad(self, ad_id: int) -> None:
        with self._ads_lock:
            self._ads.pop(ad_id, None)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _link_record(row: models.Link) -> LinkRecord:
    return LinkRecord(
        id=row.id,
        original_url=row.original_url,
        title=row.title,
        views=row.views,
        active=row.active,
        created_at=_as_utc(row.created_at),
    )


def _session_record(row: models.VerificationSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        link_id=row.link_id,
        step=row.step,
        verified_steps=frozenset(row.verified_steps or ()),
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
    )


def _ad_record(row: models.Ad) -> AdRecord:
    return AdRecord(id=row.id, placement=row.placement, content=row.content, active=row.active)


class SqlStorage:
    def __init__(self, engine: Engine, session_factory: Optional[sessionmaker] = None):
        self.engine = engine
        self._session_factory = session_factory or make_session_factory(engine)
        # SQLite ignores FOR UPDATE, so merges in this process are serialized here too
        self._locks = KeyedLock()
        Base.metadata.create_all(bind=engine)
        logger.info("SQL storage ready", extra={"backend": engine.url.get_backend_name()})

    # Links

    def get_link(self, link_id: str) -> Optional[LinkRecord]:
        with self._session_factory() as db:
            row = db.get(models.Link, link_id)
            return _link_record(row) if row else None

    def list_links(self) -> List[LinkRecord]:
        with self._session_factory() as db:
            rows = db.query(models.Link).order_by(models.Link.created_at).all()
            return [_link_record(row) for row in rows]

    def add_link(self, link: LinkRecord) -> LinkRecord:
        db_link = models.Link(
            id=link.id,
            original_url=link.original_url,
            title=link.title,
            views=link.views,
            active=link.active,
            created_at=link.created_at,
        )
        try:
            with self._session_factory.begin() as db:
                db.add(db_link)
        except IntegrityError as exc:
            raise Conflict(f"Link '{link.id}' already exists") from exc
        return link

    def delete_link(self, link_id: str) -> None:
        with self._session_factory.begin() as db:
            db.query(models.Link).filter(models.Link.id == link_id).delete()

    def increment_link_views(self, link_id: str) -> None:
        with self._session_factory.begin() as db:
            db.query(models.Link).filter(models.Link.id == link_id).update(
                {models.Link.views: models.Link.views + 1}, synchronize_session=False
            )

    # Sessions

    def add_session(self, session: SessionRecord) -> SessionRecord:
        with self._session_factory.begin() as db:
            db.add(
                models.VerificationSession(
                    id=session.id,
                    link_id=session.link_id,
                    step=session.step,
                    verified_steps=sorted(session.verified_steps),
                    expires_at=session.expires_at,
                    created_at=session.created_at,
                )
            )
        return session

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._session_factory() as db:
            row = db.get(models.VerificationSession, session_id)
            return _session_record(row) if row else None

    def mark_step_verified(self, session_id: str, step: int) -> Optional[SessionRecord]:
        with self._locks.hold(session_id), self._session_factory.begin() as db:
            row = (
                db.query(models.VerificationSession)
                .filter(models.VerificationSession.id == session_id)
                .with_for_update()
                .first()
            )
            if row is None:
                return None
            row.verified_steps = sorted(set(row.verified_steps or ()) | {step})
            row.step = step + 1
            db.flush()
            return _session_record(row)

    # Ads

    def add_ad(self, placement: str, content: str, active: bool = True) -> AdRecord:
        with self._session_factory.begin() as db:
            row = models.Ad(placement=placement, content=content, active=active)
            db.add(row)
            db.flush()
            return _ad_record(row)

    def list_ads(self) -> List[AdRecord]:
        with self._session_factory() as db:
            return [_ad_record(row) for row in db.query(models.Ad).order_by(models.Ad.id).all()]

    def delete_ad(self, ad_id: int) -> None:
        with self._session_factory.begin() as db:
            db.query(models.Ad).filter(models.Ad.id == ad_id).delete()
