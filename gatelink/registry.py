import logging
import random
import string
from datetime import datetime, timezone
from typing import Callable, List, Optional

from gatelink.entities import AdRecord, LinkRecord
from gatelink.errors import Conflict
from gatelink.storage import Storage

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_link_id(length: int = 6) -> str:
    """Генерирует короткий идентификатор ссылки."""
    chars = string.ascii_letters + string.digits
    return ''.join(random.choice(chars) for _ in range(length))


class LinkRegistry:
    def __init__(self, storage: Storage, clock: Clock = utcnow):
        self.storage = storage
        self.clock = clock

    def create(self, original_url: str, title: str, link_id: Optional[str] = None) -> LinkRecord:
        """
        Регистрирует защищённую ссылку.
        Если `link_id` уже занят, поднимается Conflict.
        Если не передан, генерируется случайный свободный.
        """
        if link_id:
            link = self.storage.add_link(self._record(link_id, original_url, title))
        else:
            link = self._add_generated(original_url, title)
        logger.info("Link created", extra={"link_id": link.id})
        return link

    def _add_generated(self, original_url: str, title: str) -> LinkRecord:
        while True:
            link_id = generate_link_id()
            if self.storage.get_link(link_id):
                continue
            try:
                return self.storage.add_link(self._record(link_id, original_url, title))
            except Conflict:
                # taken between the check and the insert
                continue

    def _record(self, link_id: str, original_url: str, title: str) -> LinkRecord:
        return LinkRecord(id=link_id, original_url=original_url, title=title, created_at=self.clock())

    def get(self, link_id: str) -> Optional[LinkRecord]:
        return self.storage.get_link(link_id)

    def list(self) -> List[LinkRecord]:
        return self.storage.list_links()

    def delete(self, link_id: str) -> None:
        self.storage.delete_link(link_id)
        logger.info("Link deleted", extra={"link_id": link_id})

    def record_view(self, link_id: str) -> None:
        # a failed counter update must not break the visitor's flow
        try:
            self.storage.increment_link_views(link_id)
        except Exception:
            logger.exception("Could not record link view", extra={"link_id": link_id})


class AdRegistry:
    def __init__(self, storage: Storage):
        self.storage = storage

    def create(self, placement: str, content: str) -> AdRecord:
        ad = self.storage.add_ad(placement, content, active=True)
        logger.info("Ad created", extra={"ad_id": ad.id})
        return ad

    def list(self) -> List[AdRecord]:
        return self.storage.list_ads()

    def list_active(self) -> List[AdRecord]:
        return [ad for ad in self.storage.list_ads() if ad.active]

    def for_placement(self, placement: str) -> Optional[AdRecord]:
        """Первая активная реклама для слота."""
        for ad in self.list_active():
            if ad.placement == placement:
                return ad
        return None

    def delete(self, ad_id: int) -> None:
        self.storage.delete_ad(ad_id)
        logger.info("Ad deleted", extra={"ad_id": ad_id})
