from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet

# steps that must be verified before the destination URL is disclosed
REQUIRED_STEPS: FrozenSet[int] = frozenset({2, 3})

# the next-step pointer (step + 1) must still fit a 32-bit INTEGER column
MAX_STEP = 2**31 - 2


@dataclass(frozen=True)
class LinkRecord:
    id: str
    original_url: str
    title: str
    created_at: datetime
    views: int = 0
    active: bool = True


@dataclass(frozen=True)
class SessionRecord:
    id: str
    link_id: str
    expires_at: datetime
    created_at: datetime
    step: int = 1
    verified_steps: FrozenSet[int] = field(default_factory=frozenset)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def is_complete(self) -> bool:
        return REQUIRED_STEPS <= self.verified_steps


@dataclass(frozen=True)
class AdRecord:
    id: int
    placement: str
    content: str
    active: bool = True
