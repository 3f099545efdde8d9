"""
Session cache: at most one pending password per browser tab.

Entries live in memory only, for FILL_TTL_SECONDS. Putting a new entry for
a tab replaces the old one; claiming an expired entry deletes it.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from . import config
from .errors import FillExpired, NothingToFill

logger = logging.getLogger(__name__)


@dataclass
class SessionEntry:
    domain: str
    url: str
    password: str
    user: str
    trust: str
    expires_at: float

    def __repr__(self) -> str:
        # Keeps the password out of logs and tracebacks
        return (f"SessionEntry(domain={self.domain!r}, url={self.url!r}, "
                f"trust={self.trust!r}, expires_at={self.expires_at!r})")


class SessionCache:
    """Tab id -> SessionEntry. Single writer: the broker."""

    def __init__(self, ttl: float = config.FILL_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[int, SessionEntry] = {}

    def put(self, tab_id: int, domain: str, url: str, password: str, user: str, trust: str,
            ttl: Optional[float] = None) -> SessionEntry:
        entry = SessionEntry(
            domain=domain,
            url=url,
            password=password,
            user=user or "",
            trust=trust,
            expires_at=self.clock() + (self.ttl if ttl is None else ttl),
        )
        self._entries[tab_id] = entry
        return entry

    def get(self, tab_id: int) -> Optional[SessionEntry]:
        return self._entries.get(tab_id)

    def claim(self, tab_id: int) -> SessionEntry:
        """
        Return the live entry for a tab.

        Raises:
            NothingToFill: no entry
            FillExpired: entry past its deadline (and now removed)
        """
        entry = self._entries.get(tab_id)
        if entry is None:
            raise NothingToFill("Nothing to fill (expired/cleared)")
        if self.clock() > entry.expires_at:
            del self._entries[tab_id]
            logger.warning("Discarded expired entry for tab %s", tab_id)
            raise FillExpired("Expired. Please generate again.")
        return entry

    def discard(self, tab_id: int) -> bool:
        return self._entries.pop(tab_id, None) is not None

    def purge_expired(self) -> int:
        now = self.clock()
        stale = [tab_id for tab_id, e in self._entries.items() if now > e.expires_at]
        for tab_id in stale:
            del self._entries[tab_id]
        return len(stale)

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
