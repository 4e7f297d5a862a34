"""In-app alert feed.

Clients poll `GET /alerts?after=N` and show new entries as toasts.
"""

import itertools
import logging
from collections import deque
from dataclasses import dataclass
from typing import Iterator, Optional

from .events import Alert

logger = logging.getLogger(__name__)


@dataclass
class FeedEntry:
    seq: int
    alert: Alert


class AlertFeed:
    """Bounded list of recent alerts with increasing sequence numbers.

    Feeds that share a counter never reuse a number, so a client that kept
    its `after` cursor across a feed being recreated still sees new alerts.
    """

    def __init__(self, maxlen: int = 200, counter: Optional[Iterator[int]] = None):
        self._entries: deque[FeedEntry] = deque(maxlen=maxlen)
        self._counter = counter if counter is not None else itertools.count(1)
        self._seq = 0

    @property
    def last_seq(self) -> int:
        return self._seq

    def emit(self, alert: Alert) -> bool:
        self._seq = next(self._counter)
        self._entries.append(FeedEntry(seq=self._seq, alert=alert))
        logger.info(f"Alert #{self._seq}: {alert.title} - {alert.body}")
        return True

    def since(self, after: int = 0) -> list[FeedEntry]:
        """Entries with a sequence number greater than `after`, oldest first."""
        return [entry for entry in self._entries if entry.seq > after]
