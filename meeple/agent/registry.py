"""Conversation id -> agent thread id mapping."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    thread_id: str
    expires_at: Optional[float]


class ConversationRegistry:
    """
    Maps caller-supplied conversation ids to agent service thread ids.

    Safe to share between concurrent requests. Two requests racing on the
    same conversation id may both create a thread; the last bind wins.

    Entries live for the process lifetime unless ``ttl_seconds`` is set, in
    which case they expire after that long without being resolved.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def resolve(self, external_id: Optional[str]) -> Optional[str]:
        """Return the thread id bound to ``external_id``, or None if unknown."""
        if not external_id:
            return None

        with self._lock:
            entry = self._entries.get(external_id)
            if entry is None:
                return None
            now = self._clock()
            if entry.expires_at is not None:
                if entry.expires_at <= now:
                    del self._entries[external_id]
                    return None
                # Sliding expiry: every use keeps the conversation alive
                entry.expires_at = now + self.ttl_seconds
            return entry.thread_id

    def bind(self, external_id: Optional[str], thread_id: str) -> None:
        if not external_id or not thread_id:
            return

        expires_at = self._clock() + self.ttl_seconds if self.ttl_seconds else None
        with self._lock:
            self._entries[external_id] = _Entry(thread_id=thread_id, expires_at=expires_at)
        logger.debug(f"[Registry] {external_id} -> {thread_id}")

    def remove(self, external_id: str) -> None:
        with self._lock:
            self._entries.pop(external_id, None)

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        if not self.ttl_seconds:
            return 0
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"[Registry] Purged {len(expired)} expired conversations, {len(self)} active")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
