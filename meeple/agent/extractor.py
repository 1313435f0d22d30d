"""Turn a free-text question into structured QueryCriteria via the agent."""

import json
import logging
import re
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from meeple.agent.runner import AgentRunner, ENVELOPE_KEYS
from meeple.data.models import AgentMessage, QueryCriteria

logger = logging.getLogger(__name__)


EXTRACTION_INSTRUCTION = """You are a board game criteria extraction assistant.
Read the user's question and reply with ONLY a JSON object, no prose, using these optional fields:
  name (string), minPlayers (int), maxPlayers (int), minPlaytime (int, minutes), maxPlaytime (int, minutes),
  mechanics (list of strings), categories (list of strings), maxWeight (number), averageRating (number), ageRequirement (int)
Rules:
- A range such as "2-4 players" or "30 to 60 minutes" sets both the min and the max.
- A single value such as "for 3 players" sets min and max to the same value.
- Ratings are on a 1-10 scale (convert "4 stars out of 5" to 8). averageRating is the minimum rating wanted.
- Complexity weight is on a 1-5 scale ("light" ~2, "medium" ~3, "heavy" 4-5). maxWeight is the heaviest acceptable.
- If the user names a specific game, set name to that title in Title Case.
- Omit every field the question does not mention. Reply {} when nothing applies."""

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_criteria(raw: Optional[str]) -> QueryCriteria:
    """
    Parse the extraction assistant's reply.

    Tolerates code fences, leading/trailing prose and a JSON envelope around
    the criteria object. Returns empty criteria when nothing can be parsed.
    """
    payload = _load_object(raw)
    if payload is None:
        return QueryCriteria()

    for key in ENVELOPE_KEYS:
        inner = payload.get(key)
        if isinstance(inner, str):
            unwrapped = _load_object(inner)
            if unwrapped is not None:
                payload = unwrapped
                break
        elif isinstance(inner, dict):
            payload = inner
            break

    try:
        return QueryCriteria.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"[Extractor] Criteria failed validation: {e}")
        return QueryCriteria()


def _load_object(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw or not raw.strip():
        return None

    text = raw.strip()
    fenced = _FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        payload = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


class CriteriaCache:
    """
    Small in-process cache of extraction results keyed by normalized query.

    Bump VERSION whenever the extraction instruction or criteria fields change.
    """

    VERSION = "v1"

    def __init__(
        self,
        ttl_seconds: float = 600,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, QueryCriteria]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @classmethod
    def normalize(cls, query: str) -> str:
        text = re.sub(r"\s+", " ", query.strip().lower())
        return f"{cls.VERSION}:{text.rstrip('?!. ')}"

    def get(self, query: str) -> Optional[QueryCriteria]:
        key = self.normalize(query)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry[0] <= self._clock():
                self._entries.pop(key, None)
                self.misses += 1
                return None
            self.hits += 1
            return entry[1].model_copy(deep=True)

    def set(self, query: str, criteria: QueryCriteria) -> None:
        if criteria.is_empty():
            return
        key = self.normalize(query)
        with self._lock:
            if len(self._entries) >= self.max_entries and key not in self._entries:
                # Evict the entry closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
            self._entries[key] = (self._clock() + self.ttl_seconds, criteria.model_copy(deep=True))


class CriteriaExtractor:
    """Runs the agent in extraction mode; never retries and never raises on bad output."""

    def __init__(self, runner: AgentRunner, cache: Optional[CriteriaCache] = None):
        self.runner = runner
        self.cache = cache

    def extract(self, user_text: str, conversation_hint: Optional[str] = None) -> QueryCriteria:
        """
        Extract search criteria from the user's question.

        Args:
            user_text: The user's question
            conversation_hint: Caller conversation id; extraction then reuses
                a dedicated thread for that conversation

        Returns:
            QueryCriteria (all fields empty when nothing was extracted)
        """
        if self.cache is not None:
            cached = self.cache.get(user_text)
            if cached is not None:
                logger.info("[Extractor] Criteria cache hit")
                return cached

        messages = [
            AgentMessage("system", EXTRACTION_INSTRUCTION),
            AgentMessage("user", user_text),
        ]
        thread_key = f"criteria:{conversation_hint}" if conversation_hint else None
        result = self.runner.run(thread_key, messages, normalize=False)

        criteria = parse_criteria(result.raw_text)
        if criteria.is_empty():
            logger.info("[Extractor] No criteria extracted")
        else:
            logger.info(f"[Extractor] Extracted {criteria.model_dump(exclude_defaults=True)}")
            if self.cache is not None:
                self.cache.set(user_text, criteria)
        return criteria
