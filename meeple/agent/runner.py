"""
Agent runner: post a turn to a (possibly reused) thread, run the assistant,
poll until it finishes and read back the answer text.
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from meeple.agent.registry import ConversationRegistry
from meeple.data.agent_service import AgentService, AgentServiceError, RunStatus
from meeple.data.models import CRITERIA_KEYS, AgentMessage, AgentRunResult

logger = logging.getLogger(__name__)

OVERSIZE_MESSAGE = "Please summarize the request and answer concisely about board games."
CRITERIA_PLACEHOLDER = "Let me find some great games for you! 🎲"

ENVELOPE_KEYS = ("message", "response", "answer", "content", "text")


class ResponseKind(Enum):
    EMPTY = "empty"
    PROSE = "prose"
    WRAPPED_ENVELOPE = "wrapped_envelope"
    LEAKED_CRITERIA = "leaked_criteria"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class NormalizedResponse:
    kind: ResponseKind
    text: Optional[str]


def _envelope_text(payload: Dict[str, Any]) -> Optional[str]:
    for key in ENVELOPE_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
    return None


def _looks_like_criteria(payload: Dict[str, Any]) -> bool:
    if not payload:
        return False
    keys = [str(key).lower().replace("_", "") for key in payload]
    matches = sum(1 for key in keys if key in CRITERIA_KEYS)
    return matches > 0 and matches * 2 >= len(keys)


def normalize_response(raw: Optional[str], _depth: int = 0) -> NormalizedResponse:
    """
    Classify raw assistant text and produce the text to show the user.

    Prose passes through, a JSON envelope around a message is unwrapped,
    criteria-shaped JSON is replaced by a short placeholder and anything
    else that looks like JSON but can't be used is returned as-is.
    """
    if raw is None or not raw.strip():
        return NormalizedResponse(ResponseKind.EMPTY, None)

    text = raw.strip()
    if not text.startswith("{"):
        return NormalizedResponse(ResponseKind.PROSE, text)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return NormalizedResponse(ResponseKind.UNPARSEABLE, text)
    if not isinstance(payload, dict):
        return NormalizedResponse(ResponseKind.UNPARSEABLE, text)

    inner = _envelope_text(payload)
    if inner is not None:
        if _depth < 1:
            nested = normalize_response(inner, _depth + 1)
            if nested.kind is ResponseKind.LEAKED_CRITERIA:
                return nested
        return NormalizedResponse(ResponseKind.WRAPPED_ENVELOPE, inner.strip())

    if _looks_like_criteria(payload):
        return NormalizedResponse(ResponseKind.LEAKED_CRITERIA, CRITERIA_PLACEHOLDER)

    return NormalizedResponse(ResponseKind.UNPARSEABLE, text)


class AgentRunner:
    """
    Runs one agent turn against a thread.

    Thread and message creation failures raise AgentServiceError. Anything
    that goes wrong after the run has started (timeouts, failed runs, read
    errors) is logged and reported as ``raw_text=None`` instead.
    """

    def __init__(
        self,
        service: AgentService,
        registry: ConversationRegistry,
        agent_id: str,
        poll_interval: float = 0.5,
        max_poll_iterations: int = 60,
        max_message_chars: int = 256000,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.registry = registry
        self.agent_id = agent_id
        self.poll_interval = poll_interval
        self.max_poll_iterations = max_poll_iterations
        self.max_message_chars = max_message_chars
        self._sleep = sleep

    def run(
        self,
        external_id: Optional[str],
        messages: Sequence[AgentMessage],
        normalize: bool = True,
    ) -> AgentRunResult:
        """
        Post ``messages`` as one turn and wait for the assistant's reply.

        Args:
            external_id: Caller conversation id, or None for a fresh thread
            messages: Ordered role-tagged blocks for this turn
            normalize: Pass the reply through normalize_response

        Returns:
            AgentRunResult with the reply text (None if nothing usable)
        """
        start_time = time.time()
        thread_id = self._resolve_thread(external_id)

        self.service.create_message(thread_id, "user", self._serialize(messages))
        run_id = self.service.create_run(thread_id, self.agent_id)

        status = self._wait_for_run(thread_id, run_id)
        if not status.is_terminal:
            self._cancel_run(thread_id, run_id)
        raw_text = self._read_reply(thread_id)

        if normalize:
            normalized = normalize_response(raw_text)
            if normalized.kind not in (ResponseKind.PROSE, ResponseKind.EMPTY):
                logger.info(f"[Runner] Reply normalized as {normalized.kind.value}")
            raw_text = normalized.text

        elapsed = time.time() - start_time
        logger.info(f"[Runner] Run {run_id} on {thread_id} ended {status.value} in {elapsed:.2f}s")
        return AgentRunResult(raw_text=raw_text, thread_id=thread_id)

    def _resolve_thread(self, external_id: Optional[str]) -> str:
        known = self.registry.resolve(external_id)
        if known:
            if self.service.get_thread(known):
                return known
            logger.info(f"[Runner] Thread {known} for {external_id} is gone, starting a new one")
            self.registry.remove(external_id)

        thread_id = self.service.create_thread()
        if external_id:
            self.registry.bind(external_id, thread_id)
        return thread_id

    def _serialize(self, messages: Sequence[AgentMessage]) -> str:
        payload = json.dumps([m.to_dict() for m in messages], ensure_ascii=False)
        if len(payload) > self.max_message_chars:
            logger.warning(
                f"[Runner] Turn of {len(payload)} chars exceeds {self.max_message_chars}, sending summary request"
            )
            payload = json.dumps([{"role": "user", "content": OVERSIZE_MESSAGE}])
        return payload

    def _wait_for_run(self, thread_id: str, run_id: str) -> RunStatus:
        status = RunStatus.QUEUED
        for _ in range(self.max_poll_iterations):
            try:
                status = self.service.get_run(thread_id, run_id)
            except AgentServiceError as e:
                logger.warning(f"[Runner] Polling run {run_id} failed: {e}")
                return status
            if status.is_terminal:
                return status
            self._sleep(self.poll_interval)

        logger.warning(
            f"[Runner] Run {run_id} still {status.value} after {self.max_poll_iterations} polls"
        )
        return status

    def _cancel_run(self, thread_id: str, run_id: str) -> None:
        # An active run blocks further messages on the thread
        try:
            self.service.cancel_run(thread_id, run_id)
        except AgentServiceError as e:
            logger.warning(f"[Runner] Cancelling run {run_id} failed: {e}")
        else:
            logger.info(f"[Runner] Cancelled unfinished run {run_id}")

    def _read_reply(self, thread_id: str) -> Optional[str]:
        try:
            messages = self.service.list_messages(thread_id, order="desc", limit=1)
        except AgentServiceError as e:
            logger.warning(f"[Runner] Reading reply from {thread_id} failed: {e}")
            return None

        if not messages or messages[0].role != "assistant":
            return None
        return messages[0].text
