"""
Deterministic in-memory agent service.

Used for local runs without credentials and for tests. It implements the same
thread/message/run operations as the real service, answers from a table of
canned responses, and handles criteria extraction turns (recognised by a
system block mentioning "criteria extraction") with a tiny keyword parser.
"""

import json
import re
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional

from meeple.data.agent_service import AgentService, AgentServiceError, RunStatus, ThreadMessage


CANNED_RESPONSES: Dict[str, str] = {
    "i want a strategic board game for 2-4 players": "Try Splendor, Azul or 7 Wonders: strategic, quick to learn and they shine at 2-4 players.",
    "fun game": "Ticket to Ride is a classic fun gateway game with simple turns and satisfying route building.",
    "tell me about catan": "Catan: trade resources (wood, brick, wheat, sheep, ore) to build roads and settlements, expand, block opponents and race to 10 points.",
    "what about party games?": "Great party picks: Codenames (word deduction), Just One (co-op clueing) and Dixit (creative storytelling).",
    "i want a strategic board game": "Consider Terraforming Mars for engine building or Wingspan for gentle tableau strategy.",
    "what makes a game family friendly?": "Family friendly means short turns, low downtime, clear iconography, forgiving rules and positive interaction.",
    "how to win at ticket to ride?": "Prioritise long routes early, secure critical choke connections, chain tickets that share track and deny obvious opponent links.",
    "what are worker placement games?": "Worker placement: you assign limited workers to exclusive action spots (e.g. Agricola, Lords of Waterdeep), creating tension over scarce actions.",
    "i am looking for a new board game.": "Give Cascadia or Azul a try: quick to teach, satisfying puzzles and great table presence.",
    "strategy game strategy game": "For heavier strategy: Brass: Birmingham (economic routes) or Gaia Project (deep asymmetry).",
}

DEFAULT_RESPONSE = "Try a modern gateway: Ticket to Ride, Azul or Splendor. Accessible and very replayable."

KNOWN_TITLES = [
    "Catan", "Ticket to Ride", "Pandemic", "Azul", "Carcassonne", "Wingspan",
    "Splendor", "Codenames", "7 Wonders", "Terraforming Mars", "Cascadia",
]

_PLAYER_RANGE = re.compile(r"(\d+)\s*(?:-|to)\s*(\d+)\s*players?", re.IGNORECASE)
_PLAYER_SINGLE = re.compile(r"(\d+)\s*players?", re.IGNORECASE)


class FakeAgentService(AgentService):
    """
    In-memory stand-in for the assistant API.

    Attributes:
        threads: thread id -> list of (role, text) messages
        runs_started: total runs created (extraction and answer)
        answer_runs: runs that produced an answer rather than criteria
    """

    def __init__(self, polls_before_complete: int = 0):
        self.threads: Dict[str, List[ThreadMessage]] = {}
        self.runs: Dict[str, Dict[str, object]] = {}
        self.runs_started = 0
        self.answer_runs = 0
        self.polls_before_complete = polls_before_complete
        self._scripted: Deque[str] = deque()

    def queue_answers(self, *answers: str) -> None:
        """Make the next answer runs reply with these texts, in order."""
        self._scripted.extend(answers)

    def create_thread(self) -> str:
        thread_id = f"thread_{uuid.uuid4().hex}"
        self.threads[thread_id] = []
        return thread_id

    def get_thread(self, thread_id: str) -> Optional[str]:
        return thread_id if thread_id in self.threads else None

    def create_message(self, thread_id: str, role: str, text: str) -> None:
        # Same rule as the hosted API: no new messages while a run is active
        if self.active_runs(thread_id):
            raise AgentServiceError(f"Thread {thread_id} already has an active run")
        self.threads.setdefault(thread_id, []).append(ThreadMessage(role=role, text=text))

    def create_run(self, thread_id: str, agent_id: str) -> str:
        run_id = f"run_{uuid.uuid4().hex}"
        self.runs_started += 1
        self.runs[run_id] = {"thread_id": thread_id, "polls": 0, "done": False, "cancelled": False}
        return run_id

    def get_run(self, thread_id: str, run_id: str) -> RunStatus:
        run = self.runs[run_id]
        if run["cancelled"]:
            return RunStatus.CANCELLED
        if run["done"]:
            return RunStatus.COMPLETED
        run["polls"] += 1
        if run["polls"] <= self.polls_before_complete:
            return RunStatus.IN_PROGRESS
        run["done"] = True
        self.threads[thread_id].append(ThreadMessage(role="assistant", text=self._reply(thread_id)))
        return RunStatus.COMPLETED

    def cancel_run(self, thread_id: str, run_id: str) -> None:
        run = self.runs[run_id]
        if not run["done"]:
            run["cancelled"] = True

    def active_runs(self, thread_id: str) -> List[str]:
        return [
            run_id for run_id, run in self.runs.items()
            if run["thread_id"] == thread_id and not run["done"] and not run["cancelled"]
        ]

    def list_messages(self, thread_id: str, order: str = "desc", limit: int = 1) -> List[ThreadMessage]:
        messages = list(self.threads.get(thread_id, []))
        if order == "desc":
            messages.reverse()
        return messages[:limit]

    def _reply(self, thread_id: str) -> str:
        blocks = self._last_turn(thread_id)
        system_text = " ".join(b.get("content", "") for b in blocks if b.get("role") == "system")
        user_blocks = [b.get("content", "") for b in blocks if b.get("role") == "user"]
        question = user_blocks[-1].strip() if user_blocks else ""

        if "criteria extraction" in system_text.lower():
            return json.dumps(extract_keywords(question))

        self.answer_runs += 1
        if self._scripted:
            return self._scripted.popleft()

        key = question.lower()
        if key in CANNED_RESPONSES:
            return CANNED_RESPONSES[key]
        for canned_key, response in CANNED_RESPONSES.items():
            if canned_key in key:
                return response
        return DEFAULT_RESPONSE

    def _last_turn(self, thread_id: str) -> List[Dict[str, str]]:
        for message in reversed(self.threads.get(thread_id, [])):
            if message.role != "user":
                continue
            try:
                payload = json.loads(message.text or "")
            except json.JSONDecodeError:
                return [{"role": "user", "content": message.text or ""}]
            if isinstance(payload, list):
                return [b for b in payload if isinstance(b, dict)]
            return [{"role": "user", "content": message.text or ""}]
        return []


def extract_keywords(question: str) -> Dict[str, object]:
    """Very small rule-based criteria extraction used by the fake service."""
    criteria: Dict[str, object] = {}
    lowered = question.lower()

    for title in KNOWN_TITLES:
        if title.lower() in lowered:
            criteria["name"] = title
            break

    match = _PLAYER_RANGE.search(question)
    if match:
        criteria["minPlayers"] = int(match.group(1))
        criteria["maxPlayers"] = int(match.group(2))
    else:
        match = _PLAYER_SINGLE.search(question)
        if match:
            criteria["minPlayers"] = int(match.group(1))
            criteria["maxPlayers"] = int(match.group(1))

    return criteria
