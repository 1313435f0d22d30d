"""
Recommendation orchestrator.

Workflow (one LangGraph run per request, strictly sequential):
1. extract_criteria: structured criteria from the question
2. ground / bare_messages: build the answer message set, with catalog
   context only when some criteria were extracted
3. generate_answer: run the assistant (retries prepend a reinforcement)
4. check_quality: deterministic gate, loops back to generate_answer
   until max_retries is spent
5. fallback: fixed answer when every attempt was rejected
"""

import logging
import time
from typing import Optional

from langgraph.graph import StateGraph, END

from meeple.agent.extractor import CriteriaExtractor
from meeple.agent.grounding import GroundingLookup
from meeple.agent.quality import build_fallback_answer, is_low_quality
from meeple.agent.runner import AgentRunner
from meeple.agent.state import OrchestratorState
from meeple.agent.telemetry import NullTelemetry, Telemetry
from meeple.data.models import AgentMessage, ConversationHandle, RecommendationResult

logger = logging.getLogger(__name__)

GROUNDING_INSTRUCTION = (
    "Use this board game data to answer the user's question. "
    "Prefer games from the list, mention them by name and use their player counts, "
    "play times and ratings. If the list is empty, answer from general knowledge."
)

RETRY_INSTRUCTION = (
    "Your previous response was too generic. Be concrete: name at least one specific "
    "board game title or give one actionable tip. Do not reply with a placeholder."
)

ERROR_ANSWER = "Something went wrong on my side. Let's try again! 🎲"
EMPTY_QUERY_ANSWER = "Please ask something about board games: player count, style, theme, anything!"


class RecommendationOrchestrator:
    """
    Turns one user question into one answer.

    Never raises: transport failures anywhere in the pipeline are logged and
    turned into an apologetic answer with no thread id.
    """

    def __init__(
        self,
        extractor: CriteriaExtractor,
        grounding: GroundingLookup,
        runner: AgentRunner,
        max_retries: int = 2,
        bypass_quality_gate: bool = False,
        telemetry: Optional[Telemetry] = None,
    ):
        self.extractor = extractor
        self.grounding = grounding
        self.runner = runner
        self.max_retries = max(0, max_retries)
        self.bypass_quality_gate = bypass_quality_gate
        self.telemetry = telemetry or NullTelemetry()
        self.graph = self._build_graph()

    def _build_graph(self):
        workflow = StateGraph(OrchestratorState)

        workflow.add_node("extract_criteria", self.extract_criteria_node)
        workflow.add_node("ground", self.ground_node)
        workflow.add_node("bare_messages", self.bare_messages_node)
        workflow.add_node("generate_answer", self.generate_answer_node)
        workflow.add_node("check_quality", self.check_quality_node)
        workflow.add_node("fallback", self.fallback_node)

        workflow.set_entry_point("extract_criteria")

        workflow.add_conditional_edges(
            "extract_criteria",
            self.route_after_extraction,
            {
                "ground": "ground",
                "bare_messages": "bare_messages"
            }
        )
        workflow.add_edge("ground", "generate_answer")
        workflow.add_edge("bare_messages", "generate_answer")
        workflow.add_edge("generate_answer", "check_quality")
        workflow.add_conditional_edges(
            "check_quality",
            self.route_after_quality,
            {
                "generate_answer": "generate_answer",
                "fallback": "fallback",
                "done": END
            }
        )
        workflow.add_edge("fallback", END)

        return workflow.compile()

    # --- nodes ---

    def extract_criteria_node(self, state: OrchestratorState) -> OrchestratorState:
        self.telemetry.track_event("CriteriaExtractionStarted", {"conversation_id": state["conversation_id"]})
        with self.telemetry.measure("ExtractionDurationMs"):
            criteria = self.extractor.extract(state["user_query"], state["conversation_id"])

        state["criteria"] = criteria
        state["metadata"]["criteria"] = criteria.model_dump(exclude_defaults=True)
        self.telemetry.track_event("CriteriaExtractionCompleted", {"empty": criteria.is_empty()})
        return state

    def ground_node(self, state: OrchestratorState) -> OrchestratorState:
        block, total = self.grounding.build_block(state["criteria"])
        logger.info(f"[Orchestrator] Grounding with {total} matching games")

        state["messages"] = [
            AgentMessage("system", GROUNDING_INSTRUCTION),
            AgentMessage("user", block),
            AgentMessage("user", state["user_query"]),
        ]
        state["grounding_count"] = total
        self.telemetry.track_event("GroundingUsed", {"matching_games": total})
        self.telemetry.track_metric("GroundingRecordCount", total)
        return state

    def bare_messages_node(self, state: OrchestratorState) -> OrchestratorState:
        logger.info("[Orchestrator] No criteria, answering without grounding")
        state["messages"] = [AgentMessage("user", state["user_query"])]
        state["grounding_count"] = 0
        self.telemetry.track_event("GroundingSkipped")
        return state

    def generate_answer_node(self, state: OrchestratorState) -> OrchestratorState:
        state["attempt"] += 1
        messages = state["messages"]
        if state["attempt"] > 1:
            # Always reinforce the original set, never a previous retry
            messages = [AgentMessage("system", RETRY_INSTRUCTION)] + list(messages)

        with self.telemetry.measure("AgentRunDurationMs", {"attempt": state["attempt"]}):
            result = self.runner.run(state["conversation_id"], messages)

        state["answer_text"] = result.raw_text
        state["thread_id"] = result.thread_id
        return state

    def check_quality_node(self, state: OrchestratorState) -> OrchestratorState:
        text = state["answer_text"]
        has_text = bool(text and text.strip())
        state["accepted"] = has_text and (self.bypass_quality_gate or not is_low_quality(text))

        if not state["accepted"] and state["attempt"] <= self.max_retries:
            logger.info(f"[Orchestrator] Attempt {state['attempt']} was low quality, retrying")
            self.telemetry.track_event("LowQualityRetry", {"attempt": state["attempt"]})
        return state

    def fallback_node(self, state: OrchestratorState) -> OrchestratorState:
        logger.warning(f"[Orchestrator] All {state['attempt']} attempts were low quality, using fallback")
        state["answer_text"] = build_fallback_answer(state["user_query"])
        state["fallback_used"] = True
        self.telemetry.track_event("FallbackUsed", {"attempts": state["attempt"]})
        return state

    # --- edges ---

    @staticmethod
    def route_after_extraction(state: OrchestratorState) -> str:
        criteria = state.get("criteria")
        if criteria is None or criteria.is_empty():
            return "bare_messages"
        return "ground"

    def route_after_quality(self, state: OrchestratorState) -> str:
        if state["accepted"]:
            return "done"
        if state["attempt"] <= self.max_retries:
            return "generate_answer"
        return "fallback"

    # --- entry point ---

    def recommend(
        self,
        query: str,
        conversation_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> RecommendationResult:
        """
        Answer one question.

        Args:
            query: The user's question
            conversation_id: Caller conversation id for multi-turn continuity
            user_id: Optional user id (telemetry only)

        Returns:
            RecommendationResult whose answer_text is never empty
        """
        if not query or not query.strip():
            return RecommendationResult(answer_text=EMPTY_QUERY_ANSWER)

        start_time = time.time()
        initial_state: OrchestratorState = {
            "user_query": query.strip(),
            "conversation_id": conversation_id or None,
            "user_id": user_id,
            "criteria": None,
            "messages": [],
            "grounding_count": 0,
            "attempt": 0,
            "answer_text": None,
            "thread_id": None,
            "accepted": False,
            "fallback_used": False,
            "metadata": {}
        }

        try:
            # Each attempt is two steps (generate + check) plus fixed overhead
            final_state = self.graph.invoke(
                initial_state,
                config={"recursion_limit": 2 * (self.max_retries + 1) + 10},
            )
        except Exception as e:
            logger.exception(f"[Orchestrator] Request failed: {e}")
            self.telemetry.track_event("RequestFailed", {"error": type(e).__name__, "user_id": user_id})
            return RecommendationResult(answer_text=ERROR_ANSWER)

        elapsed_ms = (time.time() - start_time) * 1000
        self.telemetry.track_metric("RequestDurationMs", elapsed_ms)
        self.telemetry.track_event("RequestCompleted", {
            "attempts": final_state["attempt"],
            "fallback_used": final_state["fallback_used"],
            "matching_games": final_state["grounding_count"],
            "user_id": user_id,
        })

        thread_id = final_state["thread_id"]
        handle = ConversationHandle(external_id=conversation_id, thread_id=thread_id) if thread_id else None
        return RecommendationResult(
            answer_text=final_state["answer_text"],
            handle=handle,
            matching_games_count=final_state["grounding_count"],
            metadata={
                "attempts": final_state["attempt"],
                "fallback_used": final_state["fallback_used"],
                **final_state["metadata"],
            },
        )
