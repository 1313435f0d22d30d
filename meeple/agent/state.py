"""State schema for The Meeple Agent."""

from typing import TypedDict, List, Dict, Any, Optional

from meeple.data.models import AgentMessage, QueryCriteria


class OrchestratorState(TypedDict):
    """
    State object that flows through the LangGraph workflow.

    Attributes:
        user_query: The original user question
        conversation_id: Caller conversation id (None starts a fresh thread)
        user_id: Optional caller user id, only used for telemetry
        criteria: Criteria extracted from the question
        messages: Answer-step message set, built once and reused by retries
        grounding_count: Number of catalog games matching the criteria
        attempt: Answer attempts made so far
        answer_text: Latest answer (or the fallback)
        thread_id: Agent thread that produced the latest answer
        accepted: Whether the latest answer passed the quality gate
        fallback_used: Whether the deterministic fallback was returned
        metadata: Additional context and debugging information
    """
    user_query: str
    conversation_id: Optional[str]
    user_id: Optional[str]
    criteria: Optional[QueryCriteria]
    messages: List[AgentMessage]
    grounding_count: int
    attempt: int
    answer_text: Optional[str]
    thread_id: Optional[str]
    accepted: bool
    fallback_used: bool
    metadata: Dict[str, Any]
