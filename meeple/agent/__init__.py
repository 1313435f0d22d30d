"""Agent layer for The Meeple Agent."""

from meeple.agent.state import OrchestratorState
from meeple.agent.registry import ConversationRegistry
from meeple.agent.runner import AgentRunner, normalize_response
from meeple.agent.extractor import CriteriaExtractor, CriteriaCache
from meeple.agent.grounding import GroundingLookup, format_games_for_grounding
from meeple.agent.quality import is_low_quality, build_fallback_answer
from meeple.agent.orchestrator import RecommendationOrchestrator

__all__ = [
    "OrchestratorState",
    "ConversationRegistry",
    "AgentRunner",
    "normalize_response",
    "CriteriaExtractor",
    "CriteriaCache",
    "GroundingLookup",
    "format_games_for_grounding",
    "is_low_quality",
    "build_fallback_answer",
    "RecommendationOrchestrator",
]
