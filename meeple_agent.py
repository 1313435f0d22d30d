"""
The Meeple Agent - Main Entry Point

An AI assistant for board games that combines structured catalog lookups
with a conversational assistant to answer recommendation, rules and
strategy questions.
"""

import logging
import sys
import time
import uuid
from typing import Optional

from meeple.agent.extractor import CriteriaCache, CriteriaExtractor
from meeple.agent.grounding import GroundingLookup
from meeple.agent.orchestrator import RecommendationOrchestrator
from meeple.agent.registry import ConversationRegistry
from meeple.agent.runner import AgentRunner
from meeple.agent.telemetry import LoggingTelemetry
from meeple.config import config
from meeple.data.agent_service import AgentService, OpenAIAgentService
from meeple.data.fake_agent import FakeAgentService
from meeple.data.games import GameStore
from meeple.data.models import RecommendationResult

FAKE_ASSISTANT_ID = "asst_fake"


def create_agent(
    service: Optional[AgentService] = None,
    store: Optional[GameStore] = None,
    registry: Optional[ConversationRegistry] = None,
) -> RecommendationOrchestrator:
    """
    Wire the recommendation pipeline from configuration.

    Args:
        service: Agent service override (defaults to OpenAI or the fake)
        store: Game store override (defaults to the persisted ChromaDB store)
        registry: Conversation registry shared across requests

    Returns:
        RecommendationOrchestrator ready to answer questions
    """
    print("\n[Agent] Initializing...")
    start_time = time.time()

    use_fake = service is None and config.use_fake_agent()
    if service is None:
        service = FakeAgentService() if use_fake else OpenAIAgentService()

    answer_agent_id = FAKE_ASSISTANT_ID if use_fake else config.openai.assistant_id
    criteria_agent_id = FAKE_ASSISTANT_ID if use_fake else config.openai.extraction_assistant_id

    store = store or GameStore(
        persist_dir=config.store.persist_dir,
        collection_name=config.store.collection_name,
    )
    registry = registry or ConversationRegistry(ttl_seconds=config.agent.thread_mapping_ttl_seconds)

    runner_options = dict(
        poll_interval=config.agent.poll_interval_ms / 1000.0,
        max_poll_iterations=config.agent.max_poll_iterations,
        max_message_chars=config.agent.max_message_chars,
    )
    answer_runner = AgentRunner(service, registry, answer_agent_id, **runner_options)
    criteria_runner = AgentRunner(service, registry, criteria_agent_id, **runner_options)

    cache = None
    if config.agent.criteria_cache_enabled:
        cache = CriteriaCache(ttl_seconds=config.agent.criteria_cache_ttl_seconds)

    orchestrator = RecommendationOrchestrator(
        extractor=CriteriaExtractor(criteria_runner, cache=cache),
        grounding=GroundingLookup(
            store,
            limit=config.store.grounding_limit,
            overview_max_chars=config.store.overview_max_chars,
        ),
        runner=answer_runner,
        max_retries=config.agent.effective_max_retries,
        bypass_quality_gate=config.agent.bypass_quality_gate,
        telemetry=LoggingTelemetry(),
    )

    elapsed = time.time() - start_time
    print(f"[Agent] Ready in {elapsed:.2f}s ({store.count()} games in catalog)\n")
    return orchestrator


def run_query(
    agent: RecommendationOrchestrator,
    query: str,
    conversation_id: Optional[str] = None,
) -> RecommendationResult:
    """
    Execute a query through the agent workflow.

    Args:
        agent: Orchestrator from create_agent()
        query: User's question
        conversation_id: Conversation to continue, if any

    Returns:
        RecommendationResult with the answer text
    """
    print("\n" + "="*60)
    print("MEEPLE AGENT")
    print("="*60)
    print()

    return agent.recommend(query, conversation_id=conversation_id)


def interactive_mode():
    """Run the agent in interactive CLI mode."""
    print("\n" + "="*60)
    print("THE MEEPLE AGENT - Interactive Mode")
    print("="*60)
    print("\nAn AI companion for board game nights")
    print("Combining the game catalog with conversational advice\n")
    print("Commands:")
    print("  - Type your question about board games")
    print("  - 'new' to start a new conversation")
    print("  - 'quit' or 'exit' to stop")
    print("  - 'help' for examples")
    print("="*60)
    print()

    # Create agent once
    agent = create_agent()
    conversation_id = str(uuid.uuid4())

    while True:
        try:
            query = input("\n> ").strip()

            if not query:
                continue

            if query.lower() in ["quit", "exit", "q"]:
                print("\nGoodbye!")
                break

            if query.lower() == "new":
                conversation_id = str(uuid.uuid4())
                print("\nStarted a new conversation.")
                continue

            if query.lower() == "help":
                print("\nExample questions:")
                print("  - I want a strategic board game for 2-4 players")
                print("  - Tell me about Catan")
                print("  - What's a good party game under 30 minutes?")
                print("  - How to win at Ticket to Ride?")
                print("  - What are worker placement games?")
                continue

            result = run_query(agent, query, conversation_id=conversation_id)
            print("\n" + result.answer_text)
            if result.matching_games_count:
                print(f"\n({result.matching_games_count} matching games in the catalog)")

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break


def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.DEBUG if config.agent.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if len(sys.argv) > 1:
        # Single query mode
        query = " ".join(sys.argv[1:])
        agent = create_agent()
        result = run_query(agent, query)
        print("\n" + result.answer_text)
    else:
        # Interactive mode
        config.print_status()
        interactive_mode()


if __name__ == "__main__":
    main()
