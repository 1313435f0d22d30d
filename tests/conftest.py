import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from meeple.agent.extractor import CriteriaExtractor
from meeple.agent.grounding import GroundingLookup
from meeple.agent.orchestrator import RecommendationOrchestrator
from meeple.agent.registry import ConversationRegistry
from meeple.agent.runner import AgentRunner
from meeple.data.fake_agent import FakeAgentService
from meeple.data.games import GameStore, matches_criteria
from meeple.data.models import GameRecord, QueryCriteria


SAMPLE_GAMES = [
    GameRecord(
        id="1", name="Catan",
        overview="Trade, build and settle the island of Catan.",
        min_players=3, max_players=4, min_playtime=60, max_playtime=120,
        weight=2.3, average_rating=7.1, age_requirement=10, num_votes=110000, year_published=1995,
        mechanics=("Dice Rolling", "Trading"), categories=("Negotiation",),
    ),
    GameRecord(
        id="2", name="Ticket to Ride",
        overview="Collect train cards and claim railway routes across North America.",
        min_players=2, max_players=5, min_playtime=30, max_playtime=60,
        weight=1.8, average_rating=7.4, age_requirement=8, num_votes=90000, year_published=2004,
        mechanics=("Set Collection", "Route Building"), categories=("Trains",),
    ),
    GameRecord(
        id="3", name="Pandemic",
        overview="Work together to cure four diseases before they spread.",
        min_players=2, max_players=4, min_playtime=45, max_playtime=45,
        weight=2.4, average_rating=7.5, age_requirement=8, num_votes=120000, year_published=2008,
        mechanics=("Cooperative Game", "Hand Management"), categories=("Medical",),
    ),
    GameRecord(
        id="4", name="Codenames",
        overview="Give one-word clues to help your team find their agents.",
        min_players=2, max_players=8, min_playtime=15, max_playtime=15,
        weight=1.3, average_rating=7.6, age_requirement=14, num_votes=100000, year_published=2015,
        mechanics=("Team-Based Game",), categories=("Party Game", "Word Game"),
    ),
    GameRecord(
        id="5", name="Gloomhaven",
        overview="Tactical dungeon crawling campaign with legacy elements.",
        min_players=1, max_players=4, min_playtime=60, max_playtime=120,
        weight=3.9, average_rating=8.6, age_requirement=14, num_votes=60000, year_published=2017,
        mechanics=("Cooperative Game", "Campaign"), categories=("Adventure", "Fantasy"),
    ),
    GameRecord(
        id="6", name="Catan: Cities & Knights",
        overview="Expansion adding knights, city improvements and barbarian attacks.",
        min_players=3, max_players=4, min_playtime=90, max_playtime=120,
        weight=2.9, average_rating=7.7, age_requirement=12, num_votes=30000, year_published=1998,
        mechanics=("Dice Rolling", "Trading"), categories=("Negotiation", "Expansion"),
    ),
]


class InMemoryGameStore:
    """Game store stand-in applying the same matching rules as GameStore."""

    def __init__(self, games):
        self.games = {game.id: game for game in games}
        self.queries = []

    def query_games(self, criteria: QueryCriteria):
        self.queries.append(criteria)
        return [g for g in self.games.values() if matches_criteria(g, criteria)]

    def search_by_name(self, term, max_results=5):
        matches = self.query_games(QueryCriteria(name=term))
        matches.sort(key=lambda g: (g.average_rating, g.num_votes), reverse=True)
        return matches[:max_results]

    def get_game(self, game_id):
        return self.games.get(game_id)

    def count(self):
        return len(self.games)


@pytest.fixture
def sample_games():
    return list(SAMPLE_GAMES)


@pytest.fixture
def memory_store(sample_games):
    return InMemoryGameStore(sample_games)


@pytest.fixture
def game_store(tmp_path, sample_games):
    """Persistent ChromaDB store in a temporary directory, pre-loaded."""
    store = GameStore(persist_dir=str(tmp_path / "chroma"), collection_name="test_games")
    store.upsert_games(sample_games)
    return store


@pytest.fixture
def fake_service():
    return FakeAgentService()


@pytest.fixture
def registry():
    return ConversationRegistry()


@pytest.fixture
def sleeps():
    """Records every poll sleep instead of sleeping."""
    return []


@pytest.fixture
def make_runner(registry, sleeps):
    def _make(service, max_poll_iterations=5, max_message_chars=256000):
        return AgentRunner(
            service,
            registry,
            agent_id="asst_test",
            poll_interval=0.25,
            max_poll_iterations=max_poll_iterations,
            max_message_chars=max_message_chars,
            sleep=sleeps.append,
        )
    return _make


@pytest.fixture
def make_orchestrator(make_runner, memory_store):
    def _make(service, max_retries=2, bypass_quality_gate=False, telemetry=None, store=None, **runner_options):
        runner = make_runner(service, **runner_options)
        return RecommendationOrchestrator(
            extractor=CriteriaExtractor(runner),
            grounding=GroundingLookup(store or memory_store, limit=20),
            runner=runner,
            max_retries=max_retries,
            bypass_quality_gate=bypass_quality_gate,
            telemetry=telemetry,
        )
    return _make
