"""Data layer for The Meeple Agent."""

from meeple.data.models import QueryCriteria, GameRecord
from meeple.data.games import GameStore
from meeple.data.catalog import CatalogLoader
from meeple.data.agent_service import OpenAIAgentService
from meeple.data.fake_agent import FakeAgentService

__all__ = [
    "QueryCriteria",
    "GameRecord",
    "GameStore",
    "CatalogLoader",
    "OpenAIAgentService",
    "FakeAgentService",
]
