"""Tests for criteria parsing, caching and extraction."""

import json

import pytest

from meeple.agent.extractor import (
    EXTRACTION_INSTRUCTION,
    CriteriaCache,
    CriteriaExtractor,
    parse_criteria,
)
from meeple.data.models import AgentMessage, AgentRunResult, QueryCriteria


class StubRunner:
    """Returns a fixed reply and records every call."""

    def __init__(self, raw_text):
        self.raw_text = raw_text
        self.calls = []

    def run(self, external_id, messages, normalize=True):
        self.calls.append((external_id, list(messages), normalize))
        return AgentRunResult(raw_text=self.raw_text, thread_id="thread_stub")


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestParseCriteria:

    def test_plain_json(self):
        criteria = parse_criteria('{"minPlayers": 2, "maxPlayers": 4, "mechanics": ["Drafting"]}')
        assert criteria.min_players == 2
        assert criteria.max_players == 4
        assert criteria.mechanics == ["Drafting"]

    def test_code_fence(self):
        criteria = parse_criteria('```json\n{"name": "ticket to ride"}\n```')
        assert criteria.name == "Ticket To Ride"

    def test_surrounding_prose(self):
        criteria = parse_criteria('Sure! Here you go: {"maxPlaytime": 30} Enjoy.')
        assert criteria.max_playtime == 30

    def test_string_envelope(self):
        raw = json.dumps({"message": json.dumps({"minPlayers": 3})})
        assert parse_criteria(raw).min_players == 3

    def test_object_envelope(self):
        raw = json.dumps({"response": {"categories": ["Party Game"]}})
        assert parse_criteria(raw).categories == ["Party Game"]

    def test_unusable_reply_gives_empty_criteria(self):
        for raw in [None, "", "I can't parse that", "[1, 2, 3]", '{"minPlayers": 2']:
            assert parse_criteria(raw).is_empty()

    def test_values_are_coerced(self):
        criteria = parse_criteria(json.dumps({
            "minPlayers": "3+",
            "maxPlayers": 2,
            "averageRating": 12,
            "maxWeight": 0,
            "ageRequirement": "10",
            "mechanics": "Deck Building, Drafting",
        }))
        assert (criteria.min_players, criteria.max_players) == (2, 3)
        assert criteria.min_average_rating == 10.0
        assert criteria.max_weight is None
        assert criteria.min_age == 10
        assert criteria.mechanics == ["Deck Building", "Drafting"]

    @pytest.mark.parametrize("raw", [
        '{"minPlayers": 1e999}',
        '{"maxPlaytime": -1e999}',
        '{"maxWeight": NaN}',
        '{"averageRating": Infinity}',
        '{"ageRequirement": "nan"}',
        '{"minPlayers": 1' + "0" * 400 + '}',
    ])
    def test_non_finite_numbers_are_dropped(self, raw):
        assert parse_criteria(raw).is_empty()

    def test_non_finite_value_keeps_other_fields(self):
        criteria = parse_criteria('{"name": "azul", "maxWeight": NaN, "maxPlayers": 4}')
        assert criteria.name == "Azul"
        assert criteria.max_weight is None
        assert criteria.max_players == 4


class TestCriteriaCache:

    def test_normalized_keys_share_an_entry(self):
        cache = CriteriaCache()
        cache.set("Tell me about Catan?", QueryCriteria(name="Catan"))
        assert cache.get("  tell me   about catan ").name == "Catan"
        assert cache.hits == 1

    def test_empty_criteria_not_cached(self):
        cache = CriteriaCache()
        cache.set("fun game", QueryCriteria())
        assert cache.get("fun game") is None
        assert cache.misses == 1

    def test_entries_expire(self):
        clock = FakeClock()
        cache = CriteriaCache(ttl_seconds=60, clock=clock)
        cache.set("games for 4 players", QueryCriteria(min_players=4))

        clock.now = 59
        assert cache.get("games for 4 players") is not None
        clock.now = 60
        assert cache.get("games for 4 players") is None

    def test_evicts_when_full(self):
        clock = FakeClock()
        cache = CriteriaCache(max_entries=2, clock=clock)
        cache.set("first", QueryCriteria(min_players=1))
        clock.now = 1
        cache.set("second", QueryCriteria(min_players=2))
        clock.now = 2
        cache.set("third", QueryCriteria(min_players=3))

        assert cache.get("first") is None
        assert cache.get("second").min_players == 2
        assert cache.get("third").min_players == 3

    def test_returns_independent_copies(self):
        cache = CriteriaCache()
        cache.set("deck builders", QueryCriteria(mechanics=["Deck Building"]))

        cache.get("deck builders").mechanics.append("Drafting")

        assert cache.get("deck builders").mechanics == ["Deck Building"]


class TestCriteriaExtractor:

    def test_extraction_turn(self):
        runner = StubRunner('{"name": "Catan"}')
        criteria = CriteriaExtractor(runner).extract("Tell me about Catan", conversation_hint="conv-1")

        assert criteria.name == "Catan"
        external_id, messages, normalize = runner.calls[0]
        assert external_id == "criteria:conv-1"
        assert messages == [
            AgentMessage("system", EXTRACTION_INSTRUCTION),
            AgentMessage("user", "Tell me about Catan"),
        ]
        assert normalize is False

    def test_no_hint_uses_fresh_thread(self):
        runner = StubRunner("{}")
        CriteriaExtractor(runner).extract("fun game")
        assert runner.calls[0][0] is None

    def test_bad_reply_gives_empty_criteria(self):
        for raw in [None, "not json at all", "{broken"]:
            criteria = CriteriaExtractor(StubRunner(raw)).extract("fun game")
            assert criteria.is_empty()

    def test_cache_skips_second_run(self):
        runner = StubRunner('{"minPlayers": 2, "maxPlayers": 4}')
        cache = CriteriaCache()
        extractor = CriteriaExtractor(runner, cache=cache)

        first = extractor.extract("A game for 2-4 players")
        second = extractor.extract("a game for 2-4 players!")

        assert len(runner.calls) == 1
        assert first == second

    def test_with_fake_service(self, fake_service, registry, make_runner):
        extractor = CriteriaExtractor(make_runner(fake_service))

        criteria = extractor.extract("Something for 3 players", conversation_hint="conv-9")

        assert (criteria.min_players, criteria.max_players) == (3, 3)
        assert registry.resolve("criteria:conv-9") is not None
        assert registry.resolve("conv-9") is None
