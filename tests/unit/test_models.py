"""Tests for shared data types and configuration."""

from meeple.config import Config
from meeple.data.models import (
    ConversationHandle,
    GameRecord,
    QueryCriteria,
    RecommendationResult,
)


class TestQueryCriteria:

    def test_empty_by_default(self):
        assert QueryCriteria().is_empty()
        assert QueryCriteria.model_validate({"unknownField": 3}).is_empty()

    def test_catalog_aliases(self):
        criteria = QueryCriteria.model_validate({
            "minPlaytime": 30,
            "maxPlaytime": 60,
            "averageRating": 7.5,
            "ageRequirement": 12,
            "maxWeight": 3,
        })
        assert (criteria.min_playtime, criteria.max_playtime) == (30, 60)
        assert criteria.min_average_rating == 7.5
        assert criteria.min_age == 12
        assert criteria.max_weight == 3.0
        assert not criteria.is_empty()

    def test_non_positive_values_are_dropped(self):
        criteria = QueryCriteria.model_validate({"minPlayers": 0, "maxPlayers": -2, "name": "  "})
        assert criteria.is_empty()

    def test_weight_is_clamped(self):
        assert QueryCriteria(max_weight=9).max_weight == 5.0
        assert QueryCriteria(max_weight=0.5).max_weight == 1.0


class TestGameRecord:

    def test_from_document_defaults(self):
        game = GameRecord.from_document({"id": 7, "name": "Azul"})
        assert game.id == "7"
        assert game.overview == ""
        assert game.mechanics == ()
        assert game.average_rating == 0.0

    def test_to_document_uses_catalog_names(self, sample_games):
        doc = sample_games[0].to_document()
        assert doc["minPlayers"] == 3
        assert doc["averageRating"] == 7.1
        assert doc["mechanics"] == ["Dice Rolling", "Trading"]
        assert GameRecord.from_document(doc) == sample_games[0]


def test_result_thread_id():
    assert RecommendationResult(answer_text="hi").thread_id is None
    handle = ConversationHandle(external_id="conv-1", thread_id="thread_a")
    assert RecommendationResult(answer_text="hi", handle=handle).thread_id == "thread_a"


class TestConfig:

    def test_defaults(self, monkeypatch):
        for name in ["OPENAI_API_KEY", "AGENT_ASSISTANT_ID", "AGENT_USE_FAKE", "AGENT_TEST_MODE",
                     "AGENT_MAX_RETRIES", "THREAD_MAPPING_TTL_MINUTES", "AGENT_BYPASS_QUALITY_GATE"]:
            monkeypatch.delenv(name, raising=False)

        config = Config()

        assert config.agent.effective_max_retries == 2
        assert config.agent.bypass_quality_gate is False
        assert config.agent.thread_mapping_ttl_seconds is None
        assert config.use_fake_agent()

    def test_test_mode_disables_retries(self, monkeypatch):
        monkeypatch.setenv("AGENT_TEST_MODE", "true")
        monkeypatch.setenv("AGENT_MAX_RETRIES", "5")
        assert Config().agent.effective_max_retries == 0

    def test_ttl_minutes(self, monkeypatch):
        monkeypatch.setenv("THREAD_MAPPING_TTL_MINUTES", "5")
        assert Config().agent.thread_mapping_ttl_seconds == 300.0

    def test_real_service_when_configured(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("AGENT_ASSISTANT_ID", "asst_answer")
        monkeypatch.delenv("AGENT_CRITERIA_ASSISTANT_ID", raising=False)
        monkeypatch.delenv("AGENT_USE_FAKE", raising=False)

        config = Config()

        assert not config.use_fake_agent()
        assert config.openai.extraction_assistant_id == "asst_answer"
