"""API tests for the FastAPI front door, using the fake agent service."""

import pytest
from fastapi.testclient import TestClient

import server
from conftest import InMemoryGameStore
from meeple.data.fake_agent import CANNED_RESPONSES
from meeple.data.models import GameRecord


@pytest.fixture
def client(fake_service, memory_store, make_orchestrator):
    orchestrator = make_orchestrator(fake_service)
    server.app.dependency_overrides[server.get_agent] = lambda: orchestrator
    server.app.dependency_overrides[server.get_store] = lambda: memory_store
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()


class TestRecommendations:

    def test_answer(self, client):
        response = client.post("/api/recommendations", json={"query": "Tell me about Catan"})

        assert response.status_code == 200
        body = response.json()
        assert body["responseText"] == CANNED_RESPONSES["tell me about catan"]
        assert body["threadId"]
        assert body["matchingGamesCount"] == 2

    @pytest.mark.parametrize("payload", [{"query": ""}, {"query": "   "}, {}])
    def test_empty_query_is_rejected(self, client, payload):
        response = client.post("/api/recommendations", json=payload)
        assert response.status_code == 400

    def test_conversation_id_keeps_thread(self, client):
        payload = {"query": "fun game", "conversationId": "conv-42", "userId": "user-1"}
        first = client.post("/api/recommendations", json=payload).json()
        second = client.post("/api/recommendations", json={**payload, "query": "What about party games?"}).json()

        assert first["threadId"] == second["threadId"]
        assert second["responseText"] == CANNED_RESPONSES["what about party games?"]


class TestGames:

    def test_search(self, client):
        response = client.get("/api/games/search", params={"q": "catan"})

        assert response.status_code == 200
        body = response.json()
        assert body["totalCount"] == 2
        assert [g["name"] for g in body["games"]] == ["Catan: Cities & Knights", "Catan"]
        assert body["games"][1]["minPlayers"] == 3

    def test_search_needs_three_characters(self, client):
        assert client.get("/api/games/search", params={"q": "ca"}).status_code == 400
        assert client.get("/api/games/search").status_code == 400

    def test_search_returns_at_most_five(self, client):
        store = InMemoryGameStore([
            GameRecord(id=str(i), name=f"Dungeon Crawl {i}", average_rating=float(i)) for i in range(1, 9)
        ])
        server.app.dependency_overrides[server.get_store] = lambda: store

        body = client.get("/api/games/search", params={"q": "dungeon"}).json()

        assert body["totalCount"] == 5
        assert body["games"][0]["name"] == "Dungeon Crawl 8"

    def test_get_game(self, client):
        response = client.get("/api/games/3")
        assert response.status_code == 200
        assert response.json()["name"] == "Pandemic"

    def test_unknown_game(self, client):
        assert client.get("/api/games/nope").status_code == 404

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "games": 6}
