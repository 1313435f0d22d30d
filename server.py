"""
The Meeple Agent - LAN Web Server

JSON API in front of the recommendation pipeline and the game catalog.
Run with: python server.py
Then POST {"query": "..."} to http://<your-ip>:8000/api/recommendations
"""

import logging
import socket
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

from meeple.agent.orchestrator import RecommendationOrchestrator
from meeple_agent import create_agent

MIN_SEARCH_CHARS = 3
MAX_SEARCH_RESULTS = 5

app = FastAPI(title="Meeple Agent API")

_agent: Optional[RecommendationOrchestrator] = None


def get_agent() -> RecommendationOrchestrator:
    """Create the agent on first use and share it across requests."""
    global _agent
    if _agent is None:
        print("Initializing Agent...")
        _agent = create_agent()
        print("Agent Ready!")
    return _agent


def get_store():
    return get_agent().grounding.store


class RecommendationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = ""
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    user_id: Optional[str] = Field(default=None, alias="userId")


class RecommendationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_text: str = Field(serialization_alias="responseText")
    thread_id: Optional[str] = Field(default=None, serialization_alias="threadId")
    matching_games_count: int = Field(default=0, serialization_alias="matchingGamesCount")


@app.post("/api/recommendations", response_model=RecommendationResponse, response_model_by_alias=True)
def recommend(request: RecommendationRequest, agent: RecommendationOrchestrator = Depends(get_agent)):
    # Sync endpoint: FastAPI runs it in the threadpool, the agent run blocks while polling
    if not request.query or not request.query.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")

    result = agent.recommend(
        request.query,
        conversation_id=request.conversation_id,
        user_id=request.user_id,
    )
    return RecommendationResponse(
        response_text=result.answer_text,
        thread_id=result.thread_id,
        matching_games_count=result.matching_games_count,
    )


@app.get("/api/games/search")
def search_games(q: str = Query(default=""), store=Depends(get_store)):
    term = q.strip()
    if len(term) < MIN_SEARCH_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Search term must be at least {MIN_SEARCH_CHARS} characters",
        )

    games = store.search_by_name(term, max_results=MAX_SEARCH_RESULTS)
    return {"games": [game.to_document() for game in games], "totalCount": len(games)}


@app.get("/api/games/{game_id}")
def get_game(game_id: str, store=Depends(get_store)):
    game = store.get_game(game_id)
    if game is None:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    return game.to_document()


@app.get("/health")
def health(store=Depends(get_store)):
    return {"status": "ok", "games": store.count()}


def get_local_ip():
    try:
        # Connect to a public DNS to get the local interface IP used for routing
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "127.0.0.1"


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    local_ip = get_local_ip()
    print("\n" + "=" * 50)
    print("MEEPLE AGENT SERVER")
    print("=" * 50)
    print("Server starting...")
    print("Local Access: http://localhost:8000")
    print(f"LAN Access:   http://{local_ip}:8000")
    print("=" * 50 + "\n")

    uvicorn.run(app, host="0.0.0.0", port=8000)
