"""ChromaDB game store for board game lookups."""

import logging
import pickle
from pathlib import Path
from typing import List, Dict, Any, Optional, Iterable
import chromadb
from chromadb.config import Settings
from sklearn.feature_extraction.text import TfidfVectorizer
import numpy as np

from meeple.data.models import GameRecord, QueryCriteria

logger = logging.getLogger(__name__)

EMBEDDING_DIM = 384
LIST_SEPARATOR = "|"


class GameStoreError(RuntimeError):
    """Raised when the game store cannot be queried."""


def _title_case(term: str) -> str:
    return term.strip().lower().title()


def build_where(criteria: QueryCriteria) -> Optional[Dict[str, Any]]:
    """
    Translate the numeric part of the criteria into a ChromaDB where clause.

    Player and playtime bounds use range overlap: a game for 2-5 players
    matches a request for 4-6 players.
    """
    clauses: List[Dict[str, Any]] = []

    def overlap(low: Optional[int], high: Optional[int], min_field: str, max_field: str) -> None:
        if low is not None:
            clauses.append({max_field: {"$gte": low}})
        if high is not None:
            clauses.append({min_field: {"$lte": high}})

    overlap(criteria.min_players, criteria.max_players, "min_players", "max_players")
    overlap(criteria.min_playtime, criteria.max_playtime, "min_playtime", "max_playtime")

    if criteria.max_weight is not None:
        clauses.append({"weight": {"$lte": criteria.max_weight}})
    if criteria.min_average_rating is not None:
        clauses.append({"average_rating": {"$gte": criteria.min_average_rating}})
    if criteria.min_age is not None:
        # The game must be playable at the requested age
        clauses.append({"age_requirement": {"$lte": criteria.min_age}})

    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def matches_criteria(game: GameRecord, criteria: QueryCriteria) -> bool:
    """Check one game against every criteria field (same rules as build_where)."""
    if criteria.name and criteria.name.lower() not in game.name.lower():
        return False
    if criteria.min_players is not None and game.max_players < criteria.min_players:
        return False
    if criteria.max_players is not None and game.min_players > criteria.max_players:
        return False
    if criteria.min_playtime is not None and game.max_playtime < criteria.min_playtime:
        return False
    if criteria.max_playtime is not None and game.min_playtime > criteria.max_playtime:
        return False
    if criteria.max_weight is not None and game.weight > criteria.max_weight:
        return False
    if criteria.min_average_rating is not None and game.average_rating < criteria.min_average_rating:
        return False
    if criteria.min_age is not None and game.age_requirement > criteria.min_age:
        return False

    terms = {_title_case(t) for t in list(criteria.mechanics) + list(criteria.categories)}
    if terms:
        tags = {_title_case(t) for t in list(game.mechanics) + list(game.categories)}
        if not terms & tags:
            return False
    return True


class GameStore:
    """Stores board game documents in ChromaDB and answers filtered queries."""

    def __init__(
        self,
        persist_dir: str = "data/chroma_db",
        collection_name: str = "board_games",
        client=None,
    ):
        """Initialize ChromaDB client and collection."""
        self.persist_dir = Path(persist_dir)
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        self.vectorizer_path = self.persist_dir / "vectorizer.pkl"

        # Initialize ChromaDB with persistence
        self.client = client or chromadb.PersistentClient(
            path=str(self.persist_dir),
            settings=Settings(
                anonymized_telemetry=False,
                allow_reset=True
            )
        )

        # Load or initialize TF-IDF vectorizer
        if self.vectorizer_path.exists():
            with open(self.vectorizer_path, 'rb') as f:
                self.vectorizer = pickle.load(f)
        else:
            self.vectorizer = TfidfVectorizer(
                max_features=EMBEDDING_DIM,
                stop_words='english',
                ngram_range=(1, 2)
            )

        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            metadata={"description": "Board game catalog", "hnsw:space": "cosine"}
        )

    def _prepare_game_text(self, game: GameRecord) -> str:
        """
        Prepare searchable text from a game.

        Args:
            game: Game record

        Returns:
            Formatted text for embedding
        """
        parts = [f"Name: {game.name}"]
        if game.overview:
            parts.append(f"Overview: {game.overview}")
        if game.mechanics:
            parts.append(f"Mechanics: {', '.join(game.mechanics)}")
        if game.categories:
            parts.append(f"Categories: {', '.join(game.categories)}")
        return " | ".join(parts)

    def _prepare_metadata(self, game: GameRecord) -> Dict[str, Any]:
        """Flatten a game into scalar ChromaDB metadata."""
        return {
            "name": game.name,
            "overview": game.overview,
            "min_players": game.min_players,
            "max_players": game.max_players,
            "min_playtime": game.min_playtime,
            "max_playtime": game.max_playtime,
            "weight": float(game.weight),
            "average_rating": float(game.average_rating),
            "age_requirement": game.age_requirement,
            "num_votes": game.num_votes,
            "year_published": game.year_published,
            "mechanics": LIST_SEPARATOR.join(game.mechanics),
            "categories": LIST_SEPARATOR.join(game.categories),
        }

    @staticmethod
    def _record_from_metadata(game_id: str, metadata: Dict[str, Any]) -> GameRecord:
        def split(value: Optional[str]) -> tuple:
            return tuple(v for v in (value or "").split(LIST_SEPARATOR) if v)

        return GameRecord(
            id=game_id,
            name=metadata.get("name", ""),
            overview=metadata.get("overview", ""),
            min_players=int(metadata.get("min_players", 0)),
            max_players=int(metadata.get("max_players", 0)),
            min_playtime=int(metadata.get("min_playtime", 0)),
            max_playtime=int(metadata.get("max_playtime", 0)),
            weight=float(metadata.get("weight", 0.0)),
            average_rating=float(metadata.get("average_rating", 0.0)),
            age_requirement=int(metadata.get("age_requirement", 0)),
            num_votes=int(metadata.get("num_votes", 0)),
            year_published=int(metadata.get("year_published", 0)),
            mechanics=split(metadata.get("mechanics")),
            categories=split(metadata.get("categories")),
        )

    def _embed(self, texts: List[str]) -> List[List[float]]:
        vectors = self.vectorizer.transform(texts).toarray()
        # Small catalogs yield fewer TF-IDF features; pad to a fixed width
        if vectors.shape[1] < EMBEDDING_DIM:
            vectors = np.pad(vectors, ((0, 0), (0, EMBEDDING_DIM - vectors.shape[1])))
        return vectors.tolist()

    def upsert_games(self, games: Iterable[GameRecord], batch_size: int = 500) -> int:
        """
        Insert or update games in the store.

        Args:
            games: Game records to store
            batch_size: Number of games to write per batch

        Returns:
            Number of games written
        """
        games = [g for g in games if g.id]
        total = len(games)
        if not total:
            return 0

        logger.info(f"Upserting {total} games into ChromaDB...")

        # Fit once, on the first ingest, so every stored vector shares one feature space
        if not hasattr(self.vectorizer, "vocabulary_"):
            self.vectorizer.fit([self._prepare_game_text(g) for g in games])
            with open(self.vectorizer_path, 'wb') as f:
                pickle.dump(self.vectorizer, f)

        for i in range(0, total, batch_size):
            batch = games[i:i + batch_size]
            documents = [self._prepare_game_text(g) for g in batch]
            self.collection.upsert(
                ids=[g.id for g in batch],
                documents=documents,
                embeddings=self._embed(documents),
                metadatas=[self._prepare_metadata(g) for g in batch]
            )
            logger.info(f"  Batch {i // batch_size + 1} complete ({len(batch)} games)")

        return total

    def query_games(self, criteria: QueryCriteria) -> List[GameRecord]:
        """
        Return every game matching the criteria, unordered.

        Raises:
            GameStoreError: If ChromaDB cannot be queried
        """
        where = build_where(criteria)
        try:
            results = self.collection.get(where=where, include=["metadatas"])
        except Exception as e:
            raise GameStoreError(f"Game query failed: {e}") from e

        games = [
            self._record_from_metadata(game_id, metadata or {})
            for game_id, metadata in zip(results["ids"], results["metadatas"])
        ]
        return [g for g in games if matches_criteria(g, criteria)]

    def search_by_name(self, term: str, max_results: int = 5) -> List[GameRecord]:
        """Case-insensitive name search, best rated first."""
        matches = self.query_games(QueryCriteria(name=term))
        matches.sort(key=lambda g: (g.average_rating, g.num_votes), reverse=True)
        return matches[:max_results]

    def get_game(self, game_id: str) -> Optional[GameRecord]:
        try:
            results = self.collection.get(ids=[game_id], include=["metadatas"])
        except Exception as e:
            raise GameStoreError(f"Game lookup failed: {e}") from e
        if not results["ids"]:
            return None
        return self._record_from_metadata(results["ids"][0], results["metadatas"][0] or {})

    def count(self) -> int:
        """
        Get the total number of games in the store.

        Returns:
            Number of games stored
        """
        return self.collection.count()
