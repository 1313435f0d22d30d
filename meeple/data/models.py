"""Data types shared by the agent pipeline and the game store."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


# Criteria keys as the extraction assistant may spell them, lower-cased with
# underscores removed. Used to spot criteria JSON leaking into answers.
CRITERIA_KEYS = frozenset({
    "name",
    "minplayers",
    "maxplayers",
    "minplaytime",
    "maxplaytime",
    "mechanics",
    "categories",
    "maxweight",
    "minaveragerating",
    "averagerating",
    "minage",
    "agerequirement",
})


def _coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("+").strip()
    elif not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    # json.loads accepts NaN and Infinity, neither is a usable bound
    return number if math.isfinite(number) else None


class QueryCriteria(BaseModel):
    """
    Structured projection of a free-text board game question.

    Every field is optional. Accepts both snake_case keys and the
    camelCase keys used by the game catalog (``minPlayers``,
    ``averageRating``, ``ageRequirement``...).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    min_players: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("min_players", "minPlayers", "MinPlayers")
    )
    max_players: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("max_players", "maxPlayers", "MaxPlayers")
    )
    min_playtime: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("min_playtime", "minPlaytime", "MinPlaytime")
    )
    max_playtime: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("max_playtime", "maxPlaytime", "MaxPlaytime")
    )
    mechanics: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("mechanics", "Mechanics")
    )
    categories: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("categories", "Categories")
    )
    max_weight: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("max_weight", "maxWeight", "MaxWeight")
    )
    min_average_rating: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("min_average_rating", "averageRating", "minAverageRating"),
    )
    min_age: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("min_age", "ageRequirement", "minAge")
    )

    @field_validator("name", mode="before")
    @classmethod
    def _clean_name(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()

    @field_validator(
        "min_players", "max_players", "min_playtime", "max_playtime", "min_age", mode="before"
    )
    @classmethod
    def _coerce_count(cls, value: Any) -> Optional[int]:
        number = _coerce_number(value)
        if number is None or number <= 0:
            return None
        return int(round(number))

    @field_validator("max_weight", "min_average_rating", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> Optional[float]:
        number = _coerce_number(value)
        if number is None or number <= 0:
            return None
        return number

    @field_validator("mechanics", "categories", mode="before")
    @classmethod
    def _coerce_terms(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            return []
        return [str(term).strip() for term in value if str(term).strip()]

    @model_validator(mode="after")
    def _normalize(self) -> "QueryCriteria":
        if self.name:
            self.name = self.name.title()
        if self.min_players and self.max_players and self.min_players > self.max_players:
            self.min_players, self.max_players = self.max_players, self.min_players
        if self.min_playtime and self.max_playtime and self.min_playtime > self.max_playtime:
            self.min_playtime, self.max_playtime = self.max_playtime, self.min_playtime
        # Ratings are on a 1-10 scale, complexity weight on 1-5
        if self.min_average_rating is not None:
            self.min_average_rating = min(max(self.min_average_rating, 1.0), 10.0)
        if self.max_weight is not None:
            self.max_weight = min(max(self.max_weight, 1.0), 5.0)
        return self

    def is_empty(self) -> bool:
        """True when nothing at all was extracted from the question."""
        return not any([
            self.name,
            self.min_players,
            self.max_players,
            self.min_playtime,
            self.max_playtime,
            self.mechanics,
            self.categories,
            self.max_weight,
            self.min_average_rating,
            self.min_age,
        ])


@dataclass(frozen=True)
class GameRecord:
    """Read-only game document as stored in the catalog."""
    id: str
    name: str
    overview: str = ""
    min_players: int = 0
    max_players: int = 0
    min_playtime: int = 0
    max_playtime: int = 0
    weight: float = 0.0
    average_rating: float = 0.0
    age_requirement: int = 0
    num_votes: int = 0
    year_published: int = 0
    mechanics: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "GameRecord":
        """
        Build a record from a catalog document.

        Args:
            doc: Game document using the catalog's camelCase field names

        Returns:
            GameRecord instance
        """
        return cls(
            id=str(doc["id"]),
            name=doc.get("name", ""),
            overview=doc.get("overview") or doc.get("description") or "",
            min_players=int(doc.get("minPlayers") or 0),
            max_players=int(doc.get("maxPlayers") or 0),
            min_playtime=int(doc.get("minPlaytime") or 0),
            max_playtime=int(doc.get("maxPlaytime") or 0),
            weight=float(doc.get("weight") or 0.0),
            average_rating=float(doc.get("averageRating") or 0.0),
            age_requirement=int(doc.get("ageRequirement") or 0),
            num_votes=int(doc.get("numVotes") or 0),
            year_published=int(doc.get("yearPublished") or 0),
            mechanics=tuple(doc.get("mechanics") or ()),
            categories=tuple(doc.get("categories") or ()),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "overview": self.overview,
            "minPlayers": self.min_players,
            "maxPlayers": self.max_players,
            "minPlaytime": self.min_playtime,
            "maxPlaytime": self.max_playtime,
            "weight": self.weight,
            "averageRating": self.average_rating,
            "ageRequirement": self.age_requirement,
            "numVotes": self.num_votes,
            "yearPublished": self.year_published,
            "mechanics": list(self.mechanics),
            "categories": list(self.categories),
        }


@dataclass(frozen=True)
class AgentMessage:
    """One role-tagged block of an agent turn ("system" or "user")."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class AgentRunResult:
    """Outcome of one agent run; raw_text is None when nothing usable came back."""
    raw_text: Optional[str]
    thread_id: str


@dataclass(frozen=True)
class ConversationHandle:
    """Caller conversation id paired with the agent service thread id."""
    external_id: Optional[str]
    thread_id: str


@dataclass
class RecommendationResult:
    """Final answer returned by the orchestrator."""
    answer_text: str
    handle: Optional[ConversationHandle] = None
    matching_games_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def thread_id(self) -> Optional[str]:
        return self.handle.thread_id if self.handle else None
