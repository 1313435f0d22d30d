"""Grounding lookup: fetch matching games and render them as prompt context."""

import logging
from typing import List, Sequence, Tuple

from meeple.data.models import GameRecord, QueryCriteria

logger = logging.getLogger(__name__)

NO_GAMES_BLOCK = "No games found matching the criteria. Answer from general board game knowledge."


def _truncate(text: str, max_chars: int) -> str:
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


def format_game(game: GameRecord, overview_max_chars: int = 200) -> str:
    return (
        f"- {game.name}: {_truncate(game.overview, overview_max_chars)} "
        f"(Players: {game.min_players}-{game.max_players}, "
        f"Playtime: {game.min_playtime}-{game.max_playtime} min, "
        f"Weight: {game.weight}, Rating: {game.average_rating:.1f}/10)"
    )


def format_games_for_grounding(
    games: Sequence[GameRecord],
    total: int,
    overview_max_chars: int = 200,
) -> str:
    """
    Render games as a plain-text context block.

    Never returns an empty string: an empty result still produces a
    "no games found" block.
    """
    if not games:
        return NO_GAMES_BLOCK

    lines = [f"Found {len(games)} of {total} games matching the criteria:"]
    lines.extend(format_game(game, overview_max_chars) for game in games)
    return "\n".join(lines)


class GroundingLookup:
    """Queries the game store, keeps the best rated games and formats them."""

    def __init__(self, store, limit: int = 20, overview_max_chars: int = 200):
        self.store = store
        self.limit = limit
        self.overview_max_chars = overview_max_chars

    def _ranked(self, criteria: QueryCriteria) -> Tuple[List[GameRecord], int]:
        games = list(self.store.query_games(criteria))
        games.sort(key=lambda g: g.average_rating, reverse=True)
        logger.info(f"[Grounding] {len(games)} games matched, keeping {min(len(games), self.limit)}")
        return games[:self.limit], len(games)

    def lookup(self, criteria: QueryCriteria) -> List[GameRecord]:
        """Return up to ``limit`` matching games, highest average rating first."""
        return self._ranked(criteria)[0]

    def build_block(self, criteria: QueryCriteria) -> Tuple[str, int]:
        """
        Look up games and format them in one step.

        Returns:
            (grounding text block, number of matching games before the cap)
        """
        games, total = self._ranked(criteria)
        return format_games_for_grounding(games, total, self.overview_max_chars), total
