"""Loader for exported board game catalogs (JSON arrays of game documents)."""

import json
import logging
import time
from pathlib import Path
from typing import List, Optional
import requests

from meeple.data.models import GameRecord

logger = logging.getLogger(__name__)


class CatalogLoader:
    """Loads game documents from a local catalog file, downloading it first if needed."""

    CACHE_DIR = Path("data")
    CATALOG_CACHE_FILE = CACHE_DIR / "games.json"

    def __init__(self, cache_file: Optional[Path] = None):
        """Initialize the loader and ensure the cache directory exists."""
        self.cache_file = Path(cache_file) if cache_file else self.CATALOG_CACHE_FILE
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)

    def _retry_request(self, url: str, max_retries: int = 5) -> requests.Response:
        """
        Make HTTP request with exponential backoff retry logic.

        Args:
            url: The URL to fetch
            max_retries: Maximum number of retry attempts

        Returns:
            The successful response

        Raises:
            RuntimeError: If all retries fail
        """
        for attempt in range(max_retries):
            try:
                response = requests.get(url, timeout=30)
                response.raise_for_status()
                return response
            except requests.RequestException as e:
                if attempt == max_retries - 1:
                    raise RuntimeError(f"Failed to fetch {url} after {max_retries} attempts: {e}") from e

                wait_time = 2 ** attempt  # Exponential backoff: 1s, 2s, 4s, 8s
                logger.warning(f"Request failed (attempt {attempt + 1}/{max_retries}). Retrying in {wait_time}s...")
                time.sleep(wait_time)

    def fetch_data(self, url: str, force_download: bool = False) -> None:
        """
        Download a catalog export into the local cache file.

        Args:
            url: Where the catalog JSON lives
            force_download: If True, re-download even if cache exists
        """
        if self.cache_file.exists() and not force_download:
            logger.info(f"Using cached catalog: {self.cache_file}")
            return

        logger.info(f"Downloading catalog from: {url}")
        response = self._retry_request(url)

        with open(self.cache_file, 'wb') as f:
            f.write(response.content)
        logger.info(f"Saved catalog to {self.cache_file}")

    def load_games(self, limit: Optional[int] = None) -> List[GameRecord]:
        """
        Load games from the cached catalog file.

        Documents without an id or name are skipped.

        Args:
            limit: Optional limit on number of games to load (for testing)

        Returns:
            List of GameRecord

        Raises:
            FileNotFoundError: If the catalog file doesn't exist
        """
        if not self.cache_file.exists():
            raise FileNotFoundError(
                f"Catalog file not found: {self.cache_file}. "
                "Run fetch_data() first or pass --file."
            )

        with open(self.cache_file, 'r', encoding='utf-8') as f:
            documents = json.load(f)

        if isinstance(documents, dict):
            # Some exports wrap the list: {"games": [...]}
            documents = documents.get("games", [])

        games = []
        for doc in documents:
            if not doc.get("id") or not doc.get("name"):
                continue
            try:
                games.append(GameRecord.from_document(doc))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed game {doc.get('id')}: {e}")

        if limit:
            games = games[:limit]
        logger.info(f"Loaded {len(games)} games from {self.cache_file}")
        return games
