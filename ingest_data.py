import sys
import argparse
import logging
from meeple.config import config
from meeple.data.catalog import CatalogLoader
from meeple.data.games import GameStore

def main():
    parser = argparse.ArgumentParser(description="Ingest a board game catalog into the game store.")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--file", help="Catalog JSON file to load (defaults to data/games.json).")
    source.add_argument("--url", help="Download the catalog JSON from this URL first.")
    parser.add_argument("--limit", type=int, help="Limit the number of games to process (for testing).")
    parser.add_argument("--force-download", action="store_true", help="Force re-download when --url is given.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # 1. Load Data
    loader = CatalogLoader(cache_file=args.file)
    try:
        if args.url:
            loader.fetch_data(args.url, force_download=args.force_download)
        games = loader.load_games(limit=args.limit)
    except (RuntimeError, FileNotFoundError, ValueError) as e:
        print(f"Failed to load data: {e}")
        sys.exit(1)

    # 2. Game Store
    try:
        store = GameStore(
            persist_dir=config.store.persist_dir,
            collection_name=config.store.collection_name,
        )
        count = store.upsert_games(games)
    except Exception as e:
        print(f"Failed to ingest into the game store: {e}")
        sys.exit(1)

    print(f"Ingestion complete: {count} games stored ({store.count()} in collection).")

if __name__ == "__main__":
    main()
