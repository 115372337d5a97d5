"""Ping MongoDB and create the indexes the API relies on.

Usage:
  python scripts/init_db.py
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from carecamp.config import load_config
from carecamp.db import connect
from carecamp.models import ALL_COLLECTIONS


def main() -> None:
    cfg = load_config()
    store = connect(cfg)
    store.ping()
    store.ensure_indexes()

    for name in ALL_COLLECTIONS:
        print(f"{name}: {store.count(name)} documents")
    print(f"DB initialized: {cfg.MONGODB_DB_NAME}")


if __name__ == "__main__":
    main()
