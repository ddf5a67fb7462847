"""
Persistent favorites list for the meme server.
Stored as a single JSON array of filenames.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import List

from utils.meme_files import skip_on_error

logger = logging.getLogger("meme_server.favorites")


class FavoritesStore:
    """
    Favorites kept in one JSON file, rewritten whole on every change.

    `toggle` holds a lock for the read-modify-write so concurrent requests in
    this process cannot lose updates. Separate processes sharing the same file
    are not coordinated; the last writer wins.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> List[str]:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list) or not all(isinstance(x, str) for x in data):
            raise ValueError("favorites file is not a JSON array of strings")
        return data

    def read(self) -> List[str]:
        """Current favorites. A missing or unreadable file counts as empty."""
        if not self.path.exists():
            return []
        favorites = skip_on_error(self._load, default=None,
                                  errors=(OSError, ValueError),
                                  label=f"favorites file {self.path}")
        if favorites is None:
            logger.warning("Ignoring unreadable favorites file %s", self.path)
            return []
        return favorites

    def write(self, names: List[str]):
        """Replace the favorites file with `names`. Raises OSError on failure."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = str(self.path) + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(list(names), f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def toggle(self, name: str) -> bool:
        """Add `name` if absent, otherwise remove every copy of it. Returns the new state."""
        with self._lock:
            favorites = self.read()
            was_favorite = name in favorites
            if was_favorite:
                favorites = [x for x in favorites if x != name]
            else:
                favorites.append(name)
            self.write(favorites)
        if was_favorite:
            logger.info("Removed %s from favorites", name)
        else:
            logger.info("Added %s to favorites", name)
        return not was_favorite
