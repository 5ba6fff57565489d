"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from indexsync.index.indexer import DEFAULT_PAGE_SIZE


def _get_default_db_path() -> Path:
    """Prefer a local data/ database, otherwise one in the user's home."""
    local_db = Path("data/indexsync.db")
    if local_db.exists():
        return local_db
    return Path.home() / ".indexsync" / "indexsync.db"


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    limit: int = 10

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
