"""Full-corpus index rebuilds."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Callable, Dict, Iterator, List, Optional

from indexsync.index.engine import IndexSyncEngine

LOGGER = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000

Progress = Callable[[Any], None]


def _no_progress(record: Any) -> None:
    return None


@dataclass(slots=True)
class RebuildStats:
    per_type: Dict[str, int] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.per_type.values())

    def record(self, type_name: str, count: int, skipped: bool) -> None:
        self.per_type[type_name] = count
        if skipped:
            self.skipped.append(type_name)


def iter_pages(source: Any, page_size: int) -> Optional[Iterator[List[Any]]]:
    """Page through ``source`` with the first paging capability it offers.

    Returns None when the source supports no known way of paging.
    """
    if callable(getattr(source, "iter_batches", None)):
        return (list(batch) for batch in source.iter_batches(page_size))
    if callable(getattr(source, "fetch", None)):
        return _iter_offset_pages(source, page_size)
    if isinstance(source, Iterable) and not isinstance(source, (str, bytes, Mapping)):
        return _iter_slices(source, page_size)
    return None


def _iter_offset_pages(source: Any, page_size: int) -> Iterator[List[Any]]:
    offset = 0
    while True:
        page = list(source.fetch(offset, page_size))
        if page:
            yield page
        if len(page) < page_size:
            return
        offset += len(page)


def _iter_slices(source: Iterable, page_size: int) -> Iterator[List[Any]]:
    iterator = iter(source)
    while True:
        page = list(islice(iterator, page_size))
        if not page:
            return
        yield page


class BatchReindexer:
    """Rebuilds index documents for every record a source yields."""

    def __init__(self, engine: IndexSyncEngine, *, progress: Optional[Progress] = None) -> None:
        self.engine = engine
        self.progress = progress or _no_progress
        self.last_skipped = False

    def rebuild_all(self, source: Any, page_size: int = DEFAULT_PAGE_SIZE) -> int:
        """Index every record of ``source`` unconditionally and return the count."""
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        pages = iter_pages(source, page_size)
        if pages is None:
            LOGGER.warning(
                "Skipped, record source %s does not support paging", type(source).__name__
            )
            self.last_skipped = True
            return 0

        self.last_skipped = False
        count = 0
        for page in pages:
            for record in page:
                self.engine.on_create(record)
                self.progress(record)
            count += len(page)
            LOGGER.debug("Reindexed page of %d records (%d total)", len(page), count)
        return count

    def rebuild_registered(
        self, sources: Mapping[str, Any], page_size: int = DEFAULT_PAGE_SIZE
    ) -> RebuildStats:
        """Rebuild each registered type that has a record source."""
        stats = RebuildStats()
        for type_name in self.engine.registry.indexed_types():
            if type_name not in sources:
                LOGGER.info("No record source for %s, skipping", type_name)
                continue
            LOGGER.info("Rebuilding index for %s", type_name)
            count = self.rebuild_all(sources[type_name], page_size=page_size)
            stats.record(type_name, count, self.last_skipped)
        return stats
