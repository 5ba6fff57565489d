"""Prefix-match query interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from indexsync.index.storage import IndexStore
from indexsync.registry import RegistrationRegistry


@dataclass(slots=True)
class SearchResult:
    id: Any
    type: str
    title: str
    aliases: List[str]
    score: int
    exts: Dict[str, Any]


class Searcher:
    """Forwards prefix queries to the index store, scoped per record type."""

    def __init__(self, registry: RegistrationRegistry, store: IndexStore) -> None:
        self.registry = registry
        self.store = store

    def scope_for(self, type_name: str) -> str:
        if type_name in self.registry:
            return self.registry.get(type_name).document_type
        return type_name

    def prefix_match(
        self,
        type_name: str,
        query: str,
        *,
        limit: int = 10,
        conditions: Optional[Mapping[str, Any]] = None,
    ) -> List[SearchResult]:
        rows = self.store.complete(
            self.scope_for(type_name), query, limit=limit, conditions=conditions
        )
        results: List[SearchResult] = []
        for row in rows:
            results.append(
                SearchResult(
                    id=row["id"],
                    type=row["type"],
                    title=row["title"],
                    aliases=list(row.get("aliases") or []),
                    score=int(row.get("score") or 0),
                    exts=dict(row.get("exts") or {}),
                )
            )
        return results
