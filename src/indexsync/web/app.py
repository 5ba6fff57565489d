"""FastAPI application exposing prefix-match queries."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from indexsync.config import AppConfig
from indexsync.index.search import Searcher, SearchResult
from indexsync.index.storage import SQLiteIndexStore
from indexsync.registry import RegistrationRegistry

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="indexsync", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class CompletePayload(BaseModel):
    type: str
    query: str
    db: Path | None = None
    limit: int = 10
    conditions: Dict[str, Any] | None = None


def _resolve_db_path(db: Path | None) -> Path:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    return config.resolve_db_path(Path.cwd())


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/complete")
async def complete(payload: CompletePayload) -> dict[str, List[SearchResult]]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    if not payload.type.strip():
        raise HTTPException(status_code=400, detail="Empty type")

    limit = max(1, min(payload.limit, 100))

    resolved_db = _resolve_db_path(payload.db)
    if not resolved_db.exists():
        raise HTTPException(status_code=404, detail=f"Database not found at {resolved_db}")

    store = SQLiteIndexStore(resolved_db)
    try:
        searcher = Searcher(RegistrationRegistry(), store)
        results = searcher.prefix_match(
            payload.type, query, limit=limit, conditions=payload.conditions
        )
    finally:
        store.close()
    LOGGER.debug("Prefix match %r on %s returned %d results", query, payload.type, len(results))
    return {"results": results}


@app.get("/stats")
async def stats(db: Path | None = None) -> dict[str, Any]:
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        return {"document_count": 0, "term_count": 0, "types": {}}

    store = SQLiteIndexStore(resolved_db)
    try:
        return store.get_stats()
    finally:
        store.close()
