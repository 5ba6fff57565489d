"""Text helpers for alias resolution and search term handling."""

from __future__ import annotations

from typing import Any, Iterable, List


def is_blank(value: Any) -> bool:
    """Return True for None and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def resolve_aliases(raw: Any) -> List[str]:
    """Normalize a raw alias field value into a list of alias strings.

    Strings are split on commas and each part stripped; duplicates survive
    here and are only collapsed by :func:`unique_terms`. Lists and tuples are
    copied as-is. Any other type carries no aliases.
    """
    if is_blank(raw):
        return []
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(",")]
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return []


def unique_terms(titles: Iterable[Any]) -> List[str]:
    """Drop blank titles and duplicates, keeping first-seen order."""
    seen: set[str] = set()
    terms: List[str] = []
    for title in titles:
        if is_blank(title):
            continue
        term = str(title)
        if term in seen:
            continue
        seen.add(term)
        terms.append(term)
    return terms


def normalize_term(term: str) -> str:
    """Collapse whitespace and lowercase a term for prefix matching."""
    return " ".join(term.split()).lower()
