"""Core indexsync data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

Getter = Callable[[Any], Any]


@dataclass(frozen=True, slots=True)
class IndexDocument:
    """Searchable state of one record at one moment."""

    id: Any
    title: str
    aliases: List[str]
    type: str
    exts: Dict[str, Any]
    condition_fields: List[str]
    score: int

    def terms(self) -> List[str]:
        """Title followed by aliases, as indexed search keys."""
        return [self.title, *self.aliases]


@dataclass(frozen=True, slots=True)
class RecordTypeConfig:
    """Index settings for one registered record type."""

    type_name: str
    title_field: str = "title"
    alias_field: Optional[str] = None
    ext_fields: Tuple[str, ...] = ()
    score_field: str = "created_at"
    condition_fields: Tuple[str, ...] = ()
    class_name: Optional[str] = None
    accessors: Dict[str, Getter] = field(default_factory=dict, compare=False, repr=False)

    @property
    def document_type(self) -> str:
        return self.class_name or self.type_name

    def read(self, record: Any, name: str) -> Any:
        """Read the current value of ``name`` through the accessor table."""
        return self.accessors[name](record)


def coerce_score(value: Any) -> int:
    """Convert a score field value to an integer.

    Timestamps become epoch seconds, numeric strings are parsed from their
    leading digits, anything unparseable scores 0.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, date):
        return int(datetime(value.year, value.month, value.day).timestamp())
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    digits = ""
    for index, char in enumerate(text):
        if char.isdigit() or (index == 0 and char in "+-"):
            digits += char
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return 0
