"""Record capability contract and an in-memory change-tracking record."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Tuple, runtime_checkable

from indexsync.errors import ChangeTrackingUnavailable


@runtime_checkable
class IndexableRecord(Protocol):
    """What the sync engine needs from a persisted record."""

    @property
    def id(self) -> Any: ...

    @property
    def is_new_record(self) -> bool: ...

    def saved_change_to(self, field: str) -> bool: ...

    def value_before_last_save(self, field: str) -> Any: ...


def record_type_name(record: Any) -> str:
    """Type name a record is registered under."""
    name = getattr(record, "type_name", None)
    if isinstance(name, str) and name:
        return name
    return type(record).__name__


class TrackedRecord:
    """Dict-backed record that remembers what its last save changed.

    Values staged with :meth:`assign` become current on :meth:`save`, which
    also records ``(before, after)`` pairs for every field that changed.
    When ``tracked_fields`` is given, change queries for other fields raise
    :class:`ChangeTrackingUnavailable`.

    Attribute access is shadowed for fields named like the record's own
    members (``type_name``, ``save``, ``assign``, ``read`` and so on); read
    such fields with :meth:`read` or register the type with
    :func:`field_reader` as its getter.
    """

    def __init__(
        self,
        type_name: str,
        values: Optional[Dict[str, Any]] = None,
        *,
        persisted: bool = False,
        tracked_fields: Optional[Iterable[str]] = None,
    ) -> None:
        object.__setattr__(self, "_type_name", type_name)
        object.__setattr__(self, "_values", {})
        object.__setattr__(self, "_pending", dict(values or {}))
        object.__setattr__(self, "_saved_changes", {})
        object.__setattr__(self, "_persisted", False)
        object.__setattr__(
            self, "_tracked", None if tracked_fields is None else frozenset(tracked_fields)
        )
        if persisted:
            self._values.update(self._pending)
            self._pending.clear()
            object.__setattr__(self, "_persisted", True)

    def __getattr__(self, name: str) -> Any:
        values = object.__getattribute__(self, "_values")
        if name in values:
            return values[name]
        raise AttributeError(f"{self._type_name} record has no field {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        self.assign(**{name: value})

    def __repr__(self) -> str:
        return f"TrackedRecord({self._type_name!r}, {self._values!r})"

    @property
    def type_name(self) -> str:
        return self._type_name

    @property
    def id(self) -> Any:
        return self._values.get("id")

    @property
    def is_new_record(self) -> bool:
        return not self._persisted

    @property
    def saved_changes(self) -> Dict[str, Tuple[Any, Any]]:
        return dict(self._saved_changes)

    def assign(self, **values: Any) -> None:
        self._pending.update(values)

    def save(self) -> Dict[str, Tuple[Any, Any]]:
        """Commit staged values and return the changes this save made."""
        changes: Dict[str, Tuple[Any, Any]] = {}
        for name, value in self._pending.items():
            before = self._values.get(name)
            if name not in self._values or before != value:
                changes[name] = (before, value)
            self._values[name] = value
        self._pending.clear()
        object.__setattr__(self, "_saved_changes", changes)
        object.__setattr__(self, "_persisted", True)
        return dict(changes)

    def _check_tracked(self, field: str) -> None:
        if self._tracked is not None and field not in self._tracked:
            raise ChangeTrackingUnavailable(field)

    def saved_change_to(self, field: str) -> bool:
        self._check_tracked(field)
        return field in self._saved_changes

    def value_before_last_save(self, field: str) -> Any:
        self._check_tracked(field)
        if field in self._saved_changes:
            return self._saved_changes[field][0]
        return self._values.get(field)

    def read(self, field: str, default: Any = None) -> Any:
        """Current value of ``field``, never a record member."""
        return self._values.get(field, default)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)


def field_reader(name: str) -> Callable[[Any], Any]:
    """Getter for registration that reads stored values before attributes.

    Missing fields read as None.
    """

    def read(record: Any) -> Any:
        if isinstance(record, TrackedRecord):
            return record.read(name)
        return getattr(record, name, None)

    return read
