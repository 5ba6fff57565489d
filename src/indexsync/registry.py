"""Registration of record types for search indexing."""

from __future__ import annotations

import logging
from operator import attrgetter
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from indexsync.errors import RegistrationError, UnknownRecordTypeError
from indexsync.models import Getter, RecordTypeConfig

LOGGER = logging.getLogger(__name__)


class RegistrationRegistry:
    """Per-type index configuration, populated once at startup."""

    def __init__(self) -> None:
        self._configs: Dict[str, RecordTypeConfig] = {}

    def register(
        self,
        type_name: str,
        *,
        title_field: str = "title",
        alias_field: Optional[str] = None,
        ext_fields: Sequence[str] = (),
        score_field: str = "created_at",
        condition_fields: Sequence[str] = (),
        class_name: Optional[str] = None,
        getter: Callable[[str], Getter] = attrgetter,
    ) -> RecordTypeConfig:
        """Register a record type and return its frozen configuration.

        ``score_field`` and ``condition_fields`` are always appended to
        ``ext_fields``, even when already listed there.
        """
        if not type_name:
            raise RegistrationError(repr(type_name), "type name is empty")
        if type_name in self._configs:
            raise RegistrationError(type_name, "already registered")
        if isinstance(ext_fields, str) or isinstance(condition_fields, str):
            raise RegistrationError(type_name, "ext_fields and condition_fields must be sequences")

        all_ext_fields = (*ext_fields, score_field, *condition_fields)
        names = [title_field, *all_ext_fields]
        if alias_field:
            names.append(alias_field)
        accessors = {name: getter(name) for name in dict.fromkeys(names)}

        config = RecordTypeConfig(
            type_name=type_name,
            title_field=title_field,
            alias_field=alias_field or None,
            ext_fields=tuple(all_ext_fields),
            score_field=score_field,
            condition_fields=tuple(condition_fields),
            class_name=class_name,
            accessors=accessors,
        )
        self._configs[type_name] = config
        LOGGER.debug("Registered %s for indexing as %s", type_name, config.document_type)
        return config

    def register_index(self, type_name: str, **options: Any) -> RecordTypeConfig:
        LOGGER.warning(
            "DEPRECATION WARNING: register_index is deprecated, use register instead."
        )
        return self.register(type_name, **options)

    def get(self, type_name: str) -> RecordTypeConfig:
        try:
            return self._configs[type_name]
        except KeyError:
            raise UnknownRecordTypeError(type_name) from None

    def indexed_types(self) -> List[str]:
        """Registered type names, in registration order."""
        return list(self._configs)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._configs

    def __iter__(self) -> Iterator[RecordTypeConfig]:
        return iter(list(self._configs.values()))

    def __len__(self) -> int:
        return len(self._configs)
