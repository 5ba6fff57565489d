"""Keeps search index documents in step with record lifecycle events."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from indexsync.errors import ChangeTrackingUnavailable
from indexsync.index.storage import IndexStore
from indexsync.models import IndexDocument, RecordTypeConfig, coerce_score
from indexsync.records import record_type_name
from indexsync.registry import RegistrationRegistry
from indexsync.utils.text import resolve_aliases, unique_terms

LOGGER = logging.getLogger(__name__)

ID_FIELD = "id"


class IndexSyncEngine:
    """Reacts to record create, update and destroy events.

    The surrounding persistence layer calls :meth:`after_save` (or
    :meth:`on_update` for updates) once a write has succeeded and
    :meth:`on_destroy` before a record is deleted. Store failures are not
    retried here; they propagate to that caller.
    """

    def __init__(self, registry: RegistrationRegistry, store: IndexStore) -> None:
        self.registry = registry
        self.store = store

    def config_for(self, record: Any) -> RecordTypeConfig:
        return self.registry.get(record_type_name(record))

    def needs_reindex(self, record: Any) -> bool:
        config = self.config_for(record)
        changed = False

        tracker = getattr(record, "saved_change_to", None)
        for field in config.ext_fields:
            if field == ID_FIELD:
                continue
            if tracker is None:
                self._warn_untracked(config, field)
                continue
            try:
                if tracker(field):
                    changed = True
            except ChangeTrackingUnavailable:
                self._warn_untracked(config, field)

        # Failures here count as "no change" for the check that raised.
        try:
            if record.saved_change_to(config.title_field):
                changed = True
        except Exception as exc:
            LOGGER.debug("Title change check failed for %s: %s", config.type_name, exc)

        try:
            alias_value = config.read(record, config.alias_field) if config.alias_field else None
            if alias_value or record.saved_change_to(config.title_field):
                changed = True
        except Exception as exc:
            LOGGER.debug("Alias presence check failed for %s: %s", config.type_name, exc)

        return changed

    def _warn_untracked(self, config: RecordTypeConfig, field: str) -> None:
        LOGGER.warning(
            "%s record reindex on update needs change tracking for '%s'",
            config.type_name,
            field,
        )

    def build_document(self, record: Any) -> IndexDocument:
        """Build a fresh index document from the record's current values."""
        config = self.config_for(record)
        alias_value = config.read(record, config.alias_field) if config.alias_field else None
        return IndexDocument(
            id=record.id,
            title=config.read(record, config.title_field),
            aliases=resolve_aliases(alias_value),
            type=config.document_type,
            exts={field: config.read(record, field) for field in config.ext_fields},
            condition_fields=list(config.condition_fields),
            score=coerce_score(config.read(record, config.score_field)),
        )

    def on_create(self, record: Any) -> bool:
        document = self.build_document(record)
        LOGGER.debug("Indexing %s %s", document.type, document.id)
        return self.store.save(document)

    def on_update(self, record: Any) -> None:
        config = self.config_for(record)
        if self.needs_reindex(record):
            titles = self._previous_titles(record, config)
            self._remove_titles(record, config, titles)
        self.after_save(record, is_new_record=False)

    def after_save(self, record: Any, is_new_record: Optional[bool] = None) -> bool:
        if is_new_record is None:
            is_new_record = bool(getattr(record, "is_new_record", False))
        if self.needs_reindex(record) or is_new_record:
            return self.on_create(record)
        return False

    def on_destroy(self, record: Any) -> int:
        config = self.config_for(record)
        alias_value = config.read(record, config.alias_field) if config.alias_field else None
        titles = resolve_aliases(alias_value)
        titles.append(config.read(record, config.title_field))
        return self._remove_titles(record, config, titles)

    def _previous_titles(self, record: Any, config: RecordTypeConfig) -> List[Any]:
        titles: List[Any] = []
        if config.alias_field:
            titles = resolve_aliases(record.value_before_last_save(config.alias_field))
        titles.append(record.value_before_last_save(config.title_field))
        return titles

    def _remove_titles(self, record: Any, config: RecordTypeConfig, titles: List[Any]) -> int:
        terms = unique_terms(titles)
        for title in terms:
            self.store.remove(record.id, title, config.document_type)
        return len(terms)
