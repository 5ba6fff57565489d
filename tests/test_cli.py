"""Tests for CLI commands."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from indexsync.cli import _ensure_db_parent, _parse_conditions, _setup_logging, app
from indexsync.index.storage import SQLiteIndexStore


runner = CliRunner()


def write_records(path: Path) -> Path:
    rows = [
        {"id": 7, "title": "Roses", "tags": "red, blue", "created_at": 3, "category": "flower"},
        {"id": 8, "title": "Rover", "tags": None, "created_at": 5, "category": "car"},
    ]
    path.write_text("\n".join(json.dumps(row) for row in rows) + "\n", encoding="utf-8")
    return path


def rebuild(tmp_path: Path, *extra: str):
    records = write_records(tmp_path / "records.jsonl")
    db_path = tmp_path / "index.db"
    result = runner.invoke(
        app,
        [
            "rebuild",
            str(records),
            "--type",
            "Article",
            "--alias-field",
            "tags",
            "--condition-field",
            "category",
            "--db",
            str(db_path),
            *extra,
        ],
    )
    return result, records, db_path


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        with patch("indexsync.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        with patch("indexsync.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestHelpers:
    """Tests for small CLI helpers."""

    def test_ensure_db_parent_creates_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "subdir" / "test.db"
        _ensure_db_parent(db_path)
        assert db_path.parent.exists()

    def test_parse_conditions(self) -> None:
        assert _parse_conditions(["category=car", "year=2020"]) == {"category": "car", "year": 2020}

    def test_parse_conditions_invalid(self) -> None:
        import typer

        with pytest.raises(typer.BadParameter):
            _parse_conditions(["nonsense"])


class TestRebuildCommand:
    """Tests for the rebuild command."""

    def test_rebuild_indexes_records(self, tmp_path: Path) -> None:
        result, _, db_path = rebuild(tmp_path)

        assert result.exit_code == 0, result.output
        assert "Indexed: 2" in result.stdout

        store = SQLiteIndexStore(db_path)
        document = store.get_document(7, "Article")
        store.close()
        assert document["aliases"] == ["red", "blue"]
        assert document["score"] == 3
        assert document["exts"] == {"created_at": 3, "category": "flower"}

    def test_rebuild_class_name(self, tmp_path: Path) -> None:
        result, _, db_path = rebuild(tmp_path, "--class-name", "Post")

        assert result.exit_code == 0, result.output
        store = SQLiteIndexStore(db_path)
        assert store.count_documents("Post") == 2
        store.close()

    def test_rebuild_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["rebuild", str(tmp_path / "nope.jsonl"), "--type", "Article", "--db", str(tmp_path / "x.db")]
        )
        assert result.exit_code != 0

    def test_rebuild_invalid_json(self, tmp_path: Path) -> None:
        records = tmp_path / "bad.jsonl"
        records.write_text("not json\n", encoding="utf-8")

        result = runner.invoke(
            app, ["rebuild", str(records), "--type", "Article", "--db", str(tmp_path / "x.db")]
        )
        assert result.exit_code != 0


class TestSearchCommand:
    """Tests for the search command."""

    def test_search_finds_alias(self, tmp_path: Path) -> None:
        _, _, db_path = rebuild(tmp_path)

        result = runner.invoke(app, ["search", "blu", "--type", "Article", "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "Roses" in result.stdout

    def test_search_with_condition(self, tmp_path: Path) -> None:
        _, _, db_path = rebuild(tmp_path)

        result = runner.invoke(
            app,
            ["search", "ro", "--type", "Article", "--where", "category=car", "--db", str(db_path)],
        )

        assert result.exit_code == 0, result.output
        assert "Rover" in result.stdout
        assert "Roses" not in result.stdout

    def test_search_no_matches(self, tmp_path: Path) -> None:
        _, _, db_path = rebuild(tmp_path)

        result = runner.invoke(app, ["search", "zzz", "--type", "Article", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "No matches found" in result.stdout

    def test_search_database_not_found(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["search", "ro", "--type", "Article", "--db", str(tmp_path / "missing.db")]
        )
        assert result.exit_code != 0


class TestRemoveCommand:
    """Tests for the remove command."""

    def test_remove_drops_entries(self, tmp_path: Path) -> None:
        _, records, db_path = rebuild(tmp_path)

        result = runner.invoke(
            app,
            ["remove", str(records), "--type", "Article", "--alias-field", "tags", "--db", str(db_path)],
        )

        assert result.exit_code == 0, result.output
        assert "Removed 4 index entries" in result.stdout
        store = SQLiteIndexStore(db_path)
        assert store.count_documents() == 0
        store.close()

    def test_remove_database_not_found(self, tmp_path: Path) -> None:
        records = write_records(tmp_path / "records.jsonl")

        result = runner.invoke(
            app, ["remove", str(records), "--type", "Article", "--db", str(tmp_path / "missing.db")]
        )

        assert result.exit_code == 0
        assert "Database not found" in result.stdout


class TestStatsCommand:
    """Tests for the stats command."""

    def test_stats(self, tmp_path: Path) -> None:
        _, _, db_path = rebuild(tmp_path)

        result = runner.invoke(app, ["stats", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "Article" in result.stdout
        assert "Total documents: 2" in result.stdout

    def test_stats_database_not_found(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["stats", "--db", str(tmp_path / "missing.db")])

        assert result.exit_code == 0
        assert "Database not found" in result.stdout


class TestWebCommand:
    """Tests for the web command."""

    def test_web_starts_uvicorn(self, tmp_path: Path) -> None:
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["web", "--port", "9000", "--db", str(tmp_path / "x.db")])

        assert result.exit_code == 0
        assert mock_run.call_args.kwargs["port"] == 9000


class TestErrorPaths:
    """Tests for cleanup and error reporting when a command fails."""

    def test_remove_invalid_json(self, tmp_path: Path) -> None:
        """A malformed line is a usage error and nothing is removed."""
        _, _, db_path = rebuild(tmp_path)
        records = tmp_path / "bad.jsonl"
        records.write_text('{"id": 7, "title": "Roses"}\nnot json\n', encoding="utf-8")

        result = runner.invoke(app, ["remove", str(records), "--type", "Article", "--db", str(db_path)])

        assert result.exit_code == 2
        store = SQLiteIndexStore(db_path)
        assert store.get_document(7, "Article") is not None
        store.close()

    def test_remove_missing_file(self, tmp_path: Path) -> None:
        _, _, db_path = rebuild(tmp_path)

        result = runner.invoke(
            app, ["remove", str(tmp_path / "nope.jsonl"), "--type", "Article", "--db", str(db_path)]
        )

        assert result.exit_code == 2

    def test_rebuild_closes_store_on_store_error(self, tmp_path: Path) -> None:
        records = write_records(tmp_path / "records.jsonl")

        with patch("indexsync.cli.SQLiteIndexStore") as mock_store_class:
            store = mock_store_class.return_value
            store.save.side_effect = sqlite3.OperationalError("disk I/O error")
            result = runner.invoke(
                app, ["rebuild", str(records), "--type", "Article", "--db", str(tmp_path / "x.db")]
            )

        assert result.exit_code != 0
        assert isinstance(result.exception, sqlite3.OperationalError)
        store.close.assert_called_once()

    def test_search_closes_store_on_error(self, tmp_path: Path) -> None:
        db_path = tmp_path / "x.db"
        db_path.touch()

        with patch("indexsync.cli.SQLiteIndexStore") as mock_store_class:
            store = mock_store_class.return_value
            store.complete.side_effect = sqlite3.OperationalError("locked")
            result = runner.invoke(app, ["search", "ro", "--type", "Article", "--db", str(db_path)])

        assert result.exit_code != 0
        store.close.assert_called_once()


def write_manifest(tmp_path: Path, entries: dict) -> Path:
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps(entries), encoding="utf-8")
    return path


class TestRebuildAllCommand:
    """Tests for the rebuild-all command."""

    def test_rebuilds_every_type(self, tmp_path: Path) -> None:
        write_records(tmp_path / "articles.jsonl")
        (tmp_path / "topics.jsonl").write_text(
            json.dumps({"id": 1, "name": "Gardening", "created_at": 9}) + "\n", encoding="utf-8"
        )
        manifest = write_manifest(
            tmp_path,
            {
                "Article": {"records": "articles.jsonl", "alias_field": "tags"},
                "Topic": {"records": "topics.jsonl", "title_field": "name", "class_name": "Subject"},
            },
        )
        db_path = tmp_path / "index.db"

        result = runner.invoke(app, ["rebuild-all", str(manifest), "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "Indexed: 3" in result.stdout
        store = SQLiteIndexStore(db_path)
        assert store.count_documents("Article") == 2
        assert store.get_document(1, "Subject")["title"] == "Gardening"
        store.close()

    def test_unknown_option(self, tmp_path: Path) -> None:
        write_records(tmp_path / "articles.jsonl")
        manifest = write_manifest(
            tmp_path, {"Article": {"records": "articles.jsonl", "colour": "red"}}
        )

        result = runner.invoke(app, ["rebuild-all", str(manifest), "--db", str(tmp_path / "x.db")])

        assert result.exit_code == 2

    def test_missing_records_file(self, tmp_path: Path) -> None:
        manifest = write_manifest(tmp_path, {"Article": {"records": "nope.jsonl"}})

        result = runner.invoke(app, ["rebuild-all", str(manifest), "--db", str(tmp_path / "x.db")])

        assert result.exit_code == 2

    def test_invalid_manifest(self, tmp_path: Path) -> None:
        manifest = tmp_path / "manifest.json"
        manifest.write_text("[]", encoding="utf-8")

        result = runner.invoke(app, ["rebuild-all", str(manifest), "--db", str(tmp_path / "x.db")])

        assert result.exit_code == 2
