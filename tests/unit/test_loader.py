"""Tests for change-log loading and checksums."""

import json
from pathlib import Path

import pytest

from migrata.changelog import ChangeLogLoader, compute_checksum
from migrata.core.types import AddColumn, CreateTable, Insert, Sql
from migrata.exceptions import ParseError

PERSON_TABLE = {
    "createTable": {
        "tableName": "person",
        "columns": [
            {"column": {"name": "id", "type": "int", "constraints": {"primaryKey": True}}},
            {"column": {"name": "name", "type": "varchar(50)", "constraints": {"nullable": False}}},
        ],
    }
}


def _cs(cs_id, *changes, author="alice", **extra):
    return {"changeSet": {"id": cs_id, "author": author, "changes": list(changes), **extra}}


@pytest.fixture
def loader() -> ChangeLogLoader:
    return ChangeLogLoader()


class TestLoad:
    """Tests for ChangeLogLoader.load."""

    def test_preserves_document_order(self, loader, write_changelog):
        """Change-sets come back in document order, not id order."""
        path = write_changelog(
            [
                _cs("3", PERSON_TABLE),
                _cs("1", {"sql": "SELECT 1"}),
                _cs("2", {"sql": "SELECT 2"}, author="bob"),
            ]
        )
        change_sets = loader.load(path)
        assert [str(cs.key) for cs in change_sets] == ["alice:3", "alice:1", "bob:2"]

    def test_parses_operations(self, loader, write_changelog):
        """Operations are parsed into typed models with a checksum."""
        path = write_changelog([_cs("1", PERSON_TABLE)])
        (cs,) = loader.load(path)
        (op,) = cs.operations
        assert isinstance(op, CreateTable)
        assert op.table_name == "person"
        assert op.columns[0].primary_key is True
        assert op.columns[1].nullable is False
        assert cs.filename == str(path)
        assert cs.checksum.startswith("sha256:")

    def test_json_document(self, loader, write_changelog):
        """JSON change-logs are accepted."""
        path = write_changelog([_cs("1", PERSON_TABLE)], name="changelog.json")
        (cs,) = loader.load(path)
        assert isinstance(cs.operations[0], CreateTable)

    def test_bare_list_root(self, loader, tmp_path: Path):
        """A bare list of entries is accepted as the root."""
        path = tmp_path / "bare.json"
        path.write_text(json.dumps([_cs("1", {"sql": "SELECT 1"})]))
        assert len(loader.load(path)) == 1

    def test_empty_change_log(self, loader, tmp_path: Path):
        """An empty databaseChangeLog yields no change-sets."""
        path = tmp_path / "empty.yaml"
        path.write_text("databaseChangeLog:\n")
        assert loader.load(path) == []

    def test_snake_case_operation_keys(self, loader, write_changelog):
        """snake_case operation names and parameters are accepted."""
        path = write_changelog(
            [_cs("1", {"add_column": {"table_name": "person", "columns": [{"name": "a", "type": "int"}]}})]
        )
        (cs,) = loader.load(path)
        assert isinstance(cs.operations[0], AddColumn)

    def test_numeric_ids_become_strings(self, loader, tmp_path: Path):
        """Numeric YAML ids are read as strings."""
        path = tmp_path / "ids.yaml"
        path.write_text(
            "databaseChangeLog:\n"
            "  - changeSet:\n"
            "      id: 1\n"
            "      author: alice\n"
            "      changes:\n"
            "        - sql: SELECT 1\n"
        )
        (cs,) = loader.load(path)
        assert cs.id == "1"
        assert isinstance(cs.operations[0], Sql)

    def test_missing_changes_is_empty(self, loader, write_changelog):
        """A change-set without a changes key has no operations."""
        path = write_changelog([{"changeSet": {"id": "1", "author": "alice"}}])
        (cs,) = loader.load(path)
        assert cs.operations == []

    def test_change_set_attributes(self, loader, write_changelog):
        """Comment, context, runOnChange and rollback are read."""
        path = write_changelog(
            [
                _cs(
                    "1",
                    {"insert": {"tableName": "person", "values": {"id": 1, "name": "Ada"}}},
                    comment="seed data",
                    context="dev, test",
                    runOnChange=True,
                    rollback=[{"sql": "DELETE FROM person WHERE id = 1"}],
                )
            ]
        )
        (cs,) = loader.load(path)
        assert cs.comment == "seed data"
        assert cs.contexts == ["dev", "test"]
        assert cs.run_on_change is True
        assert cs.run_always is False
        assert isinstance(cs.operations[0], Insert)
        assert cs.rollback == [Sql(sql="DELETE FROM person WHERE id = 1")]

    def test_include_spliced_in_place(self, loader, tmp_path: Path, write_changelog):
        """Included change-sets appear where the include sits."""
        write_changelog([_cs("inc-1", {"sql": "SELECT 1"})], name="parts/more.yaml")
        path = write_changelog(
            [
                _cs("1", {"sql": "SELECT 0"}),
                {"include": {"file": "parts/more.yaml"}},
                _cs("2", {"sql": "SELECT 2"}),
            ]
        )
        change_sets = loader.load(path)
        assert [cs.id for cs in change_sets] == ["1", "inc-1", "2"]
        assert change_sets[1].filename.endswith("more.yaml")


class TestParseErrors:
    """Malformed documents raise ParseError."""

    def test_missing_file(self, loader, tmp_path: Path):
        """A missing file is reported."""
        with pytest.raises(ParseError, match="not found"):
            loader.load(tmp_path / "missing.yaml")

    def test_unsupported_suffix(self, loader, tmp_path: Path):
        """Only YAML and JSON suffixes are accepted."""
        path = tmp_path / "changelog.xml"
        path.write_text("<databaseChangeLog/>")
        with pytest.raises(ParseError, match="Unsupported change-log format"):
            loader.load(path)

    def test_invalid_yaml(self, loader, tmp_path: Path):
        """Broken YAML is reported."""
        path = tmp_path / "broken.yaml"
        path.write_text("databaseChangeLog: [\n  - {changeSet: ")
        with pytest.raises(ParseError, match="Invalid YAML"):
            loader.load(path)

    def test_invalid_json(self, loader, tmp_path: Path):
        """Broken JSON is reported."""
        path = tmp_path / "broken.json"
        path.write_text('{"databaseChangeLog": [}')
        with pytest.raises(ParseError, match="Invalid JSON"):
            loader.load(path)

    def test_missing_root_key(self, loader, tmp_path: Path):
        """The databaseChangeLog root key is required."""
        path = tmp_path / "wrong.yaml"
        path.write_text("changeSets: []\n")
        with pytest.raises(ParseError, match="databaseChangeLog"):
            loader.load(path)

    def test_unrecognized_operation(self, loader, write_changelog):
        """Unknown operation names are rejected with the change-set named."""
        path = write_changelog([_cs("1", {"truncateTable": {"tableName": "person"}})])
        with pytest.raises(ParseError, match="Unrecognized operation type 'truncateTable'") as exc:
            loader.load(path)
        assert exc.value.change_set == "alice:1"

    def test_unknown_operation_parameter(self, loader, write_changelog):
        """Unknown operation parameters are rejected."""
        path = write_changelog([_cs("1", {"dropTable": {"tableName": "person", "cascade": True}})])
        with pytest.raises(ParseError, match="Invalid 'dropTable'"):
            loader.load(path)

    def test_type_parameter_rejected(self, loader, write_changelog):
        """A 'type' parameter cannot override the operation name."""
        path = write_changelog([_cs("1", {"dropTable": {"tableName": "person", "type": "sql"}})])
        with pytest.raises(ParseError, match="unknown parameter 'type'"):
            loader.load(path)

    def test_unknown_column_type(self, loader, write_changelog):
        """Unknown column types are rejected."""
        path = write_changelog(
            [_cs("1", {"addColumn": {"tableName": "t", "columns": [{"name": "g", "type": "geometry"}]}})]
        )
        with pytest.raises(ParseError, match="Unknown column type"):
            loader.load(path)

    def test_constraints_must_be_mapping(self, loader, write_changelog):
        """A non-mapping constraints block is rejected."""
        column = {"column": {"name": "id", "type": "int", "constraints": ["primaryKey"]}}
        path = write_changelog([_cs("1", {"createTable": {"tableName": "t", "columns": [column]}})])
        with pytest.raises(ParseError, match="constraints must be a mapping"):
            loader.load(path)

    @pytest.mark.parametrize("changes", [{}, "", "SELECT 1"])
    def test_changes_must_be_list(self, loader, write_changelog, changes):
        """A changes section that is not a list is rejected."""
        path = write_changelog([{"changeSet": {"id": "1", "author": "alice", "changes": changes}}])
        with pytest.raises(ParseError, match="'changes' must be a list"):
            loader.load(path)

    def test_rollback_must_be_list(self, loader, write_changelog):
        """A rollback section that is not a list is rejected."""
        path = write_changelog([_cs("1", {"sql": "SELECT 1"}, rollback={})])
        with pytest.raises(ParseError, match="'rollback' must be a list"):
            loader.load(path)

    def test_missing_author(self, loader, write_changelog):
        """A change-set needs both id and author."""
        path = write_changelog([{"changeSet": {"id": "1", "changes": []}}])
        with pytest.raises(ParseError, match="'id' and 'author'"):
            loader.load(path)

    def test_unknown_change_set_key(self, loader, write_changelog):
        """Unknown change-set attributes are rejected."""
        path = write_changelog([_cs("1", {"sql": "SELECT 1"}, failOnError=False)])
        with pytest.raises(ParseError, match="failOnError"):
            loader.load(path)

    def test_unknown_entry(self, loader, write_changelog):
        """Unknown top-level entries are rejected."""
        path = write_changelog([{"property": {"name": "x"}}])
        with pytest.raises(ParseError, match="Unknown change-log entry 'property'"):
            loader.load(path)

    def test_duplicate_identifier(self, loader, write_changelog):
        """The same (author, id) twice is rejected."""
        path = write_changelog([_cs("1", {"sql": "SELECT 1"}), _cs("1", {"sql": "SELECT 2"})])
        with pytest.raises(ParseError, match="Duplicate change-set identifier"):
            loader.load(path)

    def test_same_id_different_author_is_fine(self, loader, write_changelog):
        """Identity includes the author."""
        path = write_changelog(
            [_cs("1", {"sql": "SELECT 1"}), _cs("1", {"sql": "SELECT 2"}, author="bob")]
        )
        assert len(loader.load(path)) == 2

    def test_duplicate_across_include(self, loader, write_changelog):
        """Duplicates are detected across included files."""
        write_changelog([_cs("1", {"sql": "SELECT 1"})], name="other.yaml")
        path = write_changelog([_cs("1", {"sql": "SELECT 2"}), {"include": {"file": "other.yaml"}}])
        with pytest.raises(ParseError, match="Duplicate"):
            loader.load(path)

    def test_circular_include(self, loader, write_changelog):
        """Include cycles are rejected."""
        write_changelog([{"include": {"file": "a.yaml"}}], name="b.yaml")
        path = write_changelog([{"include": {"file": "b.yaml"}}], name="a.yaml")
        with pytest.raises(ParseError, match="Circular include"):
            loader.load(path)


class TestChecksum:
    """Tests for change-set checksums."""

    def test_stable_across_loads(self, loader, write_changelog):
        """Loading the same file twice gives the same checksum."""
        path = write_changelog([_cs("1", PERSON_TABLE)])
        assert loader.load(path)[0].checksum == loader.load(path)[0].checksum

    def test_matches_compute_checksum(self, loader, write_changelog):
        """The loader uses compute_checksum over the operations."""
        path = write_changelog([_cs("1", PERSON_TABLE)])
        (cs,) = loader.load(path)
        assert cs.checksum == compute_checksum(cs.operations)

    def test_changes_when_operations_change(self, loader, write_changelog):
        """Editing an operation changes the checksum."""
        first = loader.load(write_changelog([_cs("1", {"sql": "SELECT 1"})], name="a.yaml"))
        second = loader.load(write_changelog([_cs("1", {"sql": "SELECT 2"})], name="b.yaml"))
        assert first[0].checksum != second[0].checksum

    def test_ignores_comment_and_context(self, loader, write_changelog):
        """Comment and context do not affect the checksum."""
        first = loader.load(write_changelog([_cs("1", {"sql": "SELECT 1"})], name="a.yaml"))
        second = loader.load(
            write_changelog(
                [_cs("1", {"sql": "SELECT 1"}, comment="explained", context="dev")],
                name="b.yaml",
            )
        )
        assert first[0].checksum == second[0].checksum

    def test_key_style_does_not_matter(self, loader, write_changelog):
        """camelCase and snake_case spellings checksum the same."""
        camel = loader.load(
            write_changelog([_cs("1", {"dropTable": {"tableName": "t"}})], name="a.yaml")
        )
        snake = loader.load(
            write_changelog([_cs("1", {"drop_table": {"table_name": "t"}})], name="b.json")
        )
        assert camel[0].checksum == snake[0].checksum
