"""Tests for format detection and the two importers."""

import hashlib
import itertools
import json

import pytest

from treekeep.document_store import DocumentStore
from treekeep.errors import DocumentImportError
from treekeep.importer import Importer, assign_ids

from conftest import SAMPLE_TREE

FIXED_NOW = 1_760_000_000.123


@pytest.fixture
def importer(data_dir):
    return Importer(data_dir, clock=lambda: FIXED_NOW)


def _no_plain_tree(*args, **kwargs):
    raise AssertionError("plain tree import must not be attempted")


class TestAssignIds:

    def test_textual_order(self):
        seed = json.loads('[{"content":"a"},{"content":"b","children":[{"content":"c"}]}]')
        assert assign_ids(seed, itertools.count(1)) == [
            {"id": "1", "content": "a"},
            {"id": "2", "content": "b", "children": [{"id": "3", "content": "c"}]},
        ]

    def test_parent_numbered_before_children(self):
        seed = json.loads('[{"content":"p","children":[{"content":"c1"},{"content":"c2"}]},{"content":"q"}]')
        result = assign_ids(seed, itertools.count(1))
        assert result[0]["id"] == "1"
        assert [c["id"] for c in result[0]["children"]] == ["2", "3"]
        assert result[1]["id"] == "4"

    def test_id_placed_first(self):
        result = assign_ids([{"content": "a", "collapsed": True}], itertools.count(1))
        assert list(result[0]) == ["id", "content", "collapsed"]

    def test_only_objects_starting_with_content(self):
        result = assign_ids([{"collapsed": True, "content": "a"}], itertools.count(1))
        assert "id" not in result[0]

    def test_existing_id_wins_but_consumes_number(self):
        seed = [{"content": "a", "id": "keep"}, {"content": "b"}]
        result = assign_ids(seed, itertools.count(1))
        assert result[0]["id"] == "keep"
        assert result[1]["id"] == "2"


class TestPlainTree:

    def test_wraps_in_root(self, importer, tmp_path):
        src = tmp_path / "legacy.json"
        src.write_text('[\n{"content":"a"},\n{"content":"b","children":[{"content":"c"}]}\n]\n')

        result = importer.import_document(src)

        assert result.format == "plain"
        assert result.name == "legacy"
        assert result.document == SAMPLE_TREE

    def test_pretty_printed_file(self, importer, tmp_path):
        src = tmp_path / "pretty.json"
        src.write_text(json.dumps([{"content": "x", "children": []}], indent=2))
        result = importer.import_document(src)
        assert result.document["children"] == [{"id": "1", "content": "x", "children": []}]

    def test_first_line_truncated_object(self, importer, tmp_path):
        src = tmp_path / "split.json"
        src.write_text('[{"content":"a"},\n{"content":"b"}]\n')
        result = importer.import_document(src)
        assert [c["id"] for c in result.document["children"]] == ["1", "2"]

    def test_generated_id_hashes_bytes_and_time(self, importer, tmp_path):
        src = tmp_path / "legacy.json"
        src.write_text('[\n{"content":"a"}\n]')
        expected = hashlib.sha1(src.read_bytes() + str(int(FIXED_NOW * 1000)).encode()).hexdigest()
        assert importer.import_document(src).doc_id == expected

    def test_invalid_body(self, importer, tmp_path):
        src = tmp_path / "broken.json"
        src.write_text('[\n{"content":"a"\n')
        with pytest.raises(DocumentImportError) as exc_info:
            importer.import_document(src)
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)

    def test_not_an_array(self, importer, tmp_path):
        src = tmp_path / "object.json"
        src.write_text('{\n"content":"a"\n}')
        with pytest.raises(DocumentImportError, match="array"):
            importer.import_document(src)

    def test_empty_file(self, importer, tmp_path):
        src = tmp_path / "empty.json"
        src.write_text("")
        with pytest.raises(DocumentImportError):
            importer.import_document(src)

    def test_node_without_leading_content(self, importer, tmp_path):
        src = tmp_path / "legacy.json"
        src.write_text('[\n{"content":"a","children":[{"children":[],"content":"b"}]}\n]\n')
        with pytest.raises(DocumentImportError, match=r"children\[0\]\.children\[0\]"):
            importer.import_document(src)

    @pytest.mark.parametrize("body", ['[\n"text"\n]', '[\n{"content":"a","children":[1]}\n]'])
    def test_non_object_child(self, importer, tmp_path, body):
        src = tmp_path / "legacy.json"
        src.write_text(body)
        with pytest.raises(DocumentImportError, match="not an object"):
            importer.import_document(src)

    def test_children_not_an_array(self, importer, tmp_path):
        src = tmp_path / "legacy.json"
        src.write_text('[\n{"content":"a","children":"b"}\n]')
        with pytest.raises(DocumentImportError, match="must be an array"):
            importer.import_document(src)


class TestNoFallback:

    def test_invalid_first_line(self, importer, tmp_path, monkeypatch):
        monkeypatch.setattr(Importer, "import_plain_tree", _no_plain_tree)
        src = tmp_path / "garbage.gko"
        src.write_text('garbage\n[{"content":"a"}]\n')
        with pytest.raises(DocumentImportError, match="invalid header"):
            importer.import_document(src)

    def test_valid_json_wrong_shape(self, importer, tmp_path, monkeypatch):
        monkeypatch.setattr(Importer, "import_plain_tree", _no_plain_tree)
        src = tmp_path / "oneline.json"
        src.write_text('[{"content":"a"}]\n')
        with pytest.raises(DocumentImportError, match="db_name"):
            importer.import_document(src)


class TestNative:

    def _write_dump(self, store, path):
        with open(path, "w", encoding="utf-8") as f:
            store.dump(f)
        return path

    def test_loads_into_fresh_store(self, importer, store, tmp_path, data_dir):
        src = self._write_dump(store, tmp_path / "outline.gko")

        result = importer.import_document(src)

        assert result.format == "native"
        assert result.document is None
        assert result.name == "outline"
        with DocumentStore(data_dir / result.doc_id) as imported:
            assert imported.to_tree() == SAMPLE_TREE

    def test_generated_id_from_db_name_and_time(self, importer, store, tmp_path):
        src = self._write_dump(store, tmp_path / "outline.gko")
        expected = hashlib.sha1(f"sample-db{int(FIXED_NOW * 1000)}".encode()).hexdigest()
        assert importer.import_document(src).doc_id == expected

    def test_load_failure_propagates(self, importer, store, tmp_path, data_dir, monkeypatch):
        monkeypatch.setattr(Importer, "import_plain_tree", _no_plain_tree)
        header = self._write_dump(store, tmp_path / "full.gko").read_text().splitlines()[0]
        src = tmp_path / "corrupt.gko"
        src.write_text(header + "\n{not json\n")

        with pytest.raises(ValueError, match="Malformed"):
            importer.import_document(src)
        assert list(data_dir.iterdir()) == []
