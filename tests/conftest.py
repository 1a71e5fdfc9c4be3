"""
Shared pytest fixtures for treekeep tests.

Provides real SQLite stores in temp directories, container builders, and
stores with deliberately broken serialization for integrity tests.
"""

import itertools
import zipfile
from pathlib import Path

import pytest

from treekeep.api import DocumentLibrary
from treekeep.config import LibraryConfig
from treekeep.document_store import DocumentStore


SAMPLE_TREE = {
    "id": "0",
    "content": "",
    "children": [
        {"id": "1", "content": "a"},
        {"id": "2", "content": "b", "children": [{"id": "3", "content": "c"}]},
    ],
}


def make_container(store_dir: Path, container: Path) -> Path:
    """Zip a store directory into a container file."""
    with zipfile.ZipFile(container, "w") as z:
        for f in sorted(store_dir.rglob("*")):
            if f.is_file():
                z.write(f, f.relative_to(store_dir).as_posix())
    return container


class NondeterministicStore:
    """Store whose every dump differs in a node, not just start_time."""

    def __init__(self):
        self._calls = itertools.count(1)

    def dump(self, stream) -> int:
        n = next(self._calls)
        stream.write(
            '{"version":"1","db_type":"sqlite","start_time":"2026-01-01T00:00:00",'
            '"db_info":{"db_name":"flaky","doc_count":1}}\n'
        )
        stream.write(f'{{"docs":[{{"_id":"0","content":"dump {n}"}}]}}\n')
        stream.write('{"seq":1}\n')
        return 1


@pytest.fixture
def data_dir(tmp_path):
    """Application data directory for a test."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def library(data_dir):
    """DocumentLibrary without the operations log."""
    lib = DocumentLibrary(config=LibraryConfig(data_dir=data_dir, ops_log=False))
    yield lib
    lib.close()


@pytest.fixture
def store(tmp_path):
    """A store seeded with SAMPLE_TREE."""
    ds = DocumentStore(tmp_path / "sample-db")
    ds.seed(SAMPLE_TREE)
    yield ds
    ds.close()


@pytest.fixture
def container(tmp_path):
    """A .gko container holding a store seeded with SAMPLE_TREE."""
    src = tmp_path / "src-db"
    with DocumentStore(src) as ds:
        ds.seed(SAMPLE_TREE)
    docs = tmp_path / "docs"
    docs.mkdir()
    return make_container(src, docs / "outline.gko")
