"""
Import pipeline for native dumps and plain tree JSON.

Format detection looks only at the first line of the file:

- It parses as a dump header (an object with ``db_info.db_name``): the file
  is a native dump and is streamed into a fresh store.
- It is an incomplete JSON prefix, e.g. the ``[`` that opens a pretty
  printed array: the file is a plain tree and is parsed whole.
- Anything else is an error. There is no second guess for first lines
  that are invalid JSON or valid JSON of the wrong shape.

Plain trees have no node ids. They are assigned ``"1"``, ``"2"``, ... in the
order the node objects appear in the text, and the nodes are wrapped under
a synthetic root with id ``"0"``.
"""

import hashlib
import itertools
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

from .document_store import ROOT_ID, DocumentStore
from .errors import DocumentImportError

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """
    An imported document.

    For native dumps the data already lives in the store named ``doc_id``
    and ``document`` is None. For plain trees ``document`` holds the
    canonical tree for the host to seed into a store.
    """
    doc_id: str
    name: str
    document: Optional[dict[str, Any]] = None
    format: str = "native"


class _IncompleteHeader(Exception):
    """First line ran out before forming a JSON value; try the plain tree format."""


def _read_first_line(filepath: Path) -> str:
    with open(filepath, "r", encoding="utf-8", newline="") as f:
        return f.readline().rstrip("\r\n")


def _is_incomplete(line: str, err: json.JSONDecodeError) -> bool:
    """True if the parser failed only because the line ended too soon."""
    return err.pos >= len(line.rstrip()) or err.msg.startswith("Unterminated string")


def probe_header(filepath: Path) -> dict[str, Any]:
    """
    Parse and validate the native dump header on the first line.

    Raises:
        _IncompleteHeader: If the first line is a truncated JSON prefix
        DocumentImportError: If the first line is not a dump header
    """
    try:
        line = _read_first_line(filepath)
    except UnicodeDecodeError as e:
        raise DocumentImportError(filepath, f"not UTF-8 text: {e}") from e

    try:
        header = json.loads(line)
    except json.JSONDecodeError as e:
        if _is_incomplete(line, e):
            raise _IncompleteHeader(str(e)) from e
        raise DocumentImportError(filepath, f"invalid header line: {e}") from e

    db_info = header.get("db_info") if isinstance(header, dict) else None
    if not isinstance(db_info, dict) or not isinstance(db_info.get("db_name"), str):
        raise DocumentImportError(filepath, "header line has no db_info.db_name")
    return header


def assign_ids(value: Any, counter: Iterator[int]) -> Any:
    """
    Give every node object an ``id``, in textual order.

    A node object is one whose first key is ``content``. The walk is
    pre-order over keys and items as parsed, which is the order the objects
    appear in the source text. The new id is placed first; an id the object
    already carries takes precedence, but still consumes a number.
    """
    if isinstance(value, dict):
        if value and next(iter(value)) == "content":
            value = {"id": str(next(counter)), **value}
        return {key: assign_ids(item, counter) for key, item in value.items()}
    if isinstance(value, list):
        return [assign_ids(item, counter) for item in value]
    return value


def _check_nodes(filepath: Path, children: Any, where: str) -> None:
    """Raise DocumentImportError at the first child that is not a node object."""
    if not isinstance(children, list):
        raise DocumentImportError(filepath, f"{where} must be an array")
    for i, child in enumerate(children):
        at = f"{where}[{i}]"
        if not isinstance(child, dict):
            raise DocumentImportError(filepath, f"node {at} is not an object")
        if "id" not in child:
            raise DocumentImportError(filepath, f"node {at} has no content as its first key")
        if child.get("children") is not None:
            _check_nodes(filepath, child["children"], f"{at}.children")


class Importer:
    """Import foreign files into stores under the data directory."""

    def __init__(self, data_dir: Path, *, clock: Callable[[], float] = time.time) -> None:
        self._data_dir = Path(data_dir)
        self._clock = clock

    def _now_ms(self) -> str:
        return str(int(self._clock() * 1000))

    def import_document(self, filepath: Union[str, Path]) -> ImportResult:
        """
        Import a native dump or a plain tree file.

        Raises:
            DocumentImportError: If neither format applies
            OSError: If the file cannot be read
        """
        path = Path(filepath)
        try:
            header = probe_header(path)
        except _IncompleteHeader:
            logger.debug("%s has no dump header, reading as plain tree", path.name)
            return self.import_plain_tree(path)
        return self.import_native(path, header)

    def import_native(self, filepath: Path, header: dict[str, Any]) -> ImportResult:
        """Stream a native dump into a fresh store."""
        db_name = header["db_info"]["db_name"]
        doc_id = hashlib.sha1((db_name + self._now_ms()).encode("utf-8")).hexdigest()

        store = DocumentStore(self._data_dir / doc_id)
        try:
            with open(filepath, "r", encoding="utf-8") as stream:
                loaded = store.load(stream)
        except BaseException:
            store.destroy()
            raise
        store.close()

        logger.info("Imported native dump %s as %s (%d nodes)", filepath.name, doc_id, loaded)
        return ImportResult(doc_id=doc_id, name=filepath.stem, document=None, format="native")

    def import_plain_tree(self, filepath: Path) -> ImportResult:
        """Parse a plain tree file into a canonical document."""
        data = filepath.read_bytes()
        doc_id = hashlib.sha1(data + self._now_ms().encode("utf-8")).hexdigest()

        try:
            seed = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DocumentImportError(filepath, f"invalid plain tree JSON: {e}") from e
        if not isinstance(seed, list):
            raise DocumentImportError(filepath, "plain tree must be a JSON array")

        document = {
            "id": ROOT_ID,
            "content": "",
            "children": assign_ids(seed, itertools.count(1)),
        }
        _check_nodes(filepath, document["children"], "children")

        logger.info("Imported plain tree %s as %s", filepath.name, doc_id)
        return ImportResult(doc_id=doc_id, name=filepath.stem, document=document, format="plain")
