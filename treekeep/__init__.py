"""
treekeep

Safe persistence for tree-structured outline documents.

Quick Start:
    from treekeep import DocumentLibrary

    lib = DocumentLibrary()                 # uses ~/.treekeep/ by default
    workspace = lib.open_file("notes.gko")  # backup + extract to a swap folder
    store = lib.mount(workspace)
    lib.save(store, "notes.gko")           # dual dump, verify, commit

    result = lib.import_document("legacy.json")

CLI Usage:
    treekeep open notes.gko
    treekeep save <workspace> notes.gko
    treekeep import legacy.json
    treekeep hash notes.gko

Environment Variables:
    TREEKEEP_DATA_DIR   - Override the application data directory
    TREEKEEP_VERBOSE    - Enable debug logging in the CLI

Configuration is persisted in a TOML file within the data directory.
"""

__version__ = "0.3.0"

from .api import DocumentLibrary
from .document_store import DocumentStore
from .errors import ArchiveError, DocumentImportError, IntegrityError, TreekeepError
from .hashing import content_digest
from .importer import ImportResult
from .save import SaveResult

__all__ = [
    "ArchiveError",
    "DocumentImportError",
    "DocumentLibrary",
    "DocumentStore",
    "ImportResult",
    "IntegrityError",
    "SaveResult",
    "TreekeepError",
    "content_digest",
    "__version__",
]
