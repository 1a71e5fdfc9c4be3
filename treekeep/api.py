"""
Core API for treekeep.

DocumentLibrary ties a data directory to the operations a host performs
over a document's life:

    open_file  -> back up and extract a container into a swap workspace
    mount      -> open the DocumentStore inside a workspace
    save       -> dual-dump, verify and commit the store to a file
    import_document / store_for_import -> bring in a foreign file
    destroy    -> remove a document's store and window-state file
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from .config import LibraryConfig, get_data_dir, load_or_create_config
from .document_store import DocumentStore
from .importer import Importer, ImportResult
from .save import SaveResult, dump_to_file, save
from .workspace import SwapWorkspaceManager

logger = logging.getLogger(__name__)


class DocumentLibrary:
    """
    Documents stored under one application data directory.

    The data directory holds workspaces, backups, imported stores,
    window-state side files, the TOML config and the operations log.
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        *,
        config: Optional[LibraryConfig] = None,
    ) -> None:
        """
        Args:
            data_dir: Data directory (default: TREEKEEP_DATA_DIR or ~/.treekeep)
            config: Explicit configuration; loaded or created when omitted
        """
        if config is not None:
            self._config = config
        else:
            path = Path(data_dir) if data_dir is not None else get_data_dir()
            self._config = load_or_create_config(path)

        self._data_dir = self._config.data_dir
        self._data_dir.mkdir(parents=True, exist_ok=True)

        self._ops_log_handler = None
        if self._config.ops_log:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._data_dir)

        self._workspaces = SwapWorkspaceManager(
            self._data_dir,
            archive_tool=self._config.archive_tool,
            archive_timeout=self._config.archive_timeout,
        )
        self._importer = Importer(self._data_dir)

    @property
    def config(self) -> LibraryConfig:
        return self._config

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def workspaces(self) -> SwapWorkspaceManager:
        return self._workspaces

    # -------------------------------------------------------------------------
    # Open / Save
    # -------------------------------------------------------------------------

    def open_file(self, container_path: Union[str, Path]) -> Path:
        """Back up and extract a container; returns the workspace path."""
        return self._workspaces.open(container_path)

    def mount(self, workspace: Union[str, Path]) -> DocumentStore:
        """Open the document store inside a workspace."""
        return DocumentStore(Path(workspace))

    def save(self, store: DocumentStore, filepath: Union[str, Path]) -> SaveResult:
        """
        Save a store to ``filepath`` with integrity verification.

        Concurrent saves to the same path must be serialized by the caller.
        """
        return save(store, filepath)

    def dump(self, store: DocumentStore, filepath: Union[str, Path]) -> Path:
        """Write a single unverified dump of ``store``."""
        return dump_to_file(store, filepath)

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    def import_document(self, filepath: Union[str, Path]) -> ImportResult:
        """Import a native dump or plain tree file."""
        return self._importer.import_document(filepath)

    def store_path(self, doc_id: str) -> Path:
        """
        Directory of a document's store, directly inside the data directory.

        Raises:
            ValueError: If ``doc_id`` is not a plain name (empty, ``.``/``..``,
                contains a path separator, or resolves elsewhere)
        """
        if (
            not doc_id
            or doc_id in (".", "..")
            or any(sep in doc_id for sep in ("/", os.sep, os.altsep) if sep)
        ):
            raise ValueError(f"Invalid document id: {doc_id!r}")
        path = self._data_dir / doc_id
        if path.resolve().parent != self._data_dir.resolve():
            raise ValueError(f"Invalid document id: {doc_id!r}")
        return path

    def store_for_import(self, result: ImportResult) -> DocumentStore:
        """
        Open the store for an imported document.

        Native imports already populated it; plain tree imports are seeded
        from the canonical document here.
        """
        store = DocumentStore(self.store_path(result.doc_id))
        if result.document is not None:
            store.seed(result.document)
        return store

    # -------------------------------------------------------------------------
    # Destroy
    # -------------------------------------------------------------------------

    def window_state_path(self, doc_id: str) -> Path:
        return self._data_dir / f"window-state-{doc_id}.json"

    def destroy(self, doc_id: str) -> None:
        """
        Remove a document's store and its window-state side file.

        The side file is best-effort: failing to delete it (including it
        not existing) is ignored. Errors destroying the store propagate.
        Only the store's own database files are deleted.

        Raises:
            ValueError: If ``doc_id`` is not a plain name; nothing is deleted
        """
        store_path = self.store_path(doc_id)
        try:
            self.window_state_path(doc_id).unlink()
        except OSError as e:
            logger.debug("Window state for %s not removed: %s", doc_id, e)
        finally:
            DocumentStore(store_path).destroy()
        logger.info("Destroyed document %s", doc_id)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Detach the operations log handler."""
        if self._ops_log_handler is not None:
            logging.getLogger("treekeep").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
