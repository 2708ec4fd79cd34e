from __future__ import annotations

import copy
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from docauth.logging import get_logger
from docauth.storage.common import (
    apply_patch,
    expand_references,
    select_documents,
    shape_result,
    stamp_new_document,
)
from docauth.storage.documents import DeleteResult, DocumentQuery, Patch
from docauth.storage.errors import StoreError


class MemoryDocumentStore:
    """In-process document store for tests and single-node development.

    When ``fs_root`` is given every mutation is snapshotted to a JSON file and
    reloaded on construction, so state survives restarts.
    """

    def __init__(self, fs_root: str | None = None) -> None:
        self.logger = get_logger(__name__)
        self.documents: Dict[str, Dict[str, Any]] = {}
        # RLock so helpers can re-enter while a mutation holds the lock
        self._data_lock = threading.RLock()
        self.fs_root = Path(fs_root) if fs_root else None
        if self.fs_root is not None:
            self.fs_root.mkdir(parents=True, exist_ok=True)
            if not self._load_state():
                self._persist_state()

    def _state_path(self) -> Path:
        state_dir = self.fs_root / "state"
        state_dir.mkdir(parents=True, exist_ok=True)
        return state_dir / "document_store.json"

    def _persist_state(self) -> None:
        if self.fs_root is None:
            return
        path = self._state_path()
        try:
            path.write_text(json.dumps({"documents": list(self.documents.values())}, indent=2))
        except Exception as exc:
            raise StoreError(f"failed to persist in-memory state: {exc}") from exc

    def _load_state(self) -> bool:
        path = self._state_path()
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return False
        self.documents = {doc["_id"]: doc for doc in data.get("documents", [])}
        self.logger.debug("memory_store_loaded", documents=len(self.documents))
        return True

    async def create(self, document: Dict[str, Any]) -> Dict[str, Any]:
        with self._data_lock:
            stamped = stamp_new_document(document)
            if stamped["_id"] in self.documents:
                raise StoreError("document id already exists", {"id": stamped["_id"]})
            self.documents[stamped["_id"]] = stamped
            self._persist_state()
            return copy.deepcopy(stamped)

    async def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        with self._data_lock:
            doc = self.documents.get(document_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def fetch(
        self, query: DocumentQuery, params: Optional[Dict[str, Any]] = None
    ) -> Any:
        with self._data_lock:
            hits = select_documents(self.documents.values(), query, params)
            if query.expand:
                hits = [
                    expand_references(doc, query.expand, self.documents.get)
                    for doc in hits
                ]
            else:
                hits = [copy.deepcopy(doc) for doc in hits]
            return shape_result(hits, query)

    def patch(self, document_id: str) -> Patch:
        return Patch(document_id, self._commit_patch)

    async def _commit_patch(
        self, document_id: str, set_fields: Dict[str, Any], unset: List[str]
    ) -> Dict[str, Any]:
        with self._data_lock:
            current = self.documents.get(document_id)
            if current is None:
                raise StoreError("document not found for patch", {"id": document_id})
            patched = apply_patch(current, set_fields, unset)
            self.documents[document_id] = patched
            self._persist_state()
            return copy.deepcopy(patched)

    async def delete(
        self,
        target: Union[str, DocumentQuery],
        params: Optional[Dict[str, Any]] = None,
    ) -> DeleteResult:
        with self._data_lock:
            if isinstance(target, DocumentQuery):
                ids = [doc["_id"] for doc in select_documents(self.documents.values(), target, params)]
            else:
                ids = [target]
            results = []
            for doc_id in ids:
                removed = self.documents.pop(doc_id, None)
                if removed is not None:
                    results.append({"id": doc_id, "operation": "delete", "document": removed})
            if results:
                self._persist_state()
            return DeleteResult(results=results)
