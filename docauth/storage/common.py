"""Common document handling shared between the memory and Redis stores.

Both backends keep raw documents and evaluate ``DocumentQuery`` in process,
so stamping, patch application and query matching live here to keep their
behaviour identical.
"""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from docauth.storage.documents import DocumentQuery
from docauth.storage.errors import StoreError

SYSTEM_FIELDS = ("_id", "_type", "_rev", "_createdAt", "_updatedAt")
_IMMUTABLE_FIELDS = frozenset({"_id", "_type", "_createdAt"})


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_document_id() -> str:
    return str(uuid.uuid4())


def stamp_new_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Copy ``document`` and fill in the system fields a content lake assigns."""

    if not document.get("_type"):
        raise StoreError("document is missing _type", {"fields": sorted(document)})
    stamped = copy.deepcopy(document)
    stamped["_id"] = stamped.get("_id") or new_document_id()
    now = _timestamp()
    stamped["_createdAt"] = now
    stamped["_updatedAt"] = now
    stamped["_rev"] = uuid.uuid4().hex
    return stamped


def apply_patch(
    document: Dict[str, Any], set_fields: Dict[str, Any], unset: List[str]
) -> Dict[str, Any]:
    """Return a patched copy of ``document`` with a fresh revision."""

    touched = _IMMUTABLE_FIELDS.intersection(set_fields) | _IMMUTABLE_FIELDS.intersection(unset)
    if touched:
        raise StoreError("cannot patch system fields", {"fields": sorted(touched)})
    patched = copy.deepcopy(document)
    patched.update(copy.deepcopy(set_fields))
    for path in unset:
        patched.pop(path, None)
    patched["_updatedAt"] = _timestamp()
    patched["_rev"] = uuid.uuid4().hex
    return patched


def matches(document: Dict[str, Any], query: DocumentQuery, params: Dict[str, Any]) -> bool:
    if document.get("_type") != query.type:
        return False
    return all(document.get(name) == params[name] for name in query.match)


def select_documents(
    documents: Iterable[Dict[str, Any]],
    query: DocumentQuery,
    params: Optional[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Filter ``documents`` by ``query``; ``[0]`` slicing is applied here too."""

    params = params or {}
    missing = query.missing_params(params)
    if missing:
        raise StoreError("query parameters missing", {"params": missing})
    hits = [doc for doc in documents if matches(doc, query, params)]
    return hits[:1] if query.first else hits


def reference_ids(document: Dict[str, Any], fields: Iterable[str]) -> List[str]:
    ids = []
    for name in fields:
        ref = document.get(name)
        if isinstance(ref, dict) and ref.get("_ref"):
            ids.append(ref["_ref"])
    return ids


def expand_references(
    document: Dict[str, Any],
    fields: Iterable[str],
    resolve: Callable[[str], Optional[Dict[str, Any]]],
) -> Dict[str, Any]:
    """Replace ``{"_ref": id}`` values with the referenced document (``None`` if dangling)."""

    expanded = copy.deepcopy(document)
    for name in fields:
        ref = expanded.get(name)
        if isinstance(ref, dict) and ref.get("_ref"):
            target = resolve(ref["_ref"])
            expanded[name] = copy.deepcopy(target) if target is not None else None
    return expanded


def shape_result(hits: List[Dict[str, Any]], query: DocumentQuery) -> Any:
    if query.first:
        return hits[0] if hits else None
    return hits
