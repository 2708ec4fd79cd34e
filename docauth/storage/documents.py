"""Document store contract consumed by the adapter.

The adapter only ever talks to a store through the primitives declared on
``DocumentStore``. Queries are described with ``DocumentQuery`` so the
backends can either render them to GROQ (hosted content lake) or evaluate
them in process (memory, Redis).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, Union


@dataclass(frozen=True)
class DocumentQuery:
    """Equality query over a single document type.

    ``match`` names document fields compared against the parameter of the same
    name. ``expand`` names reference fields to dereference in the result.
    """

    type: str
    match: Tuple[str, ...] = ()
    first: bool = True
    expand: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in (self.type, *self.match, *self.expand):
            if not name.isidentifier():
                raise ValueError(f"invalid query identifier: {name!r}")

    def to_groq(self) -> str:
        filters = [f'_type == "{self.type}"']
        filters.extend(f"{name} == ${name}" for name in self.match)
        groq = "*[" + " && ".join(filters) + "]"
        if self.first:
            groq += "[0]"
        if self.expand:
            projections = ", ".join(f'"{name}": {name}->' for name in self.expand)
            groq += "{..., " + projections + "}"
        return groq

    def missing_params(self, params: Dict[str, Any]) -> List[str]:
        return [name for name in self.match if name not in params]


@dataclass
class DeleteResult:
    """Outcome of a delete mutation, one entry per removed document."""

    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def documents(self) -> List[Dict[str, Any]]:
        return [entry["document"] for entry in self.results if entry.get("document")]


PatchCommitter = Callable[[str, Dict[str, Any], List[str]], Awaitable[Dict[str, Any]]]


class Patch:
    """Builder returned by ``DocumentStore.patch``; nothing is written until ``commit``."""

    def __init__(self, document_id: str, committer: PatchCommitter) -> None:
        self.document_id = document_id
        self._committer = committer
        self._set: Dict[str, Any] = {}
        self._unset: List[str] = []

    def set(self, fields: Dict[str, Any]) -> "Patch":
        self._set.update(fields)
        return self

    def unset(self, paths: List[str]) -> "Patch":
        self._unset.extend(paths)
        return self

    async def commit(self) -> Dict[str, Any]:
        return await self._committer(self.document_id, dict(self._set), list(self._unset))


class DocumentStore(Protocol):
    async def create(self, document: Dict[str, Any]) -> Dict[str, Any]: ...

    async def get_document(self, document_id: str) -> Optional[Dict[str, Any]]: ...

    async def fetch(
        self, query: DocumentQuery, params: Optional[Dict[str, Any]] = None
    ) -> Any: ...

    def patch(self, document_id: str) -> Patch: ...

    async def delete(
        self,
        target: Union[str, DocumentQuery],
        params: Optional[Dict[str, Any]] = None,
    ) -> DeleteResult: ...


__all__ = ["DocumentQuery", "DeleteResult", "Patch", "PatchCommitter", "DocumentStore"]
