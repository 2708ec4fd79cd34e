from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from docauth.logging import get_logger
from docauth.storage.common import (
    apply_patch,
    expand_references,
    reference_ids,
    select_documents,
    shape_result,
    stamp_new_document,
)
from docauth.storage.documents import DeleteResult, DocumentQuery, Patch
from docauth.storage.errors import StoreError

logger = get_logger(__name__)


class RedisDocumentStore:
    """Documents as JSON strings in Redis, indexed by one id set per ``_type``.

    Queries scan the id set of the requested type; the auth collections are
    small enough per deployment that no secondary indexes are kept.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0

    def __init__(
        self,
        redis_url: str,
        *,
        key_prefix: str = "docauth",
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        client: Any = None,
    ) -> None:
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.client = client or aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def _doc_key(self, document_id: str) -> str:
        return f"{self.key_prefix}:doc:{document_id}"

    def _type_key(self, doc_type: str) -> str:
        return f"{self.key_prefix}:type:{doc_type}"

    async def close(self) -> None:
        await self.client.aclose()

    async def _load(self, document_id: str) -> Optional[Dict[str, Any]]:
        raw = await self.client.get(self._doc_key(document_id))
        return json.loads(raw) if raw else None

    async def _load_many(self, document_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        if not document_ids:
            return {}
        raws = await self.client.mget([self._doc_key(doc_id) for doc_id in document_ids])
        return {
            doc_id: json.loads(raw)
            for doc_id, raw in zip(document_ids, raws)
            if raw
        }

    async def create(self, document: Dict[str, Any]) -> Dict[str, Any]:
        stamped = stamp_new_document(document)
        # Document and type index are written in one MULTI so neither exists alone
        pipe = self.client.pipeline(transaction=True)
        pipe.set(self._doc_key(stamped["_id"]), json.dumps(stamped), nx=True)
        pipe.sadd(self._type_key(stamped["_type"]), stamped["_id"])
        try:
            created, _ = await pipe.execute()
            if not created:
                raise StoreError("document id already exists", {"id": stamped["_id"]})
        except RedisError as exc:
            logger.error("redis_store_error", operation="create", error=str(exc))
            raise StoreError("create failed") from exc
        return stamped

    async def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._load(document_id)
        except RedisError as exc:
            logger.error("redis_store_error", operation="get_document", error=str(exc))
            raise StoreError("get_document failed") from exc

    async def _select(
        self, query: DocumentQuery, params: Optional[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        ids = sorted(await self.client.smembers(self._type_key(query.type)))
        documents = await self._load_many(ids)
        return select_documents((documents[i] for i in ids if i in documents), query, params)

    async def fetch(
        self, query: DocumentQuery, params: Optional[Dict[str, Any]] = None
    ) -> Any:
        try:
            hits = await self._select(query, params)
            if query.expand:
                wanted = sorted({ref for doc in hits for ref in reference_ids(doc, query.expand)})
                referenced = await self._load_many(wanted)
                hits = [expand_references(doc, query.expand, referenced.get) for doc in hits]
        except RedisError as exc:
            logger.error("redis_store_error", operation="fetch", error=str(exc))
            raise StoreError("fetch failed") from exc
        return shape_result(hits, query)

    def patch(self, document_id: str) -> Patch:
        return Patch(document_id, self._commit_patch)

    async def _commit_patch(
        self, document_id: str, set_fields: Dict[str, Any], unset: List[str]
    ) -> Dict[str, Any]:
        try:
            current = await self._load(document_id)
            if current is None:
                raise StoreError("document not found for patch", {"id": document_id})
            patched = apply_patch(current, set_fields, unset)
            # xx: never resurrect a document deleted since it was read
            written = await self.client.set(
                self._doc_key(document_id), json.dumps(patched), xx=True
            )
            if not written:
                raise StoreError("document deleted during patch", {"id": document_id})
        except RedisError as exc:
            logger.error("redis_store_error", operation="patch", error=str(exc))
            raise StoreError("patch failed") from exc
        return patched

    async def delete(
        self,
        target: Union[str, DocumentQuery],
        params: Optional[Dict[str, Any]] = None,
    ) -> DeleteResult:
        try:
            if isinstance(target, DocumentQuery):
                victims = await self._select(target, params)
            else:
                doc = await self._load(target)
                victims = [doc] if doc is not None else []
            results = []
            if victims:
                pipe = self.client.pipeline(transaction=True)
                for doc in victims:
                    pipe.delete(self._doc_key(doc["_id"]))
                    pipe.srem(self._type_key(doc["_type"]), doc["_id"])
                replies = await pipe.execute()
                for doc, removed in zip(victims, replies[::2]):
                    if removed:
                        results.append({"id": doc["_id"], "operation": "delete", "document": doc})
        except RedisError as exc:
            logger.error("redis_store_error", operation="delete", error=str(exc))
            raise StoreError("delete failed") from exc
        return DeleteResult(results=results)
