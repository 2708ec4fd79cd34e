from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

import httpx

from docauth.logging import get_logger
from docauth.storage.documents import DeleteResult, DocumentQuery, Patch
from docauth.storage.errors import StoreError

logger = get_logger(__name__)


class SanityClient:
    """Async client for a Sanity content lake over its HTTP data API.

    Reads go to ``/data/query`` and ``/data/doc``; every write is a single
    mutation posted to ``/data/mutate`` with ``returnDocuments`` so callers
    get the stored document back.
    """

    def __init__(
        self,
        project_id: str,
        dataset: str,
        *,
        api_version: str = "2021-04-13",
        token: Optional[str] = None,
        use_cdn: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not project_id:
            raise ValueError("project_id is required")
        self.project_id = project_id
        self.dataset = dataset
        self.api_version = api_version.lstrip("v")
        self.token = token
        self.use_cdn = use_cdn
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def api_host(self) -> str:
        return f"https://{self.project_id}.api.sanity.io"

    @property
    def cdn_host(self) -> str:
        return f"https://{self.project_id}.apicdn.sanity.io"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _url(self, endpoint: str, *, read: bool = False) -> str:
        # Token-authenticated reads must bypass the CDN to see private data
        host = self.cdn_host if read and self.use_cdn and not self.token else self.api_host
        return f"{host}/v{self.api_version}/data/{endpoint}/{self.dataset}"

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            error_body = None
            try:
                error_body = e.response.json()
            except ValueError:
                error_body = e.response.text[:200]
            logger.error(
                "sanity_api_error",
                operation=operation,
                status_code=e.response.status_code,
                error_body=error_body,
            )
            raise StoreError(
                f"{operation} failed: {e.response.status_code}",
                {"status_code": e.response.status_code, "body": error_body},
            ) from e
        except httpx.TimeoutException as e:
            logger.error("sanity_timeout", operation=operation, error=str(e))
            raise StoreError(f"{operation} timed out") from e
        except httpx.HTTPError as e:
            logger.error(
                "sanity_transport_error",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise StoreError(f"{operation} failed to reach the content lake") from e

    @staticmethod
    def _encode_params(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
        return {f"${name}": json.dumps(value) for name, value in (params or {}).items()}

    async def _mutate(self, mutation: Dict[str, Any], operation: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            self._url("mutate"),
            operation,
            params={"returnIds": "true", "returnDocuments": "true", "visibility": "sync"},
            json={"mutations": [mutation]},
        )

    @staticmethod
    def _first_document(body: Dict[str, Any], operation: str) -> Dict[str, Any]:
        results = body.get("results") or []
        if not results or not results[0].get("document"):
            raise StoreError(f"{operation} returned no document", {"body": body})
        return results[0]["document"]

    async def create(self, document: Dict[str, Any]) -> Dict[str, Any]:
        if not document.get("_type"):
            raise StoreError("document is missing _type", {"fields": sorted(document)})
        body = await self._mutate({"create": document}, "create")
        return self._first_document(body, "create")

    async def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        body = await self._request(
            "GET", f"{self._url('doc', read=True)}/{document_id}", "get_document"
        )
        documents = body.get("documents") or []
        return documents[0] if documents else None

    async def fetch(
        self, query: DocumentQuery, params: Optional[Dict[str, Any]] = None
    ) -> Any:
        params = params or {}
        missing = query.missing_params(params)
        if missing:
            raise StoreError("query parameters missing", {"params": missing})
        request_params = {"query": query.to_groq(), **self._encode_params(params)}
        body = await self._request(
            "GET", self._url("query", read=True), "fetch", params=request_params
        )
        return body.get("result")

    def patch(self, document_id: str) -> Patch:
        return Patch(document_id, self._commit_patch)

    async def _commit_patch(
        self, document_id: str, set_fields: Dict[str, Any], unset: List[str]
    ) -> Dict[str, Any]:
        patch: Dict[str, Any] = {"id": document_id}
        if set_fields:
            patch["set"] = set_fields
        if unset:
            patch["unset"] = unset
        body = await self._mutate({"patch": patch}, "patch")
        return self._first_document(body, "patch")

    async def delete(
        self,
        target: Union[str, DocumentQuery],
        params: Optional[Dict[str, Any]] = None,
    ) -> DeleteResult:
        if isinstance(target, DocumentQuery):
            selection: Dict[str, Any] = {"query": target.to_groq()}
            if params:
                selection["params"] = params
        else:
            selection = {"id": target}
        body = await self._mutate({"delete": selection}, "delete")
        return DeleteResult(results=list(body.get("results") or []))
