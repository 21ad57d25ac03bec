# backend/company_registry/services/search_index.py
"""
Search index adapters.

The index is a derived mirror of the primary store, used to serve sorted and
paginated listings. Documents share the primary store's company id.
"""
from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

import httpx

from tenacity import retry, wait_exponential, stop_after_attempt, retry_if_exception_type

from ..core.config import get_settings
from ..core.errors import IndexNotFoundError, RegistryError, SearchIndexError

logger = logging.getLogger(__name__)

settings = get_settings()

SortOrder = Literal["asc", "desc"]

INDEX_NOT_FOUND = "index_not_found_exception"

# Text fields sort on their keyword sub-field (Elasticsearch dynamic mapping)
SORT_KEYS: Dict[str, str] = {
    "title": "title.keyword",
    "description": "description.keyword",
    "url": "url.keyword",
    "created": "created",
}


@dataclass(frozen=True)
class IndexedCompany:
    id: str
    title: str
    description: str
    url: str


class SearchIndex(ABC):

    @abstractmethod
    async def upsert(self, company_id: str, document: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete(self, company_id: str) -> None:
        """Remove a document. Deleting an absent id is not an error."""

    @abstractmethod
    async def query_sorted(
        self,
        sort_field: str,
        sort_order: SortOrder,
        offset: int,
        limit: int,
        text: Optional[str] = None,
    ) -> List[IndexedCompany]:
        """
        Return one page of documents ordered by ``sort_field``.

        Raises IndexNotFoundError when no document was ever written.
        """


def _error_type(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("type")
    return None


def _sort_key(sort_field: str) -> str:
    try:
        return SORT_KEYS[sort_field]
    except KeyError:
        raise ValueError(f"Unsupported sort field: {sort_field!r}") from None


class ElasticsearchIndex(SearchIndex):
    """
    Elasticsearch (or OpenSearch) REST adapter.

    Connection-level failures are retried; every write is an idempotent PUT or
    DELETE keyed by company id, so a retried write cannot duplicate anything.
    """

    def __init__(
        self,
        base_url: str | None = None,
        index: str | None = None,
        timeout: float | None = None,
        refresh: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url: str = (base_url or settings.SEARCH_URL).rstrip("/")
        self.index: str = index or settings.SEARCH_INDEX
        self.timeout: float = float(timeout or settings.SEARCH_TIMEOUT_SECONDS)
        self.refresh: str = (refresh or settings.SEARCH_REFRESH).lower()
        self._transport = transport

    def _write_params(self) -> Dict[str, str]:
        if self.refresh in ("true", "wait_for"):
            return {"refresh": self.refresh}
        return {}

    @retry(
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            return await client.request(method, path, **kwargs)

    async def _send(self, operation: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(
                "Search index %s failed: %s", operation, exc,
                extra={"operation": operation, "step": "search_index"},
            )
            raise SearchIndexError() from exc

    def _raise_for_status(self, operation: str, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        logger.warning(
            "Search index %s returned %s: %s",
            operation,
            resp.status_code,
            resp.text[:200],
            extra={"operation": operation, "step": "search_index"},
        )
        if resp.status_code == 404 and _error_type(resp) == INDEX_NOT_FOUND:
            raise IndexNotFoundError()
        raise SearchIndexError()

    async def upsert(self, company_id: str, document: Dict[str, Any]) -> None:
        resp = await self._send(
            "upsert",
            "PUT",
            f"/{self.index}/_doc/{company_id}",
            json=document,
            params=self._write_params(),
        )
        self._raise_for_status("upsert", resp)

    async def delete(self, company_id: str) -> None:
        resp = await self._send(
            "delete",
            "DELETE",
            f"/{self.index}/_doc/{company_id}",
            params=self._write_params(),
        )
        # Missing document or missing index: already in the desired state
        if resp.status_code == 404:
            return
        self._raise_for_status("delete", resp)

    async def query_sorted(
        self,
        sort_field: str,
        sort_order: SortOrder,
        offset: int,
        limit: int,
        text: Optional[str] = None,
    ) -> List[IndexedCompany]:
        if text:
            query: Dict[str, Any] = {"match": {"title": {"query": text, "operator": "and"}}}
        else:
            query = {"match_all": {}}

        body = {
            "from": offset,
            "size": limit,
            "query": query,
            "sort": [{_sort_key(sort_field): {"order": sort_order, "unmapped_type": "keyword"}}],
        }

        resp = await self._send("query", "POST", f"/{self.index}/_search", json=body)
        self._raise_for_status("query", resp)

        try:
            hits = resp.json()["hits"]["hits"]
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Search index returned an unexpected response body",
                extra={"operation": "query", "step": "search_index"},
            )
            raise SearchIndexError() from exc

        companies: List[IndexedCompany] = []
        for hit in hits:
            source = hit.get("_source") or {}
            companies.append(
                IndexedCompany(
                    id=hit["_id"],
                    title=source.get("title", ""),
                    description=source.get("description") or "",
                    url=source.get("url") or "",
                )
            )
        return companies


def _tokens(value: str) -> List[str]:
    return [tok for tok in re.split(r"\W+", value.lower()) if tok]


class InMemorySearchIndex(SearchIndex):
    """
    Dict-backed index for tests and local runs.

    Mirrors the Elasticsearch adapter's contract: the index comes into
    existence on the first upsert, deletes are idempotent and a title match
    requires every query token. ``fail_on`` makes one operation raise.
    """

    def __init__(self) -> None:
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.exists = False
        self.calls: Counter = Counter()
        self._failures: Dict[str, RegistryError] = {}

    def fail_on(self, operation: str, error: RegistryError) -> None:
        self._failures[operation] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        await asyncio.sleep(0)
        if operation in self._failures:
            raise self._failures[operation]

    async def upsert(self, company_id: str, document: Dict[str, Any]) -> None:
        await self._enter("upsert")
        self.exists = True
        self.documents[company_id] = dict(document)

    async def delete(self, company_id: str) -> None:
        await self._enter("delete")
        self.documents.pop(company_id, None)

    async def query_sorted(
        self,
        sort_field: str,
        sort_order: SortOrder,
        offset: int,
        limit: int,
        text: Optional[str] = None,
    ) -> List[IndexedCompany]:
        _sort_key(sort_field)
        await self._enter("query")
        if not self.exists:
            raise IndexNotFoundError()

        items = list(self.documents.items())
        if text:
            wanted = set(_tokens(text))
            items = [
                (doc_id, doc) for doc_id, doc in items
                if wanted <= set(_tokens(doc.get("title", "")))
            ]
        items.sort(key=lambda item: item[1].get(sort_field) or "", reverse=sort_order == "desc")

        return [
            IndexedCompany(
                id=doc_id,
                title=doc.get("title", ""),
                description=doc.get("description") or "",
                url=doc.get("url") or "",
            )
            for doc_id, doc in items[offset:offset + limit]
        ]
