"""
Tests for search_index.py - Elasticsearch REST adapter

Uses httpx.MockTransport so no search cluster is needed.
"""
import json

import httpx
import pytest

from company_registry.core.errors import IndexNotFoundError, SearchIndexError
from company_registry.services.search_index import ElasticsearchIndex


INDEX_MISSING_BODY = {
    "error": {"type": "index_not_found_exception", "reason": "no such index [companies]"},
    "status": 404,
}


class MockCluster:
    """Records every request and answers with a canned response."""

    def __init__(self, status_code=200, body=None, failures_before_success=0):
        self.requests = []
        self.status_code = status_code
        self.body = body if body is not None else {"result": "created"}
        self.failures_before_success = failures_before_success

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures_before_success > 0:
            self.failures_before_success -= 1
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status_code, json=self.body)


def _index(cluster, refresh="false"):
    return ElasticsearchIndex(
        base_url="http://search.test:9200",
        index="companies",
        timeout=1,
        refresh=refresh,
        transport=httpx.MockTransport(cluster),
    )


class TestUpsert:

    @pytest.mark.asyncio
    async def test_put_document_by_id(self):
        cluster = MockCluster(status_code=201)
        doc = {"title": "Acme", "description": "", "url": "", "created": "2024-03-01T12:30:00+00:00"}

        await _index(cluster).upsert("a" * 32, doc)

        request = cluster.requests[0]
        assert request.method == "PUT"
        assert request.url.path == f"/companies/_doc/{'a' * 32}"
        assert json.loads(request.content) == doc
        assert "refresh" not in request.url.params

    @pytest.mark.asyncio
    async def test_refresh_policy_forwarded(self):
        cluster = MockCluster()
        await _index(cluster, refresh="wait_for").upsert("a" * 32, {"title": "Acme"})
        assert cluster.requests[0].url.params["refresh"] == "wait_for"

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        cluster = MockCluster(status_code=503, body={"error": {"type": "unavailable"}})
        with pytest.raises(SearchIndexError):
            await _index(cluster).upsert("a" * 32, {"title": "Acme"})

    @pytest.mark.asyncio
    async def test_transient_connection_error_is_retried(self):
        cluster = MockCluster(failures_before_success=1)

        await _index(cluster).upsert("a" * 32, {"title": "Acme"})

        assert len(cluster.requests) == 2

    @pytest.mark.asyncio
    async def test_persistent_connection_error_raises_after_retries(self):
        cluster = MockCluster(failures_before_success=10)

        with pytest.raises(SearchIndexError):
            await _index(cluster).upsert("a" * 32, {"title": "Acme"})
        assert len(cluster.requests) == 3


class TestDelete:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"result": "not_found"}, INDEX_MISSING_BODY])
    async def test_absent_document_is_not_an_error(self, body):
        cluster = MockCluster(status_code=404, body=body)

        await _index(cluster).delete("a" * 32)

        assert cluster.requests[0].method == "DELETE"
        assert cluster.requests[0].url.path == f"/companies/_doc/{'a' * 32}"

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        cluster = MockCluster(status_code=500, body={"error": {"type": "boom"}})
        with pytest.raises(SearchIndexError):
            await _index(cluster).delete("a" * 32)


class TestQuerySorted:

    @pytest.mark.asyncio
    async def test_builds_sorted_paginated_query(self):
        cluster = MockCluster(
            body={
                "hits": {
                    "hits": [
                        {"_id": "1" * 32, "_source": {"title": "Acme", "description": "Widgets", "url": "", "created": "x"}},
                        {"_id": "2" * 32, "_source": {"title": "Globex"}},
                    ]
                }
            }
        )

        hits = await _index(cluster).query_sorted("title", "asc", 20, 10)

        body = json.loads(cluster.requests[0].content)
        assert cluster.requests[0].url.path == "/companies/_search"
        assert body["from"] == 20
        assert body["size"] == 10
        assert body["query"] == {"match_all": {}}
        assert body["sort"] == [{"title.keyword": {"order": "asc", "unmapped_type": "keyword"}}]

        assert [h.id for h in hits] == ["1" * 32, "2" * 32]
        assert hits[0].description == "Widgets"
        assert hits[1].description == ""
        assert hits[1].url == ""

    @pytest.mark.asyncio
    async def test_text_query_matches_title(self):
        cluster = MockCluster(body={"hits": {"hits": []}})

        await _index(cluster).query_sorted("title", "desc", 0, 5, text="acme widgets")

        body = json.loads(cluster.requests[0].content)
        assert body["query"] == {"match": {"title": {"query": "acme widgets", "operator": "and"}}}
        assert body["sort"] == [{"title.keyword": {"order": "desc", "unmapped_type": "keyword"}}]

    @pytest.mark.asyncio
    async def test_missing_index_reported_distinctly(self):
        cluster = MockCluster(status_code=404, body=INDEX_MISSING_BODY)
        with pytest.raises(IndexNotFoundError):
            await _index(cluster).query_sorted("title", "asc", 0, 20)

    @pytest.mark.asyncio
    async def test_other_errors_are_not_index_missing(self):
        cluster = MockCluster(status_code=400, body={"error": {"type": "search_phase_execution_exception"}})
        with pytest.raises(SearchIndexError) as excinfo:
            await _index(cluster).query_sorted("title", "asc", 0, 20)
        assert not isinstance(excinfo.value, IndexNotFoundError)

    @pytest.mark.asyncio
    async def test_unexpected_body_raises(self):
        cluster = MockCluster(body={"took": 1})
        with pytest.raises(SearchIndexError):
            await _index(cluster).query_sorted("title", "asc", 0, 20)

    @pytest.mark.asyncio
    async def test_unknown_sort_field_rejected(self):
        with pytest.raises(ValueError):
            await _index(MockCluster()).query_sorted("revenue", "asc", 0, 20)
