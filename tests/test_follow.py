"""Tests for fetching and following a single document."""

import json
from contextlib import aclosing

import httpx
import pytest

from sanity_listen.documents.fetcher import DocumentFetcher
from sanity_listen.documents.follow import follow_document
from sanity_listen.listen.options import ListenOptions
from sanity_listen.utils.errors import ReconcileError, TransportError

from stream_fakes import FakeResponse, FakeTransport

WELCOME = b'event: welcome\ndata: {"listenerName":"l1"}\n\n'


def mutation(document_id, result=None) -> bytes:
    data = {"documentId": document_id}
    if result is not None:
        data["result"] = result
    return f"event: mutation\ndata: {json.dumps(data)}\n\n".encode()


class FakeFetcher:
    def __init__(self, published=None, draft=None) -> None:
        self.pair = (published, draft)
        self.requested = []

    async def fetch_pair(self, document_id):
        self.requested.append(document_id)
        return self.pair


@pytest.fixture
def options() -> ListenOptions:
    return ListenOptions(project_id="abc123", dataset="production", token="secret")


@pytest.mark.asyncio
async def test_fetch_pair_splits_documents_by_id(options):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v2021-10-21/data/doc/production/D,drafts.D"
        assert request.headers["authorization"] == "Bearer secret"
        return httpx.Response(
            200,
            json={"documents": [{"_id": "drafts.D", "title": "X"}], "omitted": [{"id": "D"}]},
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        published, draft = await DocumentFetcher(options, client=client).fetch_pair("drafts.D")

    assert published is None
    assert draft == {"_id": "drafts.D", "title": "X"}


@pytest.mark.asyncio
async def test_fetch_pair_error_status(options):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportError) as excinfo:
            await DocumentFetcher(options, client=client).fetch_pair("D")

    assert excinfo.value.http_status == 404


@pytest.mark.asyncio
async def test_follow_document_yields_initial_then_changes(options):
    published = {"_id": "D", "title": "A"}
    draft = {"_id": "drafts.D", "title": "X"}
    response = FakeResponse(
        [
            WELCOME,
            b":\n\n",
            mutation("drafts.D", draft),
            mutation("D", {"_id": "D", "title": "X"}),
            mutation("drafts.D"),
        ]
    )
    transport = FakeTransport(response)
    fetcher = FakeFetcher(published=published)

    async with aclosing(
        follow_document("D", options, transport=transport, fetcher=fetcher)
    ) as snapshots:
        emitted = [snapshot async for snapshot in snapshots]

    assert emitted == [published, draft, {"_id": "D", "title": "X"}]
    assert fetcher.requested == ["D"]
    assert response.close_count == 1
    assert "%24draftId=%22drafts.D%22" in transport.url
    assert "includeResult=true" in transport.url


@pytest.mark.asyncio
async def test_follow_document_yields_none_when_missing(options):
    response = FakeResponse([WELCOME, mutation("D", {"_id": "D", "title": "new"})])
    fetcher = FakeFetcher()

    async with aclosing(
        follow_document("D", options, transport=FakeTransport(response), fetcher=fetcher)
    ) as snapshots:
        emitted = [snapshot async for snapshot in snapshots]

    assert emitted == [None, {"_id": "D", "title": "new"}]


@pytest.mark.asyncio
async def test_follow_document_early_exit_closes_connection(options):
    response = FakeResponse([WELCOME, mutation("D", {"_id": "D", "title": "B"})])

    async with aclosing(
        follow_document(
            "D",
            options,
            transport=FakeTransport(response),
            fetcher=FakeFetcher(published={"_id": "D", "title": "A"}),
        )
    ) as snapshots:
        async for snapshot in snapshots:
            assert snapshot == {"_id": "D", "title": "A"}
            break

    assert response.close_count == 1


@pytest.mark.asyncio
async def test_follow_document_propagates_reconcile_errors(options):
    response = FakeResponse([WELCOME, mutation("someone-else")])
    with pytest.raises(ReconcileError):
        async with aclosing(
            follow_document("D", options, transport=FakeTransport(response), fetcher=FakeFetcher())
        ) as snapshots:
            async for _ in snapshots:
                pass
    assert response.close_count == 1


@pytest.mark.asyncio
async def test_follow_document_without_welcome_yields_nothing(options):
    response = FakeResponse([b":\n\n"])
    fetcher = FakeFetcher()

    async with aclosing(
        follow_document("D", options, transport=FakeTransport(response), fetcher=fetcher)
    ) as snapshots:
        emitted = [snapshot async for snapshot in snapshots]

    assert emitted == []
    assert fetcher.requested == []
    assert response.close_count == 1


def revised(document_id, rev, previous=None, **fields) -> bytes:
    data = {
        "documentId": document_id,
        "result": {"_id": document_id, "_rev": rev, **fields},
        "resultRev": rev,
    }
    if previous is not None:
        data["previousRev"] = previous
    return f"event: mutation\ndata: {json.dumps(data)}\n\n".encode()


async def follow_all(options, chunks, fetcher) -> list:
    async with aclosing(
        follow_document("D", options, transport=FakeTransport(FakeResponse(chunks)), fetcher=fetcher)
    ) as snapshots:
        return [snapshot async for snapshot in snapshots]


@pytest.mark.asyncio
async def test_follow_document_skips_mutations_already_in_snapshot(options):
    fetched = {"_id": "D", "_rev": "r2", "title": "C"}
    chunks = [
        WELCOME,
        revised("D", "r1", title="B"),
        revised("D", "r2", previous="r1", title="C"),
    ]

    emitted = await follow_all(options, chunks, FakeFetcher(published=fetched))

    assert [doc["title"] for doc in emitted] == ["C"]


@pytest.mark.asyncio
async def test_follow_document_skips_stale_events_buffered_before_welcome(options):
    fetched = {"_id": "D", "_rev": "r2", "title": "C"}
    chunks = [
        revised("D", "r1", title="B"),
        WELCOME,
        revised("D", "r2", previous="r1", title="C"),
        revised("D", "r3", previous="r2", title="E"),
    ]

    emitted = await follow_all(options, chunks, FakeFetcher(published=fetched))

    assert [doc["title"] for doc in emitted] == ["C", "E"]


@pytest.mark.asyncio
async def test_follow_document_applies_changes_made_after_the_fetch(options):
    fetched = {"_id": "D", "_rev": "r0", "title": "A"}
    chunks = [WELCOME, revised("D", "r1", previous="r0", title="B")]

    emitted = await follow_all(options, chunks, FakeFetcher(published=fetched))

    assert [doc["title"] for doc in emitted] == ["A", "B"]


@pytest.mark.asyncio
async def test_follow_document_gates_draft_independently(options):
    published = {"_id": "D", "_rev": "p1", "title": "A"}
    draft = {"_id": "drafts.D", "_rev": "d2", "title": "X2"}
    chunks = [
        WELCOME,
        revised("drafts.D", "d1", title="X1"),
        revised("drafts.D", "d2", previous="d1", title="X2"),
        revised("drafts.D", "d3", previous="d2", title="X3"),
    ]

    emitted = await follow_all(options, chunks, FakeFetcher(published=published, draft=draft))

    assert [doc["title"] for doc in emitted] == ["X2", "X3"]
