import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import httpx
import pytest
from botocore.exceptions import EndpointConnectionError
from openai import APIConnectionError
from pymongo.errors import ServerSelectionTimeoutError

from tools.base import ConfigurationMissing, InvalidPattern, RemoteOperationFailure
from tools.widget_file_manager import WidgetFileManagerTool
from utils.remote_services import (
    HttpIndexWriter,
    LambdaFunction,
    MongoCollection,
    MongoSearchIndex,
    NullIndexWriter,
    OpenAIEmbeddingProvider,
    WidgetFileStore,
    build_index_writer,
    decode_function_response,
    group_documents,
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status=200, text=""):
        self.status = status
        self._text = text

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, owner):
        self.owner = owner

    def request(self, method, url, json=None, headers=None):
        self.owner.requests.append({"method": method, "url": url, "json": json, "headers": headers})
        if self.owner.error is not None:
            raise self.owner.error
        return self.owner.response

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.owner.closed += 1
        return False


class FakeHttp:
    """Callable standing in for ``aiohttp.ClientSession``."""

    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse(200, "{}")
        self.error = error
        self.requests = []
        self.timeouts = []
        self.closed = 0

    def __call__(self, timeout=None):
        self.timeouts.append(timeout)
        return FakeSession(self)


class FakePayload:
    def __init__(self, data):
        self.data = data

    async def read(self):
        return self.data


class FakeLambdaClient:
    def __init__(self, owner):
        self.owner = owner

    async def invoke(self, **kwargs):
        self.owner.invocations.append(kwargs)
        if self.owner.error is not None:
            raise self.owner.error
        response = {"StatusCode": self.owner.status, "Payload": FakePayload(self.owner.payload)}
        if self.owner.function_error:
            response["FunctionError"] = self.owner.function_error
        return response

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.owner.closed += 1
        return False


class FakeBoto:
    """Callable standing in for ``aioboto3.Session``."""

    def __init__(self, payload=b'{"statusCode": 200, "body": "{}"}', status=200, function_error=None, error=None):
        self.payload = payload
        self.status = status
        self.function_error = function_error
        self.error = error
        self.sessions = []
        self.clients = []
        self.invocations = []
        self.closed = 0

    def __call__(self, **kwargs):
        self.sessions.append(kwargs)
        return self

    def client(self, service, config=None):
        self.clients.append((service, config))
        return FakeLambdaClient(self)


class FakeCursor:
    def __init__(self, docs):
        self.docs = list(docs)
        self.limited = 0

    def limit(self, n):
        self.limited = n
        return self

    async def to_list(self, length=None):
        return self.docs[: self.limited] if self.limited else self.docs


class FakeMongo:
    """Callable standing in for ``pymongo.AsyncMongoClient``.

    ``client[db][coll]`` resolves back to this object so queries land here.
    """

    def __init__(self, docs=(), error=None):
        self.docs = list(docs)
        self.error = error
        self.connections = []
        self.names = []
        self.queries = []
        self.pipelines = []
        self.closed = 0

    def __call__(self, uri, **kwargs):
        self.connections.append((uri, kwargs))
        return self

    def __getitem__(self, name):
        self.names.append(name)
        return self

    def find(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return FakeCursor(self.docs)

    async def aggregate(self, pipeline):
        self.pipelines.append(pipeline)
        if self.error is not None:
            raise self.error
        return FakeCursor(self.docs)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed += 1
        return False


def _lambda(boto, timeout=45):
    return LambdaFunction(
        "embeddable-widget-src-update",
        access_key_id="AKIA",
        secret_access_key="shh",
        secret="s3cret",
        timeout=timeout,
        session_factory=boto,
    )


def _store(boto=None, mongo=None):
    return WidgetFileStore(
        _lambda(boto or FakeBoto()),
        MongoCollection("mongodb://db", "embeddable-core", "embedded_files", client_factory=mongo or FakeMongo()),
    )


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


def test_decode_function_response_unwraps_body():
    raw = json.dumps({"statusCode": 200, "body": json.dumps({"ok": True})})
    assert decode_function_response(raw, "update") == {"ok": True}
    assert decode_function_response(b"", "update") is None


@pytest.mark.parametrize("raw", [
    "<html>502 Bad Gateway</html>",
    json.dumps({"statusCode": 500, "body": json.dumps({"message": "db down"})}),
    json.dumps({"errorMessage": "Task timed out"}),
    json.dumps({"statusCode": 200, "body": "not json"}),
])
def test_decode_function_response_raises_on_failures(raw):
    with pytest.raises(RemoteOperationFailure):
        decode_function_response(raw, "update")


# ---------------------------------------------------------------------------
# Lambda + MongoDB file store
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_file_store_update_invokes_lambda_with_envelope():
    boto = FakeBoto()
    store = _store(boto)

    await store.upsert_files("w1", {"/a.ts": "x"}, ["/b.ts"])

    call = boto.invocations[0]
    assert call["FunctionName"] == "embeddable-widget-src-update"
    assert json.loads(call["Payload"]) == {
        "body": {"widgetId": "w1", "files": {"/a.ts": "x"}, "deletedFiles": ["/b.ts"]},
        "headers": {"ninja-secret": "s3cret"},
    }
    assert boto.sessions[0] == {
        "aws_access_key_id": "AKIA",
        "aws_secret_access_key": "shh",
        "region_name": "us-west-2",
    }
    service, config = boto.clients[0]
    assert service == "lambda"
    assert config.read_timeout == 45
    assert boto.closed == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("boto", [
    FakeBoto(payload=b"<html>502 Bad Gateway</html>"),
    FakeBoto(payload=json.dumps({"statusCode": 500, "body": json.dumps({"message": "db down"})}).encode()),
    FakeBoto(status=202),
    FakeBoto(payload=b'{"errorMessage": "boom"}', function_error="Unhandled"),
    FakeBoto(error=EndpointConnectionError(endpoint_url="https://lambda.us-west-2.amazonaws.com")),
])
async def test_failed_update_is_remote_operation_failure(boto):
    store = _store(boto)
    with pytest.raises(RemoteOperationFailure):
        await store.upsert_files("w1", {"/a.ts": "x"}, [])
    assert len(boto.invocations) == 1


@pytest.mark.asyncio
async def test_slow_update_times_out():
    class SlowClient(FakeLambdaClient):
        async def invoke(self, **kwargs):
            await asyncio.sleep(1)

    boto = FakeBoto()
    boto.client = lambda service, config=None: SlowClient(boto)

    with pytest.raises(RemoteOperationFailure, match="timed out"):
        await _lambda(boto, timeout=0.01).invoke({"widgetId": "w1"})


@pytest.mark.asyncio
async def test_write_through_failing_update_is_not_reported_as_success():
    """A gateway error page or a failed envelope never reads as a successful write."""
    for payload in (
        b"<html>502 Bad Gateway</html>",
        json.dumps({"statusCode": 500, "body": json.dumps({"message": "db down"})}).encode(),
    ):
        manager = WidgetFileManagerTool(_store(FakeBoto(payload=payload)), NullIndexWriter())
        result = await manager.write_file(widgetId="w1", filePath="/a.ts", content="x")

        assert result["success"] is False
        assert result["errorType"] == "RemoteOperationFailure"


@pytest.mark.asyncio
async def test_file_store_fetch_groups_code_chunks():
    mongo = FakeMongo([
        {"filePath": "/a.ts", "content": "one"},
        {"filePath": "/b.ts", "content": "b"},
        {"filePath": "/a.ts", "content": "two"},
    ])
    store = _store(mongo=mongo)

    assert await store.fetch_files("w1") == {"/a.ts": "one\ntwo", "/b.ts": "b"}
    assert mongo.names == ["embeddable-core", "embedded_files"]
    assert mongo.queries == [{"widgetId": "w1", "type": "code"}]
    assert mongo.connections[0] == ("mongodb://db", {"serverSelectionTimeoutMS": 45000, "timeoutMS": 45000})
    assert mongo.closed == 1
    assert group_documents([]) == {}


@pytest.mark.asyncio
async def test_unreachable_database_fails_the_view():
    mongo = FakeMongo(error=ServerSelectionTimeoutError("no servers"))
    manager = WidgetFileManagerTool(_store(mongo=mongo), NullIndexWriter())

    result = await manager.view_file(widgetId="w1", filePath="/a.ts")

    assert result["success"] is False
    assert result["errorType"] == "RemoteOperationFailure"


# ---------------------------------------------------------------------------
# MongoDB search index
# ---------------------------------------------------------------------------


def _index(mongo):
    return MongoSearchIndex(MongoCollection("mongodb://db", "ai", "embeddings", client_factory=mongo))


@pytest.mark.asyncio
async def test_regex_searches_query_code_chunks():
    mongo = FakeMongo([{"filePath": "/Card.tsx", "content": "x", "lineStart": 2, "lineEnd": 4}])
    index = _index(mongo)

    chunks = await index.exact_match("w1", "useState", 5)
    assert chunks[0].line_end == 4
    assert mongo.queries[0] == {
        "widgetId": "w1",
        "type": "code",
        "content": {"$regex": "useState", "$options": "i"},
    }

    await index.filename_match("w1", "Card", 3)
    assert mongo.queries[1]["filePath"] == {"$regex": "Card", "$options": "i"}
    assert mongo.names[:2] == ["ai", "embeddings"]


@pytest.mark.asyncio
async def test_regex_search_rejects_bad_pattern_before_querying():
    mongo = FakeMongo()
    with pytest.raises(InvalidPattern):
        await _index(mongo).exact_match("w1", "(", 5)
    assert mongo.queries == []


@pytest.mark.asyncio
async def test_vector_search_pipeline():
    mongo = FakeMongo([{"filePath": "/a.ts", "content": "x", "lineStart": 1, "lineEnd": 3, "score": 0.9, "granularity": "block"}])

    chunks = await _index(mongo).vector_search("w1", [0.1, 0.2], 5)

    assert chunks[0].score == 0.9 and chunks[0].granularity == "block"
    stage = mongo.pipelines[0][0]["$vectorSearch"]
    assert stage["index"] == "vector_index"
    assert stage["numCandidates"] == 600
    assert stage["limit"] == 5
    assert stage["filter"] == {"widgetId": "w1"}
    assert mongo.pipelines[0][1] == {"$match": {"type": "code"}}
    assert mongo.pipelines[0][2]["$project"]["score"] == {"$meta": "vectorSearchScore"}


# ---------------------------------------------------------------------------
# Index writer
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_index_writer_requests():
    http = FakeHttp()
    writer = HttpIndexWriter("https://ai.example/", timeout=5, session_factory=http)

    await writer.upsert_files("w1", {"/a.ts": "x"})
    assert http.requests[0]["url"] == "https://ai.example/api/ai/index-files"
    assert http.requests[0]["json"] == {"files": {"/a.ts": "x"}, "widgetId": "w1", "runIndexCheck": False}
    assert http.timeouts[0].total == 5

    await writer.delete_files("w1", ["/a.ts"])
    assert http.requests[1]["method"] == "DELETE"
    assert http.requests[1]["json"] == {"widgetId": "w1", "filePaths": ["/a.ts"]}
    assert http.closed == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("http", [
    FakeHttp(FakeResponse(500, "boom")),
    FakeHttp(FakeResponse(200, "<html>502 Bad Gateway</html>")),
    FakeHttp(error=asyncio.TimeoutError()),
    FakeHttp(error=aiohttp.ClientConnectionError("refused")),
])
async def test_index_writer_failures_become_remote_operation_failure(http):
    writer = HttpIndexWriter("https://ai.example", session_factory=http)
    with pytest.raises(RemoteOperationFailure):
        await writer.delete_files("w1", ["/a.ts"])
    assert len(http.requests) == 1


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


def _openai_factory(create):
    client = MagicMock()
    client.__aenter__.return_value = client
    client.__aexit__.return_value = False
    client.embeddings.create = create
    return MagicMock(return_value=client)


@pytest.mark.asyncio
async def test_embedding_provider_returns_vector():
    create = AsyncMock(return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.5] * 1536)]))
    factory = _openai_factory(create)
    provider = OpenAIEmbeddingProvider("key", timeout=7, client_factory=factory)

    vector = await provider.embed("card")

    assert len(vector) == 1536
    factory.assert_called_once_with(api_key="key", timeout=7, max_retries=0)
    create.assert_awaited_once_with(model="text-embedding-ada-002", input="card", encoding_format="float")


@pytest.mark.asyncio
async def test_embedding_provider_maps_errors():
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    provider = OpenAIEmbeddingProvider(
        "key", client_factory=_openai_factory(AsyncMock(side_effect=APIConnectionError(request=request)))
    )
    with pytest.raises(RemoteOperationFailure):
        await provider.embed("card")

    wrong_size = AsyncMock(return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.5, 0.5])]))
    provider = OpenAIEmbeddingProvider("key", client_factory=_openai_factory(wrong_size))
    with pytest.raises(RemoteOperationFailure, match="dimensions"):
        await provider.embed("card")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_from_env_requires_credentials(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPEN_AI_KEY", raising=False)
    monkeypatch.delenv("AWS_ACCESS_KEY_ID", raising=False)
    monkeypatch.delenv("EMBEDDINGS_MONGODB_URI", raising=False)

    with pytest.raises(ConfigurationMissing):
        OpenAIEmbeddingProvider.from_env()
    with pytest.raises(ConfigurationMissing, match="AWS_ACCESS_KEY_ID"):
        WidgetFileStore.from_env()
    with pytest.raises(ConfigurationMissing, match="EMBEDDINGS_MONGODB_URI"):
        MongoSearchIndex.from_env()

    monkeypatch.setenv("OPEN_AI_KEY", "legacy")
    assert OpenAIEmbeddingProvider.from_env().api_key == "legacy"


def test_file_store_from_env(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIA")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "shh")
    monkeypatch.setenv("EMBEDDINGS_MONGODB_URI", "mongodb://db")
    monkeypatch.delenv("AWS_REGION", raising=False)

    store = WidgetFileStore.from_env()

    assert store.update_function.function_name == "embeddable-widget-src-update"
    assert store.update_function.region == "us-west-2"
    assert (store.files.database, store.files.collection) == ("embeddable-core", "embedded_files")


def test_index_writer_follows_indexing_flag(monkeypatch):
    monkeypatch.delenv("WIDGET_INDEXING_ENABLED", raising=False)
    assert isinstance(build_index_writer(), NullIndexWriter)

    monkeypatch.setenv("WIDGET_INDEXING_ENABLED", "true")
    assert isinstance(build_index_writer(), HttpIndexWriter)
