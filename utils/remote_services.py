"""
Remote capabilities used by the widget tools, and their production bindings.

The engines only see the four protocols below. Production code binds them to
the widget backend: source updates go through the ``embeddable-widget-src-update``
Lambda function (aioboto3), stored files and search chunks are read from
MongoDB (pymongo's asyncio client), index writes go to the AI service over
HTTP (aiohttp) and embeddings come from OpenAI. Tests bind them to
``utils.memory_backends``. Every call opens its own client inside
``async with`` and is bounded by a timeout; nothing here retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, runtime_checkable

import aioboto3
import aiohttp
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from openai import APIError, APITimeoutError, AsyncOpenAI
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from config import WidgetSettings, get_constant, require_constant
from models import EMBEDDING_DIMENSIONS
from tools.base import InvalidPattern, RemoteOperationFailure
from utils.json_utils import unwrap_body
from utils.widget_types import IndexedChunk

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


@runtime_checkable
class FileStore(Protocol):
    async def upsert_files(self, widget_id: str, files: Dict[str, str], deleted_paths: List[str]) -> None: ...

    async def fetch_files(self, widget_id: str) -> Dict[str, str]: ...


@runtime_checkable
class SearchIndex(Protocol):
    async def exact_match(self, widget_id: str, pattern: str, limit: int) -> List[IndexedChunk]: ...

    async def filename_match(self, widget_id: str, pattern: str, limit: int) -> List[IndexedChunk]: ...

    async def vector_search(self, widget_id: str, vector: List[float], limit: int) -> List[IndexedChunk]: ...


@runtime_checkable
class IndexWriter(Protocol):
    async def upsert_files(self, widget_id: str, files: Dict[str, str]) -> None: ...

    async def delete_files(self, widget_id: str, paths: List[str]) -> None: ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class NullIndexWriter:
    """Index writer used while widget indexing is switched off."""

    async def upsert_files(self, widget_id: str, files: Dict[str, str]) -> None:
        logger.debug(f"Indexing disabled; skipped {len(files)} file(s) for widget {widget_id}")

    async def delete_files(self, widget_id: str, paths: List[str]) -> None:
        logger.debug(f"Indexing disabled; skipped removal of {paths} for widget {widget_id}")


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


def _preview(value: Any, size: int = 200) -> str:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return str(value)[:size]


def decode_function_response(raw: Any, source: str) -> Any:
    """Decode a function-style reply and return its body.

    Raises ``RemoteOperationFailure`` when the reply is not JSON, reports an
    ``errorMessage``, or carries ``statusCode >= 400`` in its envelope.
    An empty reply decodes to ``None``.
    """
    if raw is None or (isinstance(raw, (str, bytes)) and not raw.strip()):
        return None
    try:
        payload = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except ValueError as exc:
        raise RemoteOperationFailure(f"{source} returned a non-JSON response: {_preview(raw)}") from exc

    if isinstance(payload, dict):
        if payload.get("errorMessage"):
            raise RemoteOperationFailure(f"{source} function error: {payload['errorMessage']}")
        status = payload.get("statusCode")
        if isinstance(status, int) and status >= 400:
            raise RemoteOperationFailure(
                f"{source} failed with status {status}: {_preview(payload.get('body'))}"
            )

    try:
        return unwrap_body(payload)
    except ValueError as exc:
        raise RemoteOperationFailure(f"{source} returned a body that is not JSON") from exc


# ---------------------------------------------------------------------------
# AWS Lambda
# ---------------------------------------------------------------------------


class LambdaFunction:
    """One Lambda function, invoked with the ``{"body", "headers"}`` envelope."""

    def __init__(
        self,
        function_name: str,
        *,
        access_key_id: str,
        secret_access_key: str,
        region: str = "us-west-2",
        secret: Optional[str] = None,
        timeout: float = 45,
        session_factory: Callable[..., Any] = aioboto3.Session,
    ):
        self.function_name = function_name
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region = region
        self.secret = secret
        self.timeout = timeout
        self._session_factory = session_factory

    @classmethod
    def from_env(cls, settings: Optional[WidgetSettings] = None) -> "LambdaFunction":
        settings = settings or WidgetSettings.from_env()
        return cls(
            get_constant("WIDGET_UPDATE_FUNCTION"),
            access_key_id=require_constant("AWS_ACCESS_KEY_ID"),
            secret_access_key=require_constant("AWS_SECRET_ACCESS_KEY"),
            region=get_constant("AWS_REGION"),
            secret=get_constant("COMMONNINJA_SECRET") or None,
            timeout=settings.remote_timeout_seconds,
        )

    async def invoke(self, body: Dict[str, Any]) -> Any:
        envelope = {"body": body, "headers": {"ninja-secret": self.secret}}
        session = self._session_factory(
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name=self.region,
        )
        client_config = Config(
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
            retries={"total_max_attempts": 1},
        )
        try:
            async with session.client("lambda", config=client_config) as client:
                response = await asyncio.wait_for(
                    client.invoke(
                        FunctionName=self.function_name,
                        Payload=json.dumps(envelope).encode("utf-8"),
                    ),
                    timeout=self.timeout,
                )
                status = response.get("StatusCode")
                stream = response.get("Payload")
                raw = await stream.read() if stream is not None else b""
        except asyncio.TimeoutError as exc:
            raise RemoteOperationFailure(f"Lambda {self.function_name} timed out after {self.timeout}s") from exc
        except (BotoCoreError, ClientError) as exc:
            raise RemoteOperationFailure(f"Lambda {self.function_name} invocation failed: {exc}") from exc

        if status != 200:
            raise RemoteOperationFailure(f"Lambda invocation failed with status: {status}")
        if response.get("FunctionError"):
            raise RemoteOperationFailure(
                f"Lambda function error: {response['FunctionError']} - {_preview(raw)}"
            )
        return decode_function_response(raw, f"Lambda {self.function_name}")


# ---------------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------------


class MongoCollection:
    """Address of one MongoDB collection; each query opens and closes a client."""

    def __init__(
        self,
        uri: str,
        database: str,
        collection: str,
        *,
        timeout: float = 45,
        client_factory: Callable[..., Any] = AsyncMongoClient,
    ):
        self.uri = uri
        self.database = database
        self.collection = collection
        self.timeout = timeout
        self._client_factory = client_factory

    def _client(self):
        millis = int(self.timeout * 1000)
        return self._client_factory(self.uri, serverSelectionTimeoutMS=millis, timeoutMS=millis)

    async def find(self, query: Dict[str, Any], limit: int = 0) -> List[Dict[str, Any]]:
        try:
            async with self._client() as client:
                cursor = client[self.database][self.collection].find(query)
                if limit:
                    cursor = cursor.limit(limit)
                return await cursor.to_list(None)
        except PyMongoError as exc:
            raise RemoteOperationFailure(f"Query on {self.database}.{self.collection} failed: {exc}") from exc

    async def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        try:
            async with self._client() as client:
                cursor = await client[self.database][self.collection].aggregate(pipeline)
                return await cursor.to_list(None)
        except PyMongoError as exc:
            raise RemoteOperationFailure(
                f"Aggregation on {self.database}.{self.collection} failed: {exc}"
            ) from exc


def _chunk_from_doc(doc: Dict[str, Any]) -> IndexedChunk:
    return IndexedChunk(
        file_path=doc["filePath"],
        content=doc.get("content") or "",
        line_start=int(doc.get("lineStart") or 1),
        line_end=int(doc.get("lineEnd") or doc.get("lineStart") or 1),
        granularity=doc.get("granularity"),
        score=float(doc["score"]) if doc.get("score") is not None else None,
    )


def group_documents(docs: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """Rebuild whole files from stored chunk documents, in storage order."""
    files: Dict[str, str] = {}
    for doc in docs:
        path = doc["filePath"]
        if path in files:
            files[path] += "\n" + (doc.get("content") or "")
        else:
            files[path] = doc.get("content") or ""
    return files


def _regex_filter(pattern: str) -> Dict[str, str]:
    try:
        re.compile(pattern)
    except re.error as exc:
        raise InvalidPattern(f"Invalid regex {pattern!r}: {exc}") from exc
    return {"$regex": pattern, "$options": "i"}


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


class WidgetFileStore:
    """Widget sources: written through the update function, read from MongoDB."""

    def __init__(self, update_function: LambdaFunction, files: MongoCollection):
        self.update_function = update_function
        self.files = files

    @classmethod
    def from_env(cls, settings: Optional[WidgetSettings] = None) -> "WidgetFileStore":
        settings = settings or WidgetSettings.from_env()
        return cls(
            LambdaFunction.from_env(settings),
            MongoCollection(
                require_constant("EMBEDDINGS_MONGODB_URI"),
                get_constant("WIDGET_SOURCE_DATABASE"),
                get_constant("WIDGET_SOURCE_COLLECTION"),
                timeout=settings.remote_timeout_seconds,
            ),
        )

    async def upsert_files(self, widget_id: str, files: Dict[str, str], deleted_paths: List[str]) -> None:
        logger.debug(
            f"Updating widget {widget_id}: {len(files)} write(s), {len(deleted_paths)} deletion(s)"
        )
        await self.update_function.invoke(
            {"widgetId": widget_id, "files": files, "deletedFiles": list(deleted_paths)}
        )

    async def fetch_files(self, widget_id: str) -> Dict[str, str]:
        docs = await self.files.find({"widgetId": widget_id, "type": "code"})
        return group_documents(docs)


class MongoSearchIndex:
    """Code chunks and their embeddings, searched with regex and ``$vectorSearch``."""

    NUM_CANDIDATES = 600

    def __init__(self, embeddings: MongoCollection, *, vector_index: str = "vector_index"):
        self.embeddings = embeddings
        self.vector_index = vector_index

    @classmethod
    def from_env(cls, settings: Optional[WidgetSettings] = None) -> "MongoSearchIndex":
        settings = settings or WidgetSettings.from_env()
        return cls(
            MongoCollection(
                require_constant("EMBEDDINGS_MONGODB_URI"),
                get_constant("EMBEDDINGS_DATABASE"),
                get_constant("EMBEDDINGS_COLLECTION"),
                timeout=settings.remote_timeout_seconds,
            ),
            vector_index=get_constant("VECTOR_SEARCH_INDEX"),
        )

    async def exact_match(self, widget_id: str, pattern: str, limit: int) -> List[IndexedChunk]:
        docs = await self.embeddings.find(
            {"widgetId": widget_id, "type": "code", "content": _regex_filter(pattern)}, limit
        )
        return [_chunk_from_doc(doc) for doc in docs]

    async def filename_match(self, widget_id: str, pattern: str, limit: int) -> List[IndexedChunk]:
        docs = await self.embeddings.find(
            {"widgetId": widget_id, "type": "code", "filePath": _regex_filter(pattern)}, limit
        )
        return [_chunk_from_doc(doc) for doc in docs]

    async def vector_search(self, widget_id: str, vector: List[float], limit: int) -> List[IndexedChunk]:
        pipeline = [
            {
                "$vectorSearch": {
                    "index": self.vector_index,
                    "path": "embedding",
                    "queryVector": list(vector),
                    "numCandidates": self.NUM_CANDIDATES,
                    "limit": limit,
                    "filter": {"widgetId": widget_id},
                }
            },
            {"$match": {"type": "code"}},
            {
                "$project": {
                    "_id": 0,
                    "filePath": 1,
                    "content": 1,
                    "lineStart": 1,
                    "lineEnd": 1,
                    "granularity": 1,
                    "score": {"$meta": "vectorSearchScore"},
                }
            },
        ]
        docs = await self.embeddings.aggregate(pipeline)
        return [_chunk_from_doc(doc) for doc in docs]


# ---------------------------------------------------------------------------
# AI service (index writes)
# ---------------------------------------------------------------------------

SessionFactory = Callable[..., Any]


async def _request_json(
    session_factory: SessionFactory,
    method: str,
    url: str,
    payload: Dict[str, Any],
    *,
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    """Send one JSON request on a fresh session and return the decoded body."""
    try:
        async with session_factory(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.request(
                method,
                url,
                json=payload,
                headers={"Content-Type": "application/json", **(headers or {})},
            ) as response:
                text = await response.text()
                if response.status != 200:
                    raise RemoteOperationFailure(f"{method} {url} failed: {response.status} - {text[:500]}")
    except asyncio.TimeoutError as exc:
        raise RemoteOperationFailure(f"{method} {url} timed out after {timeout}s") from exc
    except aiohttp.ClientError as exc:
        raise RemoteOperationFailure(f"{method} {url} failed: {exc}") from exc

    return decode_function_response(text, f"{method} {url}")


class HttpIndexWriter:
    """Index writes through the AI service's ``/api/ai/index-files`` endpoint."""

    INDEX_PATH = "/api/ai/index-files"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 45,
        session_factory: SessionFactory = aiohttp.ClientSession,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session_factory = session_factory

    @classmethod
    def from_env(cls, settings: Optional[WidgetSettings] = None) -> "HttpIndexWriter":
        settings = settings or WidgetSettings.from_env()
        return cls(require_constant("AI_SERVICE_URL"), timeout=settings.remote_timeout_seconds)

    async def upsert_files(self, widget_id: str, files: Dict[str, str]) -> None:
        await _request_json(
            self._session_factory,
            "POST",
            self.base_url + self.INDEX_PATH,
            {"files": files, "widgetId": widget_id, "runIndexCheck": False},
            timeout=self.timeout,
        )

    async def delete_files(self, widget_id: str, paths: List[str]) -> None:
        await _request_json(
            self._session_factory,
            "DELETE",
            self.base_url + self.INDEX_PATH,
            {"widgetId": widget_id, "filePaths": list(paths)},
            timeout=self.timeout,
        )


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


class OpenAIEmbeddingProvider:
    """Turns a query into an embedding vector with the OpenAI API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "text-embedding-ada-002",
        timeout: float = 45,
        client_factory: Callable[..., Any] = AsyncOpenAI,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client_factory = client_factory

    @classmethod
    def from_env(cls, settings: Optional[WidgetSettings] = None) -> "OpenAIEmbeddingProvider":
        settings = settings or WidgetSettings.from_env()
        return cls(
            require_constant("OPENAI_API_KEY", "OPEN_AI_KEY"),
            model=settings.embedding_model,
            timeout=settings.remote_timeout_seconds,
        )

    async def embed(self, text: str) -> List[float]:
        try:
            async with self._client_factory(
                api_key=self.api_key, timeout=self.timeout, max_retries=0
            ) as client:
                response = await client.embeddings.create(
                    model=self.model,
                    input=text,
                    encoding_format="float",
                )
        except APITimeoutError as exc:
            raise RemoteOperationFailure(f"Embedding request timed out after {self.timeout}s") from exc
        except APIError as exc:
            raise RemoteOperationFailure(f"Embedding request failed: {exc}") from exc

        if not response.data:
            raise RemoteOperationFailure("Embedding provider returned no vectors")
        vector = list(response.data[0].embedding)
        expected = EMBEDDING_DIMENSIONS.get(self.model)
        if expected and len(vector) != expected:
            raise RemoteOperationFailure(
                f"Embedding has {len(vector)} dimensions, expected {expected} for {self.model}"
            )
        return vector


def build_index_writer(settings: Optional[WidgetSettings] = None) -> Any:
    """Return the index writer selected by ``WIDGET_INDEXING_ENABLED``."""
    if get_constant("WIDGET_INDEXING_ENABLED"):
        return HttpIndexWriter.from_env(settings)
    return NullIndexWriter()
