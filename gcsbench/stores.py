"""Object store abstraction over the Cloud Storage data-plane clients.

The benchmark only needs three things from a client: a write stream, a ranged
read stream and a listing. Each transport mode builds its own client and wraps
it in an :class:`ObjectStore` so the benchmark phases never see which one is
in use.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Iterator, List, Optional
from urllib.parse import quote

from gcsbench.config import Api, BenchmarkSettings
from gcsbench.error_wrapper import wrap_client_error
from gcsbench.exceptions import ConfigValidationError
from gcsbench.store_registry import STORE_REGISTRY, register_store

logger = logging.getLogger(__name__)

FULL_CONTROL_SCOPE = "https://www.googleapis.com/auth/devstorage.full_control"
DIRECT_PATH_ENV = "GOOGLE_CLOUD_ENABLE_DIRECT_PATH_XDS"
DIRECT_PATH_TARGET = "google-c2p:///storage.googleapis.com"
DEFAULT_GRPC_TARGET = "storage.googleapis.com:443"
DEFAULT_JSON_BASE_URL = "https://storage.googleapis.com"

# Connection pool size for the HTTP/1.1 transport
HTTP1_POOL_SIZE = 100

# Largest payload carried by a single WriteObjectRequest
GRPC_MAX_WRITE_CHUNK = 2 * 1024 * 1024


class ObjectWriter(ABC):
    """Write stream for a single object.

    ``close()`` commits the object; ``abort()`` drops it without committing.
    """

    @abstractmethod
    def write(self, data: bytes) -> int:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def abort(self) -> None:
        pass


class RangeReader(ABC):
    """Read stream over ``length`` bytes of an object starting at ``offset``."""

    def __init__(self, offset: int, length: int):
        self.offset = offset
        self.length = length
        self.remaining = length
        self.closed = False

    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes; an empty result means the range is exhausted."""
        if self.closed:
            raise ValueError("read from closed reader")
        size = min(size, self.remaining)
        if size <= 0:
            return b""
        data = self._read(size)
        self.remaining -= len(data)
        return data

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._close()

    def __enter__(self) -> "RangeReader":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @abstractmethod
    def _read(self, size: int) -> bytes:
        pass

    @abstractmethod
    def _close(self) -> None:
        pass


class ObjectStore(ABC):
    """Abstract base class for the data-plane clients.

    All transports (HTTP/1.1, default HTTP, gRPC direct path) implement this
    interface.
    """

    def __init__(self, bucket: str, api: Api):
        self.bucket = bucket
        self.api = api

    @abstractmethod
    def open_writer(self, object_name: str) -> ObjectWriter:
        """Open a write stream for a new object.

        Args:
            object_name: Name of the object to create (relative to the bucket)

        Returns:
            Writer whose ``close()`` commits the object
        """
        pass

    @abstractmethod
    def open_range_reader(self, object_name: str, offset: int, length: int) -> RangeReader:
        """Open a read stream over ``[offset, offset + length)`` of an object."""
        pass

    @abstractmethod
    def iter_objects(self) -> Iterator[str]:
        """Yield the name of every object in the bucket."""
        pass

    def close(self) -> None:
        """Release the underlying client."""

    def get_backend_type(self) -> str:
        return self.api.value


class JsonObjectWriter(ObjectWriter):
    def __init__(self, blob_writer: Any):
        self._writer = blob_writer

    def write(self, data: bytes) -> int:
        return self._writer.write(data)

    def close(self) -> None:
        self._writer.close()

    def abort(self) -> None:
        # BlobWriter only finalizes the resumable upload on close()
        self._writer = None


class JsonRangeReader(RangeReader):
    """Reads the body of one streamed ranged media GET as the caller asks for it."""

    def __init__(self, response: Any, offset: int, length: int):
        super().__init__(offset, length)
        self._response = response

    def _read(self, size: int) -> bytes:
        return self._response.raw.read(size, decode_content=True)

    def _close(self) -> None:
        self._response.close()


class JsonObjectStore(ObjectStore):
    """Store backed by ``google.cloud.storage.Client`` (JSON API).

    Ranged reads go straight to the media download endpoint on the client's
    authorized session with ``stream=True``, so the response body stays on
    the wire until it is read. ``Blob.open("rb")`` would fetch a whole chunk
    on the first read instead.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        api: Api,
        session: Any = None,
        base_url: Optional[str] = None,
    ):
        super().__init__(bucket, api)
        self.client = client
        self.session = session if session is not None else client._http
        self.base_url = (base_url or DEFAULT_JSON_BASE_URL).rstrip("/")
        self._bucket = client.bucket(bucket)

    def open_writer(self, object_name: str) -> ObjectWriter:
        blob = self._bucket.blob(object_name)
        return JsonObjectWriter(blob.open("wb", ignore_flush=True))

    def media_url(self, object_name: str) -> str:
        return (
            f"{self.base_url}/download/storage/v1/b/{quote(self.bucket, safe='')}"
            f"/o/{quote(object_name, safe='')}"
        )

    def open_range_reader(self, object_name: str, offset: int, length: int) -> RangeReader:
        response = self.session.get(
            self.media_url(object_name),
            params={"alt": "media"},
            headers={"Range": f"bytes={offset}-{offset + length - 1}"},
            stream=True,
        )
        try:
            response.raise_for_status()
        except Exception:
            response.close()
            raise
        return JsonRangeReader(response, offset, length)

    def iter_objects(self) -> Iterator[str]:
        for blob in self.client.list_blobs(self.bucket):
            yield blob.name

    def close(self) -> None:
        self.client.close()


class GrpcObjectWriter(ObjectWriter):
    """Buffers the object and sends it as one WriteObject stream on close."""

    def __init__(self, client: Any, bucket_path: str, object_name: str):
        self._client = client
        self._bucket_path = bucket_path
        self._object_name = object_name
        self._chunks: Optional[List[bytes]] = []

    def write(self, data: bytes) -> int:
        if self._chunks is None:
            raise ValueError("write to closed writer")
        self._chunks.append(bytes(data))
        return len(data)

    def _requests(self, payload: bytes) -> Iterator[Any]:
        from google.cloud import _storage_v2 as storage_v2

        offset = 0
        while True:
            chunk = payload[offset:offset + GRPC_MAX_WRITE_CHUNK]
            last = offset + len(chunk) >= len(payload)
            request = storage_v2.WriteObjectRequest(
                write_offset=offset,
                checksummed_data=storage_v2.ChecksummedData(content=chunk),
                finish_write=last,
            )
            if offset == 0:
                request.write_object_spec = storage_v2.WriteObjectSpec(
                    resource=storage_v2.Object(bucket=self._bucket_path, name=self._object_name)
                )
            yield request
            if last:
                return
            offset += len(chunk)

    def close(self) -> None:
        if self._chunks is None:
            return
        payload = b"".join(self._chunks)
        self._chunks = None
        self._client.write_object(requests=self._requests(payload))

    def abort(self) -> None:
        self._chunks = None


class GrpcRangeReader(RangeReader):
    def __init__(self, responses: Any, offset: int, length: int):
        super().__init__(offset, length)
        self._responses = responses
        self._iter = iter(responses)
        self._buffer = b""

    def _read(self, size: int) -> bytes:
        while not self._buffer:
            response = next(self._iter, None)
            if response is None:
                return b""
            self._buffer = response.checksummed_data.content
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def _close(self) -> None:
        cancel = getattr(self._responses, "cancel", None)
        if callable(cancel):
            cancel()


class GrpcObjectStore(ObjectStore):
    """Store backed by the Storage v2 gRPC client."""

    def __init__(self, client: Any, bucket: str, api: Api):
        super().__init__(bucket, api)
        self.client = client
        self.bucket_path = f"projects/_/buckets/{bucket}"

    def open_writer(self, object_name: str) -> ObjectWriter:
        return GrpcObjectWriter(self.client, self.bucket_path, object_name)

    def open_range_reader(self, object_name: str, offset: int, length: int) -> RangeReader:
        from google.cloud import _storage_v2 as storage_v2

        request = storage_v2.ReadObjectRequest(
            bucket=self.bucket_path,
            object_=object_name,
            read_offset=offset,
            read_limit=length,
        )
        return GrpcRangeReader(self.client.read_object(request=request), offset, length)

    def iter_objects(self) -> Iterator[str]:
        from google.cloud import _storage_v2 as storage_v2

        request = storage_v2.ListObjectsRequest(parent=self.bucket_path)
        for obj in self.client.list_objects(request=request):
            yield obj.name

    def close(self) -> None:
        self.client.transport.close()


def _default_credentials() -> Any:
    import google.auth

    credentials, _ = google.auth.default(scopes=[FULL_CONTROL_SCOPE])
    return credentials


@register_store(Api.HTTP1.value)
def build_http1_store(settings: BenchmarkSettings) -> ObjectStore:
    """JSON API client on a requests session that never negotiates HTTP/2."""
    import requests
    from google.auth.transport.requests import AuthorizedSession
    from google.cloud import storage

    with wrap_client_error(Api.HTTP1.value, "creating transport"):
        credentials = _default_credentials()
        session = AuthorizedSession(credentials)
        adapter = requests.adapters.HTTPAdapter(
            pool_connections=HTTP1_POOL_SIZE,
            pool_maxsize=HTTP1_POOL_SIZE,
        )
        session.mount("https://", adapter)

    with wrap_client_error(Api.HTTP1.value, "NewClient"):
        client = storage.Client(credentials=credentials, _http=session)
    return JsonObjectStore(
        client, settings.bucket, Api.HTTP1, session=session, base_url=client._connection.API_BASE_URL
    )


@register_store(Api.HTTP2.value)
def build_http2_store(settings: BenchmarkSettings) -> ObjectStore:
    """The library's default client."""
    from google.cloud import storage

    with wrap_client_error(Api.HTTP2.value, "NewClient"):
        client = storage.Client()
    return JsonObjectStore(
        client, settings.bucket, Api.HTTP2, base_url=client._connection.API_BASE_URL
    )


@register_store(Api.GRPC_DP.value)
def build_grpc_dp_store(settings: BenchmarkSettings) -> ObjectStore:
    """gRPC client routed over direct path; the env var must be set before construction."""
    os.environ[DIRECT_PATH_ENV] = "true"

    with wrap_client_error(Api.GRPC_DP.value, "NewGRPCClient"):
        credentials = _default_credentials()

        from google.cloud import _storage_v2 as storage_v2
        from google.cloud._storage_v2.services.storage.transports import StorageGrpcTransport

        channel = StorageGrpcTransport.create_channel(
            grpc_target(),
            credentials=credentials,
            scopes=[FULL_CONTROL_SCOPE],
        )
        client = storage_v2.StorageClient(transport=StorageGrpcTransport(channel=channel))
    return GrpcObjectStore(client, settings.bucket, Api.GRPC_DP)


def grpc_target() -> str:
    """Direct-path target when the xDS opt-in is set, the public endpoint otherwise."""
    if os.environ.get(DIRECT_PATH_ENV, "").lower() == "true":
        return DIRECT_PATH_TARGET
    return DEFAULT_GRPC_TARGET


def get_object_store(settings: BenchmarkSettings) -> ObjectStore:
    """Factory function to build the store for ``settings.api``.

    Raises:
        ConfigValidationError: If no factory is registered for the transport
        ClientConstructionError: If credentials or the client cannot be created
    """
    api = Api.normalize(settings.api)
    factory = STORE_REGISTRY.get(api.value)
    if not factory:
        raise ConfigValidationError(
            f"Unknown api: '{api.value}'. Supported: {', '.join(sorted(STORE_REGISTRY))}",
            key="api",
        )

    logger.info(f"Creating {api.value} client ({api.describe()}) for bucket '{settings.bucket}'")
    return factory(settings)
