"""Tests for transport selection and the JSON-API and gRPC object stores."""

from unittest import mock

import pytest
import requests

from gcsbench import stores
from gcsbench.config import Api, BenchmarkSettings
from gcsbench.exceptions import ClientConstructionError, ConfigValidationError
from gcsbench.store_registry import STORE_REGISTRY, register_store


class TestRegistry:
    def test_every_api_has_a_factory(self):
        assert set(Api.choices()) <= set(STORE_REGISTRY)

    def test_factories_are_the_store_builders(self):
        assert STORE_REGISTRY[Api.HTTP1.value] is stores.build_http1_store
        assert STORE_REGISTRY[Api.HTTP2.value] is stores.build_http2_store
        assert STORE_REGISTRY[Api.GRPC_DP.value] is stores.build_grpc_dp_store

    def test_register_store_lowercases(self):
        @register_store("Custom-API")
        def factory(settings):
            return settings

        try:
            assert STORE_REGISTRY["custom-api"] is factory
        finally:
            STORE_REGISTRY.pop("custom-api")


class TestGetObjectStore:
    @pytest.mark.parametrize("api", Api.choices())
    def test_dispatches_on_api(self, api, monkeypatch):
        sentinel = object()
        factory = mock.Mock(return_value=sentinel)
        monkeypatch.setitem(STORE_REGISTRY, api, factory)

        settings = BenchmarkSettings(api=api)

        assert stores.get_object_store(settings) is sentinel
        factory.assert_called_once_with(settings)

    def test_unregistered_api_fails_before_any_client(self, monkeypatch):
        monkeypatch.delitem(STORE_REGISTRY, "grpc-dp")
        with mock.patch("google.auth.default") as default_creds:
            with pytest.raises(ConfigValidationError, match="Unknown api"):
                stores.get_object_store(BenchmarkSettings(api="grpc-dp"))
        default_creds.assert_not_called()


class TestHttpFactories:
    def test_http1_uses_pooled_authorized_session(self):
        creds = mock.Mock(name="credentials")
        with mock.patch("google.auth.default", return_value=(creds, "proj")), \
                mock.patch("google.cloud.storage.Client") as client_cls:
            store = stores.build_http1_store(BenchmarkSettings(bucket="b1"))

        kwargs = client_cls.call_args.kwargs
        session = kwargs["_http"]
        adapter = session.get_adapter("https://storage.googleapis.com")
        assert adapter._pool_maxsize == stores.HTTP1_POOL_SIZE
        assert kwargs["credentials"] is creds
        assert store.session is session
        assert store.api is Api.HTTP1
        assert store.bucket == "b1"
        client_cls.return_value.bucket.assert_called_once_with("b1")

    def test_http1_credential_failure(self):
        from google.auth.exceptions import DefaultCredentialsError

        with mock.patch("google.auth.default", side_effect=DefaultCredentialsError("no adc")):
            with pytest.raises(ClientConstructionError) as excinfo:
                stores.build_http1_store(BenchmarkSettings())
        assert excinfo.value.details["api"] == "http1"
        assert "no adc" in str(excinfo.value)

    def test_http2_uses_library_default(self):
        with mock.patch("google.cloud.storage.Client") as client_cls:
            store = stores.build_http2_store(BenchmarkSettings(bucket="b2"))
        client_cls.assert_called_once_with()
        assert store.api is Api.HTTP2
        assert store.get_backend_type() == "http2"


class TestDirectPath:
    def test_target_follows_env(self, monkeypatch):
        assert stores.grpc_target() == stores.DEFAULT_GRPC_TARGET
        monkeypatch.setenv(stores.DIRECT_PATH_ENV, "true")
        assert stores.grpc_target() == stores.DIRECT_PATH_TARGET

    def test_factory_sets_env_before_construction(self, monkeypatch):
        seen = {}

        def fake_default(scopes=None):
            import os

            seen["env"] = os.environ.get(stores.DIRECT_PATH_ENV)
            raise RuntimeError("stop here")

        monkeypatch.setattr("google.auth.default", fake_default)
        with pytest.raises(ClientConstructionError, match="NewGRPCClient"):
            stores.build_grpc_dp_store(BenchmarkSettings(api="grpc-dp"))
        assert seen["env"] == "true"


class TestJsonObjectStore:
    @pytest.fixture
    def client(self):
        return mock.MagicMock(name="storage.Client")

    @pytest.fixture
    def store(self, client):
        return stores.JsonObjectStore(client, "bkt", Api.HTTP2)

    def test_writer_opens_blob_for_binary_write(self, store, client):
        blob = client.bucket.return_value.blob.return_value
        blob.open.return_value.write.return_value = 3

        writer = store.open_writer("obj")
        assert writer.write(b"abc") == 3
        writer.close()

        client.bucket.return_value.blob.assert_called_with("obj")
        blob.open.assert_called_once_with("wb", ignore_flush=True)
        blob.open.return_value.close.assert_called_once_with()

    def test_abort_does_not_finalize(self, store, client):
        blob_writer = client.bucket.return_value.blob.return_value.open.return_value
        writer = store.open_writer("obj")
        writer.abort()
        blob_writer.close.assert_not_called()

    def test_range_reader_streams_one_ranged_get(self, store, client):
        response = client._http.get.return_value
        response.raw.read.side_effect = lambda n, decode_content=True: b"x" * n

        with store.open_range_reader("dir/obj", 0, 10) as reader:
            assert reader.read(8) == b"x" * 8
            assert reader.read(8) == b"xx"
            assert reader.read(8) == b""

        client._http.get.assert_called_once_with(
            "https://storage.googleapis.com/download/storage/v1/b/bkt/o/dir%2Fobj",
            params={"alt": "media"},
            headers={"Range": "bytes=0-9"},
            stream=True,
        )
        assert [c.args[0] for c in response.raw.read.call_args_list] == [8, 2]
        response.close.assert_called_once_with()
        assert reader.closed

    def test_range_reader_requests_offset(self, store, client):
        store.open_range_reader("obj", 100, 10)
        assert client._http.get.call_args.kwargs["headers"] == {"Range": "bytes=100-109"}

    def test_range_reader_uses_given_session_and_endpoint(self, client):
        session = mock.MagicMock(name="AuthorizedSession")
        store = stores.JsonObjectStore(client, "bkt", Api.HTTP1, session=session, base_url="http://localhost:9000/")
        store.open_range_reader("obj", 0, 1)
        assert session.get.call_args.args[0] == "http://localhost:9000/download/storage/v1/b/bkt/o/obj"
        client._http.get.assert_not_called()

    def test_range_reader_http_error_closes_response(self, store, client):
        response = client._http.get.return_value
        response.raise_for_status.side_effect = requests.HTTPError("404 Not Found")
        with pytest.raises(requests.HTTPError):
            store.open_range_reader("missing", 0, 10)
        response.close.assert_called_once_with()

    def test_read_after_close_fails(self, store):
        reader = store.open_range_reader("obj", 0, 10)
        reader.close()
        with pytest.raises(ValueError):
            reader.read(1)

    def test_iter_objects_lists_bucket(self, store, client):
        a, b = mock.Mock(), mock.Mock()
        a.name, b.name = "a", "b"
        client.list_blobs.return_value = iter([a, b])
        assert list(store.iter_objects()) == ["a", "b"]
        client.list_blobs.assert_called_once_with("bkt")


class TestGrpcPieces:
    def test_range_reader_buffers_responses(self):
        def response(content):
            r = mock.Mock()
            r.checksummed_data.content = content
            return r

        responses = mock.MagicMock()
        responses.__iter__.return_value = iter([response(b"abcd"), response(b"efgh")])

        reader = stores.GrpcRangeReader(responses, 0, 6)
        assert reader.read(3) == b"abc"
        assert reader.read(3) == b"d"
        assert reader.read(10) == b"ef"
        assert reader.read(10) == b""
        reader.close()
        responses.cancel.assert_called_once_with()

    def test_writer_abort_sends_nothing(self):
        client = mock.Mock()
        writer = stores.GrpcObjectWriter(client, "projects/_/buckets/b", "o")
        writer.write(b"data")
        writer.abort()
        writer.close()
        client.write_object.assert_not_called()


class TestGrpcRequests:
    @pytest.fixture(autouse=True)
    def storage_v2(self):
        return pytest.importorskip("google.cloud._storage_v2")

    def test_writer_streams_payload_in_bounded_messages(self):
        client = mock.Mock()
        writer = stores.GrpcObjectWriter(client, "projects/_/buckets/b", "o")
        writer.write(b"a" * stores.GRPC_MAX_WRITE_CHUNK)
        writer.write(b"b" * 10)
        writer.close()

        requests_sent = list(client.write_object.call_args.kwargs["requests"])

        assert [r.write_offset for r in requests_sent] == [0, stores.GRPC_MAX_WRITE_CHUNK]
        assert [len(r.checksummed_data.content) for r in requests_sent] == [stores.GRPC_MAX_WRITE_CHUNK, 10]
        assert [r.finish_write for r in requests_sent] == [False, True]
        first, second = requests_sent
        assert first.write_object_spec.resource.bucket == "projects/_/buckets/b"
        assert first.write_object_spec.resource.name == "o"
        assert "write_object_spec" not in second

    def test_writer_empty_object_sends_single_finishing_message(self):
        client = mock.Mock()
        writer = stores.GrpcObjectWriter(client, "projects/_/buckets/b", "empty")
        writer.close()

        (only,) = list(client.write_object.call_args.kwargs["requests"])
        assert only.finish_write is True
        assert only.write_object_spec.resource.name == "empty"

    def test_writer_close_is_idempotent(self):
        client = mock.Mock()
        writer = stores.GrpcObjectWriter(client, "projects/_/buckets/b", "o")
        writer.write(b"x")
        writer.close()
        writer.close()
        assert client.write_object.call_count == 1
        with pytest.raises(ValueError):
            writer.write(b"y")

    def test_range_read_request_fields(self):
        client = mock.Mock()
        client.read_object.return_value = iter([])
        store = stores.GrpcObjectStore(client, "bkt", Api.GRPC_DP)

        store.open_range_reader("obj", 5, 10)

        request = client.read_object.call_args.kwargs["request"]
        assert request.bucket == "projects/_/buckets/bkt"
        assert request.object_ == "obj"
        assert request.read_offset == 5
        assert request.read_limit == 10

    def test_list_request_uses_bucket_path(self):
        client = mock.Mock()
        obj = mock.Mock()
        obj.name = "a"
        client.list_objects.return_value = iter([obj])
        store = stores.GrpcObjectStore(client, "bkt", Api.GRPC_DP)

        assert list(store.iter_objects()) == ["a"]
        assert client.list_objects.call_args.kwargs["request"].parent == "projects/_/buckets/bkt"

    def test_direct_path_factory_builds_channel_on_c2p_target(self):
        creds = mock.Mock(name="credentials")
        transports = "google.cloud._storage_v2.services.storage.transports.StorageGrpcTransport"
        with mock.patch("google.auth.default", return_value=(creds, "proj")), \
                mock.patch(transports) as transport_cls, \
                mock.patch("google.cloud._storage_v2.StorageClient") as client_cls:
            store = stores.build_grpc_dp_store(BenchmarkSettings(bucket="bkt", api="grpc-dp"))

        transport_cls.create_channel.assert_called_once_with(
            stores.DIRECT_PATH_TARGET,
            credentials=creds,
            scopes=[stores.FULL_CONTROL_SCOPE],
        )
        transport_cls.assert_called_once_with(channel=transport_cls.create_channel.return_value)
        client_cls.assert_called_once_with(transport=transport_cls.return_value)
        assert store.client is client_cls.return_value
        assert store.bucket_path == "projects/_/buckets/bkt"
        assert store.api is Api.GRPC_DP
