"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Iterator, List, Optional

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from gcsbench.config import Api, BenchmarkSettings  # noqa: E402
from gcsbench.stores import ObjectStore, ObjectWriter, RangeReader  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self, tick: float = 0.0) -> None:
        self.now = 0.0
        self.tick = tick
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        self.now += self.tick
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeWriter(ObjectWriter):
    def __init__(self, store: "FakeStore", name: str) -> None:
        self.store = store
        self.name = name
        self.buffer = bytearray()
        self.closed = False
        self.aborted = False

    def write(self, data: bytes) -> int:
        if self.store.fail_write_after is not None and len(self.buffer) >= self.store.fail_write_after:
            raise OSError("connection reset")
        self.buffer.extend(data)
        return len(data)

    def close(self) -> None:
        if self.store.fail_close:
            raise OSError("finalize failed")
        self.closed = True
        self.store.objects[self.name] = bytes(self.buffer)

    def abort(self) -> None:
        self.aborted = True


class FakeReader(RangeReader):
    def __init__(self, data: bytes, offset: int, length: int) -> None:
        super().__init__(offset, length)
        self._data = data[offset:offset + length]
        self._pos = 0
        self.reads: List[int] = []
        self.close_calls = 0

    def _read(self, size: int) -> bytes:
        chunk = self._data[self._pos:self._pos + size]
        self._pos += len(chunk)
        self.reads.append(len(chunk))
        return chunk

    def _close(self) -> None:
        self.close_calls += 1


class FakeStore(ObjectStore):
    """In-memory ObjectStore recording every stream it hands out."""

    def __init__(self, bucket: str = "test-bucket", api: Api = Api.HTTP2) -> None:
        super().__init__(bucket, api)
        self.objects = {}
        self.writers: List[FakeWriter] = []
        self.readers: List[FakeReader] = []
        self.fail_write_after: Optional[int] = None
        self.fail_close = False
        self.truncate_to: Optional[int] = None
        self.closed = False

    def open_writer(self, object_name: str) -> ObjectWriter:
        writer = FakeWriter(self, object_name)
        self.writers.append(writer)
        return writer

    def open_range_reader(self, object_name: str, offset: int, length: int) -> RangeReader:
        if object_name not in self.objects:
            raise FileNotFoundError(object_name)
        data = self.objects[object_name]
        if self.truncate_to is not None:
            data = data[:self.truncate_to]
        reader = FakeReader(data, offset, length)
        self.readers.append(reader)
        return reader

    def iter_objects(self) -> Iterator[str]:
        return iter(sorted(self.objects))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> BenchmarkSettings:
    """Default sizes and delays; the fake clock makes the delays free."""
    return BenchmarkSettings(bucket="test-bucket")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Unset variables the code under test reads or sets, and restore them afterwards."""
    for name in (
        "GCSBENCH_BUCKET",
        "GCSBENCH_API",
        "GCSBENCH_ADD_SPANS",
        "GOOGLE_CLOUD_ENABLE_DIRECT_PATH_XDS",
        "ENABLE_GCS_PYTHON_CLIENT_OTEL_TRACES",
    ):
        # setenv first so monkeypatch records the original state even when the
        # code under test writes os.environ directly
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
