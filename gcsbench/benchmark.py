"""Upload/download latency phases of the transfer benchmark.

One run writes a random object, then reads the first part of it back in two
pieces separated by a long pause. The pause models a consumer that stops
reading mid-stream; with spans enabled the two reads land in separate spans so
the trace backend shows how they relate to the library's own spans.
"""

from __future__ import annotations

import logging
import os
import sys
import time
import uuid
from contextlib import ExitStack
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional, TextIO

from gcsbench.config import BenchmarkSettings
from gcsbench.error_wrapper import wrap_transfer_error
from gcsbench.logging_config import log_performance
from gcsbench.stores import ObjectStore, ObjectWriter, RangeReader
from gcsbench.tracing import PhaseTracer

logger = logging.getLogger(__name__)

WRITE_CHUNK = 256 * 1024
READ_CHUNK = 64 * 1024


@dataclass
class PhaseResult:
    """Outcome of one timed phase."""

    phase: str
    duration_seconds: float
    bytes: int = 0
    object_name: Optional[str] = None
    objects: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class BenchmarkReport:
    api: str
    bucket: str
    upload: PhaseResult
    download: PhaseResult
    listing: Optional[PhaseResult] = None

    @property
    def total_seconds(self) -> float:
        phases = [self.upload, self.download]
        if self.listing is not None:
            phases.append(self.listing)
        return sum(p.duration_seconds for p in phases)

    def summary(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "api": self.api,
            "bucket": self.bucket,
            "upload": self.upload.to_dict(),
            "download": self.download.to_dict(),
            "total_seconds": self.total_seconds,
        }
        if self.listing is not None:
            result["listing"] = self.listing.to_dict()
        return result

    def print_summary(self, out: TextIO = sys.stdout) -> None:
        print(f"upload:   {self.upload.duration_seconds:.3f}s", file=out)
        print(f"download: {self.download.duration_seconds:.3f}s", file=out)
        if self.listing is not None:
            print(f"list:     {self.listing.duration_seconds:.3f}s", file=out)
        print(f"time of all ops: {self.total_seconds:.3f}s", file=out)


def new_object_name(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4()}"


def copy_random(writer: ObjectWriter, count: int, random_bytes: Callable[[int], bytes] = os.urandom) -> int:
    """Write exactly ``count`` random bytes to ``writer``."""
    written = 0
    while written < count:
        chunk = random_bytes(min(WRITE_CHUNK, count - written))
        n = writer.write(chunk)
        n = len(chunk) if n is None else n
        if n < len(chunk):
            raise IOError(f"short write: {n} of {len(chunk)} bytes")
        written += n
    return written


def discard(reader: RangeReader, count: int) -> int:
    """Read and drop exactly ``count`` bytes from ``reader``."""
    done = 0
    while done < count:
        data = reader.read(min(READ_CHUNK, count - done))
        if not data:
            raise EOFError(f"unexpected EOF after {done} of {count} bytes")
        done += len(data)
    return done


class TransferBenchmark:
    """Runs the upload, download and (optional) listing phases against a store.

    The clock, sleep and random source are injectable so the phases can run
    against fakes without waiting on the configured pauses.
    """

    def __init__(
        self,
        store: ObjectStore,
        settings: BenchmarkSettings,
        tracer: Optional[PhaseTracer] = None,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], None] = time.sleep,
        random_bytes: Callable[[int], bytes] = os.urandom,
    ) -> None:
        self.store = store
        self.settings = settings
        self.tracer = tracer or PhaseTracer(enabled=False)
        self._clock = clock
        self._sleep = sleep
        self._random_bytes = random_bytes

    def upload(self) -> PhaseResult:
        """Write ``object_size`` random bytes to a freshly named object."""
        bucket = self.settings.bucket
        with self.tracer.span("upload") as span:
            start = self._clock()
            object_name = new_object_name(self.settings.object_prefix)
            if span is not None:
                span.set_attribute("object", object_name)

            with wrap_transfer_error("upload", "open writer", bucket, object_name):
                writer = self.store.open_writer(object_name)
            try:
                self._sleep(self.settings.upload_delay)
                with wrap_transfer_error("upload", "io.CopyN", bucket, object_name):
                    written = copy_random(writer, self.settings.object_size, self._random_bytes)
            except BaseException:
                writer.abort()
                raise
            with wrap_transfer_error("upload", "w.Close", bucket, object_name):
                writer.close()

            duration = self._clock() - start

        logger.debug(f"Uploaded {written} bytes to gs://{bucket}/{object_name}")
        log_performance(logger, "upload", duration, bytes=written, api=self.store.api.value)
        return PhaseResult("upload", duration, bytes=written, object_name=object_name)

    def download(self, object_name: str) -> PhaseResult:
        """Read the first ``read_length`` bytes of ``object_name`` in two pieces."""
        bucket = self.settings.bucket
        first = self.settings.first_read
        rest = self.settings.read_length - first

        start = self._clock()
        with ExitStack() as stack:
            with self.tracer.span("user-span-1", object=object_name) as first_span:
                with wrap_transfer_error("download", "new reader", bucket, object_name):
                    reader = stack.enter_context(
                        self.store.open_range_reader(object_name, 0, self.settings.read_length)
                    )
                with wrap_transfer_error("download", "io.Copy", bucket, object_name):
                    read = discard(reader, first)

            self._sleep(self.settings.read_pause)

            with self.tracer.span("user-span-2", parent=first_span, object=object_name):
                with wrap_transfer_error("download", "io.Copy", bucket, object_name):
                    read += discard(reader, rest)

            self._sleep(self.settings.close_delay)

            with wrap_transfer_error("download", "r.Close", bucket, object_name):
                stack.close()

        duration = self._clock() - start
        log_performance(logger, "download", duration, bytes=read, api=self.store.api.value)
        return PhaseResult("download", duration, bytes=read, object_name=object_name)

    def list_objects(self) -> PhaseResult:
        """Iterate every object in the bucket without looking at any of them."""
        bucket = self.settings.bucket
        with self.tracer.span("list-objects"):
            start = self._clock()
            count = 0
            with wrap_transfer_error("list", f"Bucket({bucket!r}).Objects", bucket):
                for _ in self.store.iter_objects():
                    count += 1
            duration = self._clock() - start

        log_performance(logger, "list", duration, objects=count, api=self.store.api.value)
        return PhaseResult("list", duration, objects=count)

    def run(self) -> BenchmarkReport:
        upload = self.upload()
        download = self.download(upload.object_name)
        listing = self.list_objects() if self.settings.list_objects else None
        return BenchmarkReport(
            api=self.store.api.value,
            bucket=self.settings.bucket,
            upload=upload,
            download=download,
            listing=listing,
        )
