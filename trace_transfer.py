"""CLI entrypoint for the traced transfer benchmark.

This file wires together:

- Settings resolution (flags, YAML file, environment)
- Transport selection for the data-plane client
- Optional OpenTelemetry tracing and CPU profiling
- The upload / download phases and the timing report
"""

import argparse
import json
import logging
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from gcsbench import __version__
from gcsbench.benchmark import BenchmarkReport, TransferBenchmark
from gcsbench.config import Api, BenchmarkSettings, load_env_file, load_settings
from gcsbench.exceptions import GcsBenchError
from gcsbench.logging_config import log_exception, setup_logging
from gcsbench.profiling import cpu_profile
from gcsbench.stores import ObjectStore, get_object_store
from gcsbench.tracing import (
    PhaseTracer,
    enable_client_library_spans,
    enable_tracing,
    ensure_shutdown,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Upload an object, read part of it back with a pause, and report latency",
        allow_abbrev=False,
    )
    parser.add_argument("-bucket", "--bucket", help="Target bucket")
    parser.add_argument(
        "-api",
        "--api",
        choices=Api.choices(),
        help="Client transport (default: http2)",
    )
    parser.add_argument(
        "-cpuprofile",
        "--cpuprofile",
        metavar="FILE",
        help="Write a CPU profile of the run to FILE",
    )
    parser.add_argument(
        "-add-spans",
        "--add-spans",
        dest="add_spans",
        action="store_true",
        default=None,
        help="Wrap operations in application-level trace spans exported to Cloud Trace",
    )
    parser.add_argument(
        "--list-objects",
        dest="list_objects",
        action="store_true",
        default=None,
        help="Also time a full listing of the bucket",
    )
    parser.add_argument("--config", help="YAML settings file (sizes, delays, bucket, api)")
    parser.add_argument("--output", type=Path, help="Save the report to a JSON file")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose (DEBUG level) logging"
    )
    parser.add_argument(
        "--log-format",
        choices=["human", "json", "simple"],
        default=None,
        help="Log format (default: human). Can also set via GCSBENCH_LOG_FORMAT env var",
    )
    parser.add_argument(
        "--log-context",
        action="store_true",
        help="Include module, function and line number in console log lines",
    )
    parser.add_argument(
        "--version", action="version", version=f"gcsbench {__version__}"
    )
    return parser


class TransferOrchestrator:
    """Runs one benchmark and turns any failure into exit status 1."""

    def __init__(
        self,
        args: argparse.Namespace,
        store_factory: Callable[[BenchmarkSettings], ObjectStore] = get_object_store,
        tracing_factory: Callable[..., Any] = enable_tracing,
        benchmark_factory: Callable[..., TransferBenchmark] = TransferBenchmark,
    ) -> None:
        self.args = args
        self.store_factory = store_factory
        self.tracing_factory = tracing_factory
        self.benchmark_factory = benchmark_factory

    def execute(self) -> int:
        try:
            return self._run()
        except GcsBenchError as exc:
            log_exception(logger, "trace-transfer failed", exc)
            return 1

    def _overrides(self) -> Dict[str, Any]:
        return {
            "bucket": self.args.bucket,
            "api": self.args.api,
            "add_spans": self.args.add_spans,
            "cpuprofile": self.args.cpuprofile,
            "list_objects": self.args.list_objects,
        }

    def _run(self) -> int:
        settings = load_settings(self.args.config, overrides=self._overrides())

        with ExitStack() as stack:
            provider = None
            if settings.add_spans:
                # Before the store factory imports the storage library
                enable_client_library_spans()
                provider, teardown = self.tracing_factory(settings.service_name)
                stack.callback(ensure_shutdown, teardown)

            store = self.store_factory(settings)
            stack.callback(store.close)

            tracer = PhaseTracer(
                enabled=settings.add_spans,
                provider=provider,
                attributes={"api": settings.api.value},
            )

            stack.enter_context(cpu_profile(settings.cpuprofile))
            report = self.benchmark_factory(store, settings, tracer).run()

        report.print_summary()
        if self.args.output:
            self._write_report(report, self.args.output)
        return 0

    @staticmethod
    def _write_report(report: BenchmarkReport, path: Path) -> None:
        path.write_text(json.dumps(report.summary(), indent=2), encoding="utf-8")
        print(f"Results saved to {path}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else None,
        format_type=args.log_format,
        use_colors=True,
        include_context=args.log_context,
    )
    load_env_file()

    return TransferOrchestrator(args).execute()


if __name__ == "__main__":
    sys.exit(main())
