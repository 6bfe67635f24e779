"""Cloud Storage client demos: storage layout lookup and a traced transfer benchmark.

Modules:
    gcsbench.config         - transport enum and benchmark settings
    gcsbench.stores         - data-plane clients behind one ObjectStore interface
    gcsbench.benchmark      - timed upload / download / list phases
    gcsbench.tracing        - OpenTelemetry pipeline exporting to Cloud Trace
    gcsbench.layout         - Storage Control layout lookup
"""

__version__ = "1.0.0"

from gcsbench.config import Api, BenchmarkSettings, load_settings
from gcsbench.exceptions import (
    GcsBenchError,
    ConfigValidationError,
    ClientConstructionError,
    TransferError,
    LayoutLookupError,
    TracingSetupError,
)

__all__ = [
    "__version__",
    "Api",
    "BenchmarkSettings",
    "load_settings",
    "GcsBenchError",
    "ConfigValidationError",
    "ClientConstructionError",
    "TransferError",
    "LayoutLookupError",
    "TracingSetupError",
]
