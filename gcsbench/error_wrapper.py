"""Helpers to wrap client-library exceptions into gcsbench exceptions.

google-auth, google-api-core, google-resumable-media, requests and grpc each
raise their own exception types; callers only ever see the typed hierarchy
in :mod:`gcsbench.exceptions`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from gcsbench.exceptions import (
    ClientConstructionError,
    GcsBenchError,
    LayoutLookupError,
    TransferError,
)

logger = logging.getLogger(__name__)


@contextmanager
def wrap_transfer_error(
    operation: str,
    message: str,
    bucket: Optional[str] = None,
    object_name: Optional[str] = None,
) -> Iterator[None]:
    """Re-raise anything but a gcsbench error as TransferError.

    Example:
        >>> with wrap_transfer_error("upload", "w.close", bucket="b", object_name="o"):
        ...     writer.close()
    """
    try:
        yield
    except GcsBenchError:
        raise
    except Exception as exc:
        error_type = type(exc).__name__
        raise TransferError(
            f"{message}: {error_type}: {exc}",
            operation=operation,
            bucket=bucket,
            object_name=object_name,
            original_error=exc,
        ) from exc


@contextmanager
def wrap_client_error(api: str, message: str) -> Iterator[None]:
    """Re-raise client construction failures as ClientConstructionError."""
    try:
        yield
    except GcsBenchError:
        raise
    except Exception as exc:
        raise ClientConstructionError(f"{message}: {exc}", api=api, original_error=exc) from exc


@contextmanager
def wrap_layout_error(name: str) -> Iterator[None]:
    try:
        yield
    except GcsBenchError:
        raise
    except Exception as exc:
        raise LayoutLookupError(
            f"failed to get storage layout: {exc}", name=name, original_error=exc
        ) from exc
