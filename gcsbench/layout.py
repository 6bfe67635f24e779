"""Storage layout lookup through the Storage Control API."""

from __future__ import annotations

import logging
from typing import Any, Optional

import google.auth
from google.cloud import storage_control_v2

from gcsbench.error_wrapper import wrap_client_error, wrap_layout_error
from gcsbench.stores import FULL_CONTROL_SCOPE

logger = logging.getLogger(__name__)

# Bucket inspected when none is given
DEFAULT_LAYOUT_BUCKET = "gcsbench-test"


def storage_layout_name(bucket: str, project: str = "_") -> str:
    """Resource name of a bucket's storage layout; ``_`` lets the service resolve the project."""
    return f"projects/{project}/buckets/{bucket}/storageLayout"


def build_control_client(credentials: Optional[Any] = None) -> storage_control_v2.StorageControlClient:
    """Create a control-plane client using default credentials scoped for full control."""
    with wrap_client_error("control", "failed to create control client"):
        if credentials is None:
            credentials, _ = google.auth.default(scopes=[FULL_CONTROL_SCOPE])
        client = storage_control_v2.StorageControlClient(credentials=credentials)
    logger.info("Successfully created control client")
    return client


def fetch_storage_layout(client: Any, bucket: str, project: str = "_") -> storage_control_v2.StorageLayout:
    """Issue a single GetStorageLayout call for ``bucket``.

    Raises:
        LayoutLookupError: If the call fails
    """
    name = storage_layout_name(bucket, project)
    request = storage_control_v2.GetStorageLayoutRequest(name=name)
    logger.debug(f"GetStorageLayout {name}")
    with wrap_layout_error(name):
        return client.get_storage_layout(request=request)


def format_layout(layout: storage_control_v2.StorageLayout, as_json: bool = False) -> str:
    if as_json:
        return storage_control_v2.StorageLayout.to_json(layout)
    return f"Storage Layout: {layout}"
