"""Settings for the transfer benchmark.

Settings are resolved in layers: built-in defaults, an optional YAML file
(with ``${VAR}`` expansion), ``GCSBENCH_*`` environment variables, and
finally command-line overrides.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from gcsbench.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

KIB = 1024
MIB = 1024 * KIB

DEFAULT_BUCKET = "gcsbench-test"

# Pattern for ${VAR_NAME} or $VAR_NAME
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

_TRUE_VALUES = ("1", "true", "yes", "on")


class Api(str, Enum):
    """Transport used by the data-plane client."""

    HTTP1 = "http1"
    HTTP2 = "http2"
    GRPC_DP = "grpc-dp"

    @classmethod
    def choices(cls) -> List[str]:
        return [api.value for api in cls]

    @classmethod
    def normalize(cls, value: Union[str, "Api", None]) -> "Api":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.HTTP2
        candidate = str(value).strip().lower()
        for api in cls:
            if api.value == candidate:
                return api
        raise ConfigValidationError(
            f"Invalid api '{value}'. Valid options: {', '.join(cls.choices())}",
            key="api",
        )

    def describe(self) -> str:
        descriptions = {
            Api.HTTP1: "JSON API over an HTTP/1.1-only connection pool",
            Api.HTTP2: "JSON API with the library's default transport",
            Api.GRPC_DP: "gRPC over Google direct path",
        }
        return descriptions.get(self, self.value)


@dataclass(frozen=True)
class BenchmarkSettings:
    """Everything one run of the transfer benchmark needs."""

    bucket: str = DEFAULT_BUCKET
    api: Api = Api.HTTP2
    add_spans: bool = False
    cpuprofile: Optional[str] = None
    list_objects: bool = False
    service_name: str = "gcsbench-trace-transfer"
    object_prefix: str = "trace"
    object_size: int = 10 * MIB
    read_length: int = 1 * MIB
    first_read: int = 1 * KIB
    upload_delay: float = 1.0
    read_pause: float = 100.0
    close_delay: float = 5.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "api", Api.normalize(self.api))

    def validate(self) -> "BenchmarkSettings":
        """Raise ConfigValidationError if the settings cannot describe a run."""
        if not self.bucket:
            raise ConfigValidationError("bucket must not be empty", key="bucket")
        for key in ("object_size", "read_length", "first_read"):
            if getattr(self, key) <= 0:
                raise ConfigValidationError(f"{key} must be positive", key=key)
        if self.read_length > self.object_size:
            raise ConfigValidationError(
                f"read_length ({self.read_length}) exceeds object_size ({self.object_size})",
                key="read_length",
            )
        if self.first_read > self.read_length:
            raise ConfigValidationError(
                f"first_read ({self.first_read}) exceeds read_length ({self.read_length})",
                key="first_read",
            )
        for key in ("upload_delay", "read_pause", "close_delay"):
            if getattr(self, key) < 0:
                raise ConfigValidationError(f"{key} must not be negative", key=key)
        return self


_FIELD_NAMES = {f.name for f in fields(BenchmarkSettings)}

# Environment variables consulted after the settings file
ENV_OVERRIDES: Dict[str, str] = {
    "GCSBENCH_BUCKET": "bucket",
    "GCSBENCH_API": "api",
    "GCSBENCH_ADD_SPANS": "add_spans",
}


def expand_env_vars(value: str) -> str:
    """Expand ``${VAR}`` / ``$VAR`` references, leaving unknown ones untouched.

    Example:
        >>> os.environ["BENCH_BUCKET"] = "my-bucket"
        >>> expand_env_vars("${BENCH_BUCKET}")
        'my-bucket'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(2)
        return os.environ.get(var_name, match.group(0))

    return ENV_VAR_PATTERN.sub(replacer, value)


def _read_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    logger.info(f"Loading settings from {path}")

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigValidationError("Settings file not found", config_path=str(path))

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in settings file: {e}", config_path=str(path)) from e

    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ConfigValidationError("Settings must be a YAML mapping", config_path=str(path))

    unknown = sorted(set(cfg) - _FIELD_NAMES)
    if unknown:
        raise ConfigValidationError(
            f"Unknown settings: {', '.join(unknown)}", config_path=str(path), key=unknown[0]
        )

    return {k: expand_env_vars(v) if isinstance(v, str) else v for k, v in cfg.items()}


def _coerce(key: str, value: Any) -> Any:
    default = getattr(BenchmarkSettings, key, None)
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_VALUES
        return bool(value)
    if isinstance(default, (int, float)) and not isinstance(default, bool):
        if isinstance(value, str):
            try:
                return type(default)(value)
            except ValueError as e:
                raise ConfigValidationError(f"{key} must be a number, got '{value}'", key=key) from e
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigValidationError(
                f"{key} must be a number, got {type(value).__name__} {value!r}", key=key
            )
    return value


def _env_values(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for env_name, key in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[key] = environ[env_name]
    return values


def load_settings(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BenchmarkSettings:
    """Resolve and validate benchmark settings.

    Args:
        path: Optional YAML settings file
        overrides: Explicit values (e.g. from argparse); None values are skipped
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated BenchmarkSettings

    Raises:
        ConfigValidationError: If any layer holds an invalid value
    """
    environ = os.environ if environ is None else environ

    values: Dict[str, Any] = {}
    if path:
        values.update(_read_yaml(path))
    values.update(_env_values(environ))
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key not in _FIELD_NAMES:
            raise ConfigValidationError(f"Unknown setting: {key}", key=key)
        values[key] = value

    settings = replace(BenchmarkSettings(), **{k: _coerce(k, v) for k, v in values.items()})
    return settings.validate()


def load_env_file(path: Optional[Union[str, Path]] = None) -> bool:
    """Load a .env file without overriding variables that are already set."""
    return load_dotenv(dotenv_path=path, override=False)
