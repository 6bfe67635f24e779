"""Registry of object store factories, keyed by transport name (``Api`` value)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict

if TYPE_CHECKING:
    from gcsbench.config import BenchmarkSettings
    from gcsbench.stores import ObjectStore

StoreFactory = Callable[["BenchmarkSettings"], "ObjectStore"]

STORE_REGISTRY: Dict[str, StoreFactory] = {}


def register_store(name: str) -> Callable[[StoreFactory], StoreFactory]:
    """Register ``factory`` as the builder for transport ``name``.

    Example:
        >>> @register_store(Api.HTTP2.value)
        ... def build_http2_store(settings: BenchmarkSettings) -> ObjectStore:
        ...     ...
    """

    def decorator(factory: StoreFactory) -> StoreFactory:
        STORE_REGISTRY[name.lower()] = factory
        return factory

    return decorator
