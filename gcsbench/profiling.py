"""Optional CPU profile capture for a whole run."""

from __future__ import annotations

import cProfile
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from gcsbench.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)


@contextmanager
def cpu_profile(path: Optional[Union[str, Path]]) -> Iterator[Optional[cProfile.Profile]]:
    """Profile the enclosed block and dump pstats data to ``path``.

    The file is created up front so an unwritable path fails before any work
    is done. Stats are written on every exit path. With no path this is a
    no-op.
    """
    if not path:
        yield None
        return

    out = Path(path)
    try:
        out.touch()
    except OSError as e:
        raise ConfigValidationError(f"could not create CPU profile: {e}", key="cpuprofile") from e

    profiler = cProfile.Profile()
    profiler.enable()
    try:
        yield profiler
    finally:
        profiler.disable()
        profiler.dump_stats(str(out))
        logger.info(f"CPU profile written to {out}")
