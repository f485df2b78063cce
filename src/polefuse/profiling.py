"""Stage timing for the fusion pipeline."""

import logging
import time
from contextlib import contextmanager

from torch.profiler import record_function


@contextmanager
def timed_stage(name: str, logger: logging.Logger):
    """Time a pipeline stage and label it for torch.profiler traces.

    Args:
        name: Stage name (e.g., "masking", "alignment").
        logger: Logger that receives the elapsed time at DEBUG level.

    Yields:
        None.
    """
    start = time.perf_counter()
    with record_function(name):
        yield
    logger.debug("Stage %s took %.3fs", name, time.perf_counter() - start)


__all__ = ["timed_stage"]
