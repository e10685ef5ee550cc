# util/timing.py
import time
from contextlib import contextmanager
from typing import Any, Iterator
import logging


@contextmanager
def timed(logger: logging.Logger, name: str, **kv: Any) -> Iterator[None]:
    """
    Usage:
      with timed(logger, "piece.commit", bytes=n):
          ...
    Emits "<name>.done ms=<int> key=val ..." on success and
    "<name>.failed ms=<int> ..." at WARNING when the block raises.
    """
    t0 = time.perf_counter()
    ok = False
    try:
        yield
        ok = True
    finally:
        dt_ms = int((time.perf_counter() - t0) * 1000)
        suffix = "".join(f" {k}={v}" for k, v in kv.items())
        if ok:
            logger.info("%s.done ms=%d%s", name, dt_ms, suffix)
        else:
            logger.warning("%s.failed ms=%d%s", name, dt_ms, suffix)
