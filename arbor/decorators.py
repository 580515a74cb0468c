import functools
import time

from arbor.const import ARBOR_TIMING_DECIMALS
from arbor.utils import get_logger


def time_func(func=None, *, num_decimals: int = ARBOR_TIMING_DECIMALS):
    """
    Logs the wall-clock duration of the decorated call.

    The logger is taken from ``self.logger`` when the first argument carries one,
    from a ``logger`` keyword argument otherwise, and falls back to the logger of
    the module defining the function.
    """
    if func is None:
        return functools.partial(time_func, num_decimals=num_decimals)

    module_logger = get_logger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = time.perf_counter() - start_time

        self_ = args[0] if args else None
        if self_ is not None and hasattr(getattr(self_, "logger", None), "info"):
            logger = self_.logger
        elif hasattr(kwargs.get("logger"), "info"):
            logger = kwargs["logger"]
        else:
            logger = module_logger

        logger.info(f"Function '{func.__qualname__}' executed in {elapsed:.{num_decimals}f} seconds.")
        return result

    return wrapper
