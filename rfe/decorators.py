import functools
import time

from rfe.utils import get_logger


def time_func(func, num_decimals: int = 4):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = time.perf_counter() - start_time

        # Prefer the instance logger when decorating a method
        self_ = args[0] if args else None
        logger = getattr(self_, "logger", None) or kwargs.get("logger") or get_logger(func.__module__)
        logger.debug(f"Function '{func.__qualname__}' executed in {elapsed:.{num_decimals}f} seconds.")
        return result

    return wrapper
