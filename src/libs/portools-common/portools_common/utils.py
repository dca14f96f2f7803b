# src/libs/portools-common/portools_common/utils.py
import time
import functools
from typing import Callable, Any

from .monitoring import DB_OPERATION_LATENCY_SECONDS

def async_timed(repository: str, method: str) -> Callable:
    """
    Times an async repository method into the DB_OPERATION_LATENCY_SECONDS
    histogram, labelled by repository and method name.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            start_time = time.monotonic()
            try:
                return await func(*args, **kwargs)
            finally:
                DB_OPERATION_LATENCY_SECONDS.labels(
                    repository=repository,
                    method=method
                ).observe(time.monotonic() - start_time)
        return wrapper
    return decorator
