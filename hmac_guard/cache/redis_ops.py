"""
Redis Failure Handling
======================
Wraps Redis calls so failures are logged and either mapped to a default
value or raised as a CacheUnavailableError subclass.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

import structlog
from redis.exceptions import RedisError

from ..exceptions import CacheUnavailableError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def execute_redis_operation(
    operation: Callable[[], Awaitable[T]],
    context: str,
    default: Any = None,
    raise_on_error: bool = True,
    exception_class: Type[CacheUnavailableError] = CacheUnavailableError,
    log_data: Optional[Dict[str, Any]] = None,
) -> T:
    """
    Run a Redis coroutine with error handling.

    Args:
        operation: Zero-argument callable returning the Redis awaitable
        context: Name of the calling operation, for logs
        default: Value returned on failure when raise_on_error is False
        raise_on_error: Raise exception_class instead of returning default
        exception_class: Exception raised on failure
        log_data: Extra (already sanitized) log fields

    Returns:
        The operation result, or the default on failure

    Raises:
        CacheUnavailableError: On Redis failure when raise_on_error is set
    """
    try:
        return await operation()
    except (RedisError, OSError) as e:
        logger.error(
            "redis_operation_failed",
            context=context,
            error=str(e),
            **(log_data or {}),
        )
        if raise_on_error:
            raise exception_class(f"Redis unavailable in {context}", context=context) from e
        return default
