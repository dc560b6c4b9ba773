# jurisly/monitoring.py
"""
Timing helpers around store operations and calls to hosted services.
"""

import time
from contextlib import contextmanager

from .logging_config import get_logger

logger = get_logger(__name__)

SLOW_OPERATION_MS = 2000


@contextmanager
def track_operation(operation_name: str, **context_data):
    """
    Usage:
        with track_operation("add_message", user_id=user_id):
            ...
    """
    start_time = time.time()

    logger.debug(
        f"Starting operation: {operation_name}",
        extra={"extra_data": {"operation": operation_name, **context_data}}
    )

    try:
        yield
    except Exception as e:
        logger.error(
            f"Operation failed: {operation_name}",
            extra={
                "extra_data": {
                    "operation": operation_name,
                    "execution_time_ms": int((time.time() - start_time) * 1000),
                    "status": "failed",
                    "error": str(e),
                    **context_data
                }
            },
            exc_info=True
        )
        raise

    execution_time = int((time.time() - start_time) * 1000)
    log = logger.warning if execution_time > SLOW_OPERATION_MS else logger.debug
    log(
        f"Operation completed: {operation_name}",
        extra={
            "extra_data": {
                "operation": operation_name,
                "execution_time_ms": execution_time,
                "status": "success",
                **context_data
            }
        }
    )


@contextmanager
def track_external_api_call(service_name: str, operation: str, **metadata):
    """
    Usage:
        with track_external_api_call("identity", "signup"):
            response = await client.post(...)
    """
    start_time = time.time()

    try:
        yield
    except Exception as e:
        logger.warning(
            f"External API call failed: {service_name}.{operation}",
            extra={
                "extra_data": {
                    "service": service_name,
                    "operation": operation,
                    "execution_time_ms": int((time.time() - start_time) * 1000),
                    "status": "failed",
                    "error": str(e),
                    **metadata
                }
            }
        )
        raise

    logger.info(
        f"External API call succeeded: {service_name}.{operation}",
        extra={
            "extra_data": {
                "service": service_name,
                "operation": operation,
                "execution_time_ms": int((time.time() - start_time) * 1000),
                "status": "success",
                **metadata
            }
        }
    )
