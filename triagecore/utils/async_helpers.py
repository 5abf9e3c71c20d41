# triagecore/utils/async_helpers.py
"""
Async utilities for safe task management.
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


def create_safe_task(
    coro: Coroutine[Any, Any, Any],
    name: Optional[str] = None,
    log_errors: bool = True
) -> asyncio.Task:
    """
    Create an asyncio task with automatic error handling.

    This prevents fire-and-forget tasks from silently swallowing exceptions.

    Example:
        # Instead of: asyncio.create_task(store.persist_all())
        # Use: create_safe_task(store.persist_all(), name="persist_cli_results")
    """
    task = asyncio.create_task(coro, name=name)

    def _handle_exception(t: asyncio.Task):
        if t.cancelled():
            return
        exc = t.exception()
        if exc and log_errors:
            task_name = name or t.get_name()
            logger.error(f"[AsyncTask:{task_name}] Unhandled exception: {exc}", exc_info=exc)

    task.add_done_callback(_handle_exception)
    return task
