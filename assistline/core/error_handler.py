"""Error handling for long-running background work."""

import asyncio
import functools
import logging
from typing import Any, Callable, Optional, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    error = context.get("exception")
    message = context.get("message") or "unhandled exception in background task"
    task = context.get("task") or context.get("future")
    task_name = task.get_name() if isinstance(task, asyncio.Task) else "-"
    if error is not None:
        logger.error("asyncio: %s (task=%s)", message, task_name, exc_info=error)
    else:
        logger.error("asyncio: %s (task=%s, context=%s)", message, task_name, context)


def setup_global_exception_handler(loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
    """Log exceptions from tasks nobody awaited. Returns False when no loop is running."""
    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; asyncio exception handler not installed")
            return False
    loop.set_exception_handler(_log_unhandled)
    return True


def resilient_task(
    *,
    task_name: str,
    retry_on_error: bool = True,
    retry_delay: float = 5.0,
    max_retries: Optional[int] = None,
) -> Callable[[Callable[P, Any]], Callable[P, Any]]:
    """
    Restart a background coroutine after it crashes.

    Cancellation always propagates. With ``max_retries`` the error is
    re-raised once that many consecutive attempts have failed.

    Example:
        @resilient_task(task_name="expired_assignment_sweeper")
        async def loop(machine):
            while True:
                await sweep_expired(machine)
                await asyncio.sleep(300)
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            failures = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except asyncio.CancelledError:
                    logger.info("%s stopped", task_name)
                    raise
                except Exception as exc:
                    failures += 1
                    exhausted = max_retries is not None and failures >= max_retries
                    if not retry_on_error or exhausted:
                        logger.critical("%s gave up after %d failure(s): %s", task_name, failures, exc, exc_info=True)
                        raise
                    logger.error(
                        "%s crashed (failure %d), restarting in %.1fs: %s",
                        task_name,
                        failures,
                        retry_delay,
                        exc,
                        exc_info=True,
                    )
                    await asyncio.sleep(retry_delay)

        return wrapper

    return decorator


class GracefulShutdown:
    """Tracks background tasks started in the app lifespan and stops them on exit."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._tasks: list[asyncio.Task] = []

    def add_task(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.append(task)
        return task

    @property
    def running(self) -> list[str]:
        return [task.get_name() for task in self._tasks if not task.done()]

    async def shutdown(self) -> None:
        pending = [task for task in self._tasks if not task.done()]
        if not pending:
            return
        logger.info("Stopping background tasks: %s", ", ".join(t.get_name() for t in pending))
        for task in pending:
            task.cancel()
        done, still_running = await asyncio.wait(pending, timeout=self.timeout)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning("%s exited with %r", task.get_name(), task.exception())
        if still_running:
            logger.warning(
                "Background tasks still running after %.1fs: %s",
                self.timeout,
                ", ".join(t.get_name() for t in still_running),
            )


__all__ = ["setup_global_exception_handler", "resilient_task", "GracefulShutdown"]
