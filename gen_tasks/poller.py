"""
Cancellable polling loop for one generation task.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from gen_tasks.models import is_terminal

logger = logging.getLogger("uvicorn.error")


def _status_of(result: Any) -> Optional[str]:
    if result is None:
        return None
    if isinstance(result, dict):
        status = result.get("status")
    else:
        status = getattr(result, "status", None)
    return getattr(status, "value", status)


class TaskPoller:
    """
    Calls ``fetch()`` every ``interval`` seconds until it reports a terminal
    status (SUCCEEDED/FAILED/DELETED) or the poller is cancelled.

    Errors raised by ``fetch`` are logged and retried on the next tick.
    ``on_update`` (sync or async) receives every successful result.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        interval: float = 2.5,
        on_update: Optional[Callable[[Any], Any]] = None,
        name: str = "task",
    ):
        self.fetch = fetch
        self.interval = interval
        self.on_update = on_update
        self.name = name
        self.last_result: Any = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = asyncio.create_task(self._run())
        logger.info("[Poller] Started %s every %.1fs", self.name, self.interval)
        return self._task

    def cancel(self) -> None:
        if self.running:
            self._task.cancel()
            logger.info("[Poller] Cancelled %s", self.name)

    async def wait(self) -> Any:
        """Wait for the loop to end; returns the last result (None when cancelled early)."""
        if self._task is None:
            return self.last_result
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        return self.last_result

    async def _run(self) -> None:
        while True:
            try:
                result = await self.fetch()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("[Poller] %s fetch failed, retrying: %s", self.name, e)
            else:
                self.last_result = result
                if self.on_update is not None:
                    maybe = self.on_update(result)
                    if asyncio.iscoroutine(maybe):
                        await maybe
                status = _status_of(result)
                if is_terminal(status):
                    logger.info("[Poller] %s finished with %s", self.name, status)
                    return
            await asyncio.sleep(self.interval)
