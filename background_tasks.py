"""
Background watchers for server-side polling of generation tasks.
"""
import asyncio
import logging
from typing import Dict, Optional

from supabase import Client

from gen_tasks.errors import TaskNotFoundError
from gen_tasks.poller import TaskPoller
from gen_tasks.task_store import list_open_tasks

logger = logging.getLogger("uvicorn.error")


class TaskWatchRegistry:
    """
    Owns one TaskPoller per watched task. Each poller runs a privileged
    reconcile until the task is terminal, then drops out of the registry.
    """

    def __init__(self, reconciler, interval: float = 2.5, supabase: Client = None):
        self.reconciler = reconciler
        self.interval = interval
        self.supabase = supabase
        self._pollers: Dict[str, TaskPoller] = {}

    def watch(self, task_id: str) -> TaskPoller:
        """
        Start a watcher for ``task_id`` (no-op when one is already running)

        Args:
            task_id: Local task id

        Returns:
            TaskPoller: Running poller
        """
        poller = self._pollers.get(task_id)
        if poller is not None and poller.running:
            return poller

        async def fetch():
            try:
                return await self.reconciler.reconcile(task_id)
            except TaskNotFoundError:
                logger.warning("[BackgroundTask] task_id=%s no longer exists, stopping watcher", task_id)
                poller.cancel()
                return None

        poller = TaskPoller(fetch, interval=self.interval, name=f"task {task_id}")
        self._pollers[task_id] = poller
        task = poller.start()
        task.add_done_callback(lambda _t: self._forget(task_id, poller))
        logger.info("[BackgroundTask] Registered task_id=%s", task_id)
        return poller

    def _forget(self, task_id: str, poller: TaskPoller) -> None:
        if self._pollers.get(task_id) is poller:
            del self._pollers[task_id]

    def get(self, task_id: str) -> Optional[TaskPoller]:
        return self._pollers.get(task_id)

    def is_watching(self, task_id: str) -> bool:
        poller = self._pollers.get(task_id)
        return poller is not None and poller.running

    def resume_open_tasks(self, limit: int = 100) -> int:
        """Re-attach watchers to IN_PROGRESS tasks (after a restart)."""
        try:
            rows = list_open_tasks(limit=limit, supabase=self.supabase)
        except Exception as e:
            logger.error("[BackgroundTask] Failed to list open tasks: %s", e)
            return 0
        for row in rows:
            self.watch(row["id"])
        return len(rows)

    async def cancel_all(self) -> None:
        pollers = list(self._pollers.values())
        for poller in pollers:
            poller.cancel()
        if pollers:
            await asyncio.gather(*(p.wait() for p in pollers))
        self._pollers.clear()
