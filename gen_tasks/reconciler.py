"""
Task Status Reconciler

Brings a stored task up to date with the provider, either by pulling the
provider status (``reconcile``) or from a provider push
(``handle_provider_callback``). Both paths go through ``merge_snapshot``
and the same mirror -> mark SUCCEEDED -> link design sequence.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel
from supabase import Client

from gen_tasks import analytics, task_store
from gen_tasks.asset_mirror import AssetMirror
from gen_tasks.design_linkage import link_design
from gen_tasks.errors import ProviderStatusError, TaskNotFoundError, TaskValidationError
from gen_tasks.meshy_client import MeshyClient
from gen_tasks.models import (
    MODEL_URL_COLUMNS,
    AssetUrls,
    ProviderStatusSnapshot,
    TaskMode,
    TaskSnapshot,
    TaskStatus,
    asset_urls_from_row,
    can_transition,
    is_terminal,
)
from gen_tasks.webhook import resolve_provider_task_id, resolve_webhook_fields

logger = logging.getLogger("uvicorn.error")

OPEN_STATUSES = [TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value]


def _has_model(task: Dict[str, Any], snapshot: ProviderStatusSnapshot) -> bool:
    if any(url for url in snapshot.model_urls.values()):
        return True
    return any(task.get(column) for column in MODEL_URL_COLUMNS.values())


def merge_snapshot(task: Dict[str, Any], snapshot: ProviderStatusSnapshot) -> Dict[str, Any]:
    """
    Field updates that bring ``task`` in line with ``snapshot``

    Status only moves forward, progress never decreases and URLs are only
    replaced by present values. A terminal task yields no updates.
    SUCCEEDED is withheld while no model URL is known, and a FAILED or
    DELETED update carries no output URLs.
    """
    current = task.get("status")
    if is_terminal(current):
        return {}

    updates: Dict[str, Any] = {}
    new_status = snapshot.status.value if snapshot.status else None
    if new_status == TaskStatus.SUCCEEDED.value and not _has_model(task, snapshot):
        new_status = None
    if can_transition(current, new_status):
        updates["status"] = new_status

    progress = snapshot.progress
    if updates.get("status") == TaskStatus.SUCCEEDED.value:
        progress = 100
    if progress is not None and progress > (task.get("progress") or 0):
        updates["progress"] = progress

    failed = updates.get("status") in (TaskStatus.FAILED.value, TaskStatus.DELETED.value)
    if failed:
        updates["error"] = snapshot.error or {"provider_status": snapshot.provider_status}
    else:
        if snapshot.thumbnail_url and snapshot.thumbnail_url != task.get("thumbnail_url"):
            updates["thumbnail_url"] = snapshot.thumbnail_url
        for fmt, url in snapshot.model_urls.items():
            column = MODEL_URL_COLUMNS.get(fmt)
            if column and url and url != task.get(column):
                updates[column] = url
        if snapshot.texture_urls and snapshot.texture_urls != task.get("texture_urls"):
            updates["texture_urls"] = snapshot.texture_urls

    if is_terminal(updates.get("status")):
        updates["finished_at"] = task_store.utc_now()

    return updates


class CallbackResult(BaseModel):
    outcome: str  # found | not_found | ignored
    task_id: Optional[str] = None
    status: Optional[str] = None


class TaskReconciler:
    """Pull and push reconciliation of generation tasks"""

    def __init__(
        self,
        provider: MeshyClient,
        mirror: AssetMirror,
        supabase: Client = None,
        notifier: Optional[Callable[[str, TaskSnapshot], Any]] = None,
    ):
        self.provider = provider
        self.mirror = mirror
        self.supabase = supabase
        self.notifier = notifier

    async def reconcile(self, task_id: str, owner_id: Optional[str] = None) -> TaskSnapshot:
        """
        Refresh one task from the provider and return its current view

        Args:
            task_id: Local task id
            owner_id: Caller; rows of other owners are reported as missing.
                None reads any row (server-side watchers).

        Raises:
            TaskNotFoundError: unknown, foreign or malformed id
        """
        row = task_store.get_task(task_id, owner_id=owner_id, supabase=self.supabase)
        if not row:
            raise TaskNotFoundError(f"Task {task_id} not found")

        status = row.get("status")
        if status == TaskStatus.SUCCEEDED.value:
            row = await self._repair_succeeded(row)
            return TaskSnapshot.from_row(row)
        if is_terminal(status) or not row.get("meshy_task_id"):
            return TaskSnapshot.from_row(row)

        try:
            snapshot = await self.provider.fetch_status(row["meshy_task_id"], TaskMode(row["mode"]))
        except ProviderStatusError as e:
            logger.warning(f"[Reconcile] Status fetch failed for task {task_id}, keeping stored state: {e}")
            return TaskSnapshot.from_row(row)

        row = await self._apply(row, snapshot)
        return TaskSnapshot.from_row(row)

    async def handle_provider_callback(self, payload: Dict[str, Any]) -> CallbackResult:
        """
        Apply a provider push

        Raises:
            TaskValidationError: payload carries no provider task id
        """
        provider_task_id = resolve_provider_task_id(payload)
        if not provider_task_id:
            raise TaskValidationError("Webhook payload has no task id")

        row = task_store.get_task_by_provider_id(provider_task_id, supabase=self.supabase)
        if not row:
            logger.warning(f"[Webhook] Unknown meshy task {provider_task_id}, nothing written")
            return CallbackResult(outcome="not_found")

        snapshot = resolve_webhook_fields(payload)
        analytics.log_event(
            analytics.WEBHOOK_RECEIVED,
            row.get("user_id"),
            {"task_id": row["id"], "meshy_task_id": provider_task_id, "status": snapshot.provider_status},
            supabase=self.supabase,
        )
        logger.info(
            f"[Webhook] meshy={provider_task_id} task={row['id']} "
            f"status={snapshot.provider_status} progress={snapshot.progress}"
        )

        if is_terminal(row.get("status")):
            if row["status"] == TaskStatus.SUCCEEDED.value and snapshot.status == TaskStatus.SUCCEEDED:
                row = await self._repair_succeeded(row)
                return CallbackResult(outcome="found", task_id=row["id"], status=row["status"])
            return CallbackResult(outcome="ignored", task_id=row["id"], status=row["status"])

        if snapshot.status == TaskStatus.SUCCEEDED and not snapshot.model_urls:
            snapshot = await self._fill_urls(row, snapshot)

        row = await self._apply(row, snapshot)
        return CallbackResult(outcome="found", task_id=row["id"], status=row.get("status"))

    async def _fill_urls(self, row: dict, snapshot: ProviderStatusSnapshot) -> ProviderStatusSnapshot:
        # success push without output URLs; read them from the provider
        try:
            fetched = await self.provider.fetch_status(row["meshy_task_id"], TaskMode(row["mode"]))
        except ProviderStatusError as e:
            logger.warning(f"[Webhook] Could not fetch outputs for task {row['id']}: {e}")
            return snapshot
        if fetched.status != TaskStatus.SUCCEEDED:
            return snapshot
        return snapshot.model_copy(update={
            "model_urls": fetched.model_urls,
            "thumbnail_url": snapshot.thumbnail_url or fetched.thumbnail_url,
            "texture_urls": snapshot.texture_urls or fetched.texture_urls,
        })

    async def _apply(self, row: dict, snapshot: ProviderStatusSnapshot) -> dict:
        updates = merge_snapshot(row, snapshot)
        if snapshot.status == TaskStatus.SUCCEEDED and "status" not in updates and not is_terminal(row.get("status")):
            logger.warning(f"[Reconcile] Task {row['id']} reported SUCCEEDED without model URLs, waiting for outputs")
        if not updates:
            return row
        if updates.get("status") == TaskStatus.SUCCEEDED.value:
            return await self._complete(row, updates)

        if "status" in updates:
            updated = task_store.update_task_fields(row["id"], updates, supabase=self.supabase)
        else:
            updated = task_store.update_task_fields(
                row["id"], updates, expected_statuses=OPEN_STATUSES, supabase=self.supabase
            )
        if updated is None:
            # another writer got there first
            return task_store.get_task(row["id"], supabase=self.supabase) or row

        logger.info(f"[Reconcile] Task {row['id']} updated: {sorted(updates)}")
        if is_terminal(updates.get("status")):
            await self._notify(updated)
        return updated

    async def _complete(self, row: dict, updates: Dict[str, Any]) -> dict:
        provider_urls = asset_urls_from_row({**row, **updates})
        mirrored = await self.mirror.mirror(row["user_id"], row["id"], provider_urls)
        for fmt, url in mirrored.model_urls.items():
            updates[MODEL_URL_COLUMNS[fmt]] = url
        if mirrored.thumbnail_url:
            updates["thumbnail_url"] = mirrored.thumbnail_url
        updates["progress"] = 100
        updates.setdefault("finished_at", task_store.utc_now())

        updated = task_store.update_task_fields(row["id"], updates, supabase=self.supabase)
        if updated is None:
            logger.info(f"[Reconcile] Task {row['id']} already finished by another writer")
            return task_store.get_task(row["id"], supabase=self.supabase) or row

        logger.info(f"[Reconcile] Task {row['id']} SUCCEEDED (fallbacks={mirrored.fallbacks})")
        design_id = self._link(updated, mirrored)
        if design_id:
            updated["design_id"] = design_id

        analytics.log_event(
            analytics.MODEL_SUCCEEDED,
            updated.get("user_id"),
            {"task_id": updated["id"], "mode": updated.get("mode"), "design_id": design_id},
            supabase=self.supabase,
        )
        await self._notify(updated)
        return updated

    async def _repair_succeeded(self, row: dict) -> dict:
        """Retry mirroring of assets still on provider URLs; relink when needed."""
        stored = asset_urls_from_row(row)
        pending = AssetUrls(
            model_urls={fmt: url for fmt, url in stored.model_urls.items() if not self.mirror.owns_url(url)},
            thumbnail_url=stored.thumbnail_url if not self.mirror.owns_url(stored.thumbnail_url) else None,
        )

        changes: Dict[str, Any] = {}
        if not pending.is_empty():
            mirrored = await self.mirror.mirror(row["user_id"], row["id"], pending)
            for fmt, url in mirrored.model_urls.items():
                if url != stored.model_urls.get(fmt):
                    changes[MODEL_URL_COLUMNS[fmt]] = url
            if mirrored.thumbnail_url and mirrored.thumbnail_url != stored.thumbnail_url:
                changes["thumbnail_url"] = mirrored.thumbnail_url

        if changes:
            updated = task_store.update_task_fields(
                row["id"], changes, expected_statuses=[TaskStatus.SUCCEEDED.value], supabase=self.supabase
            )
            row = updated or {**row, **changes}
            logger.info(f"[Reconcile] Task {row['id']} re-mirrored: {sorted(changes)}")

        if changes or not row.get("design_id"):
            design_id = self._link(row, asset_urls_from_row(row))
            if design_id:
                row["design_id"] = design_id
        return row

    def _link(self, row: dict, urls: AssetUrls) -> Optional[str]:
        try:
            return link_design(row, urls, supabase=self.supabase)
        except Exception as e:
            # retried by the next reconcile while design_id is empty
            logger.error(f"[Reconcile] Design link failed for task {row['id']}: {e}")
            return None

    async def _notify(self, row: dict) -> None:
        if self.notifier is None:
            return
        try:
            # paho blocks on connect and publish
            await asyncio.to_thread(self.notifier, row.get("user_id"), TaskSnapshot.from_row(row))
        except Exception as e:
            logger.warning(f"[Reconcile] Notifier failed for task {row['id']}: {e}")
