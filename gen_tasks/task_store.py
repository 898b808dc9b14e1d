"""
Task Store

Handles database operations for the generation_tasks table. Writers always
send targeted field updates, never full rows.
"""
import re
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from gen_tasks.models import (
    GenerationRequest,
    ProviderJobRef,
    TaskStatus,
    prior_statuses,
)

logger = logging.getLogger("uvicorn.error")

TABLE_NAME = "generation_tasks"

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)


def _get_supabase_client() -> Client:
    from supabase_client import get_supabase_client
    return get_supabase_client()


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_task_id(value: Optional[str]) -> bool:
    return bool(value) and bool(UUID_RE.match(value))


def insert_task(
    owner_id: str,
    req: GenerationRequest,
    supabase: Client = None
) -> dict:
    """
    Persist a new PENDING task with the normalized request fields

    Args:
        owner_id: Requesting user's id
        req: Validated generation request
        supabase: Supabase client (optional)

    Returns:
        dict: Inserted row
    """
    if supabase is None:
        supabase = _get_supabase_client()

    data = {
        "user_id": owner_id,
        "source": req.source.value,
        "mode": req.mode.value,
        "prompt": req.prompt if req.source.value == "text" else req.texture_prompt,
        "input_image_urls": list(req.image_urls) or None,
        "preview_task_id": req.preview_task_id,
        "status": TaskStatus.PENDING.value,
        "progress": 0,
        "requested_polycount": req.target_polycount,
        "requested_ai_model": req.ai_model,
        "requested_should_remesh": req.should_remesh,
        "requested_should_texture": req.should_texture,
        "created_at": utc_now(),
    }

    try:
        response = supabase.table(TABLE_NAME).insert(data).execute()
    except Exception as e:
        logger.error(f"[TaskStore] Failed to insert task: {e}")
        raise

    row = response.data[0] if response.data else {}
    logger.info(f"[TaskStore] Created task {row.get('id')} mode={data['mode']} owner={owner_id[:8]}...")
    return row


def mark_in_progress(
    task_id: str,
    job: ProviderJobRef,
    supabase: Client = None
) -> Optional[dict]:
    """
    PENDING -> IN_PROGRESS with provider id and start time, in one update.

    Only matches a PENDING row with no provider id, so the provider id is
    written at most once.
    """
    if supabase is None:
        supabase = _get_supabase_client()

    updates = {
        "status": TaskStatus.IN_PROGRESS.value,
        "meshy_task_id": job.provider_task_id,
        "started_at": utc_now(),
    }
    try:
        response = supabase.table(TABLE_NAME)\
            .update(updates)\
            .eq("id", task_id)\
            .eq("status", TaskStatus.PENDING.value)\
            .is_("meshy_task_id", "null")\
            .execute()
    except Exception as e:
        logger.error(f"[TaskStore] Failed to mark task {task_id} in progress: {e}")
        raise

    if not response.data:
        logger.warning(f"[TaskStore] Task {task_id} was not PENDING, provider id {job.provider_task_id} not recorded")
        return None
    return response.data[0]


def mark_failed(
    task_id: str,
    error: Any,
    supabase: Client = None
) -> Optional[dict]:
    """Move a non-terminal task to FAILED with a diagnostic payload."""
    return update_task_fields(
        task_id,
        {
            "status": TaskStatus.FAILED.value,
            "error": error,
            "finished_at": utc_now(),
        },
        supabase=supabase,
    )


def update_task_fields(
    task_id: str,
    updates: Dict[str, Any],
    expected_statuses: Optional[List[str]] = None,
    supabase: Client = None
) -> Optional[dict]:
    """
    Targeted update of a task row

    When ``updates`` carries a status, the update only applies to rows whose
    current status may move to it, so a racing writer can never move a
    terminal row backwards. Without a status, ``expected_statuses`` (if
    given) restricts the rows the update may touch.

    Returns:
        dict or None: Updated row, None when the guard matched nothing
    """
    if supabase is None:
        supabase = _get_supabase_client()

    if not updates:
        return None

    logger.info(f"[TaskStore] Updating task {task_id}, fields: {list(updates.keys())}")
    query = supabase.table(TABLE_NAME).update(updates).eq("id", task_id)
    status = updates.get("status")
    if status:
        query = query.in_("status", prior_statuses(TaskStatus(status)))
    elif expected_statuses:
        query = query.in_("status", list(expected_statuses))

    try:
        response = query.execute()
    except Exception as e:
        logger.error(f"[TaskStore] Failed to update task {task_id}: {e}")
        raise

    if not response.data:
        logger.warning(f"[TaskStore] Update for task {task_id} matched no row (status guard={status})")
        return None
    return response.data[0]


def get_task(
    task_id: str,
    owner_id: Optional[str] = None,
    supabase: Client = None
) -> Optional[dict]:
    """
    Get a task row

    Args:
        task_id: Task id
        owner_id: When given, rows of other owners are invisible
        supabase: Supabase client (optional)

    Returns:
        dict or None: Task row
    """
    if not is_task_id(task_id):
        return None
    if supabase is None:
        supabase = _get_supabase_client()

    query = supabase.table(TABLE_NAME).select("*").eq("id", task_id)
    if owner_id is not None:
        query = query.eq("user_id", owner_id)
    response = query.limit(1).execute()
    return response.data[0] if response.data else None


def get_task_by_provider_id(
    provider_task_id: str,
    supabase: Client = None
) -> Optional[dict]:
    """Look a task up by its provider (Meshy) id."""
    if not provider_task_id:
        return None
    if supabase is None:
        supabase = _get_supabase_client()

    response = supabase.table(TABLE_NAME)\
        .select("*")\
        .eq("meshy_task_id", provider_task_id)\
        .limit(1)\
        .execute()
    return response.data[0] if response.data else None


def list_open_tasks(
    limit: int = 100,
    supabase: Client = None
) -> List[dict]:
    """IN_PROGRESS tasks, oldest first, for server-side watchers after a restart."""
    if supabase is None:
        supabase = _get_supabase_client()

    response = supabase.table(TABLE_NAME)\
        .select("*")\
        .eq("status", TaskStatus.IN_PROGRESS.value)\
        .order("created_at")\
        .limit(limit)\
        .execute()
    return response.data or []
