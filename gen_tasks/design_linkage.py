"""
Design Linkage

Creates or updates the one Design row that points at a finished task's
mirrored assets. Keyed by generation_task_id, so repeated calls never
create duplicates.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from supabase import Client

from gen_tasks.models import AssetUrls
from gen_tasks.task_store import TABLE_NAME as TASKS_TABLE

logger = logging.getLogger("uvicorn.error")

TABLE_NAME = "designs"


def link_design(
    task: dict,
    urls: AssetUrls,
    name: Optional[str] = None,
    supabase: Client = None
) -> Optional[str]:
    """
    Upsert the Design for a task and record its id on the task row

    Args:
        task: Task row (needs id and user_id)
        urls: Mirrored asset URLs
        name: Design name (defaults to a dated label)
        supabase: Supabase client (optional)

    Returns:
        str or None: Design id
    """
    if supabase is None:
        from supabase_client import get_supabase_client
        supabase = get_supabase_client()

    now = datetime.now(timezone.utc)
    data = {
        "user_id": task["user_id"],
        "generation_task_id": task["id"],
        "chosen_glb_url": urls.model_urls.get("glb"),
        "chosen_thumbnail_url": urls.thumbnail_url,
        "params": {
            "model_urls": dict(urls.model_urls),
            "source": task.get("source"),
            "prompt": task.get("prompt"),
        },
        "updated_at": now.isoformat(),
    }
    if not task.get("design_id"):
        data["name"] = name or f"Model {now.strftime('%Y-%m-%d')}"

    try:
        response = supabase.table(TABLE_NAME)\
            .upsert(data, on_conflict="generation_task_id")\
            .execute()
    except Exception as e:
        logger.error(f"[Design] Failed to upsert design for task {task['id']}: {e}")
        raise

    design = response.data[0] if response.data else {}
    design_id = design.get("id")
    logger.info(f"[Design] Linked design {design_id} to task {task['id']}")

    if design_id and task.get("design_id") != design_id:
        supabase.table(TASKS_TABLE)\
            .update({"design_id": design_id})\
            .eq("id", task["id"])\
            .execute()

    return design_id
