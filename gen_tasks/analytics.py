"""
Analytics events (events_analytics table). Best-effort: never raises.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from supabase import Client

logger = logging.getLogger("uvicorn.error")

TABLE_NAME = "events_analytics"

MODEL_REQUESTED = "model_requested"
MODEL_SUCCEEDED = "model_succeeded"
WEBHOOK_RECEIVED = "meshy_webhook_received"


def log_event(
    event: str,
    user_id: Optional[str],
    props: Optional[Dict[str, Any]] = None,
    supabase: Client = None
) -> bool:
    """Insert one analytics event. Returns False (and logs) on any failure."""
    try:
        if supabase is None:
            from supabase_client import get_supabase_client
            supabase = get_supabase_client()
        supabase.table(TABLE_NAME).insert({
            "event": event,
            "user_id": user_id,
            "ts": datetime.now(timezone.utc).isoformat(),
            "props": props or {},
        }).execute()
    except Exception as e:
        logger.warning(f"[Analytics] Failed to record {event}: {e}")
        return False
    logger.info(f"[Analytics] {event} {props or {}}")
    return True
