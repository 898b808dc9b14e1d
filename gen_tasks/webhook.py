"""
Meshy webhook helpers: signature check and payload field resolution.
"""
import hmac
import hashlib
import logging
from typing import Any, Dict, Optional, Tuple

from gen_tasks.meshy_client import normalize_progress, translate_status
from gen_tasks.models import MODEL_FORMATS, ProviderStatusSnapshot, TaskStatus
from utill import first_present

logger = logging.getLogger("uvicorn.error")

SIGNATURE_HEADER = "x-meshy-signature"

# Ordered candidate keys per logical field; first non-empty match wins.
WEBHOOK_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "task_id": ("task_id", "id", "result_id"),
    "status": ("status",),
    "progress": ("progress",),
    "glb": ("model_glb_url", "model_url", "model_urls.glb"),
    "fbx": ("model_fbx_url", "model_urls.fbx"),
    "usdz": ("model_usdz_url", "model_urls.usdz"),
    "thumbnail_url": ("thumbnail_url", "preview_url"),
    "error": ("task_error", "error"),
    "texture_urls": ("texture_urls",),
}


def verify_signature(raw_body: bytes, signature_hex: Optional[str], secret: Optional[str]) -> bool:
    """HMAC-SHA256 of the raw body, hex encoded. No secret configured -> accepted."""
    if not secret:
        logger.warning("[Webhook] MESHY_WEBHOOK_SECRET not set, skipping signature check")
        return True
    if not signature_hex:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_hex.strip().lower())


def resolve_provider_task_id(payload: Dict[str, Any]) -> Optional[str]:
    value = first_present(payload, WEBHOOK_FIELD_ALIASES["task_id"])
    return str(value) if value else None


def resolve_webhook_fields(payload: Dict[str, Any]) -> ProviderStatusSnapshot:
    """Translate a webhook body into the same snapshot a status fetch yields."""
    provider_status = first_present(payload, WEBHOOK_FIELD_ALIASES["status"])
    status = translate_status(provider_status)

    model_urls = {}
    texture_urls = None
    if status == TaskStatus.SUCCEEDED:
        for fmt in MODEL_FORMATS:
            url = first_present(payload, WEBHOOK_FIELD_ALIASES[fmt])
            if url:
                model_urls[fmt] = url
        texture_urls = first_present(payload, WEBHOOK_FIELD_ALIASES["texture_urls"])

    return ProviderStatusSnapshot(
        provider_status=provider_status,
        status=status,
        progress=normalize_progress(first_present(payload, WEBHOOK_FIELD_ALIASES["progress"])),
        thumbnail_url=first_present(payload, WEBHOOK_FIELD_ALIASES["thumbnail_url"]),
        model_urls=model_urls,
        texture_urls=texture_urls,
        error=first_present(payload, WEBHOOK_FIELD_ALIASES["error"]),
    )
