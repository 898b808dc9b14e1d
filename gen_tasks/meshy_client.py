"""
Meshy provider client

Submits generation jobs for the four input modes and reads job status back,
translating Meshy's fields into internal status codes.
"""
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from gen_tasks.errors import ProviderStatusError, ProviderSubmissionError
from gen_tasks.models import (
    MODEL_FORMATS,
    GenerationRequest,
    ProviderJobRef,
    ProviderStatusSnapshot,
    TaskMode,
    TaskStatus,
)
from utill import get_httpx_client, pick_task_id

logger = logging.getLogger("uvicorn.error")


ENDPOINT_PATHS: Dict[TaskMode, str] = {
    TaskMode.IMAGE: "/openapi/v1/image-to-3d",
    TaskMode.MULTI_IMAGE: "/openapi/v1/multi-image-to-3d",
    TaskMode.TEXT_PREVIEW: "/openapi/v2/text-to-3d",
    TaskMode.TEXT_REFINE: "/openapi/v2/text-to-3d",
}

# Meshy status -> internal status. Missing keys mean "no change".
PROVIDER_STATUS_MAP: Dict[str, TaskStatus] = {
    "PENDING": TaskStatus.IN_PROGRESS,
    "IN_PROGRESS": TaskStatus.IN_PROGRESS,
    "PROCESSING": TaskStatus.IN_PROGRESS,
    "SUCCEEDED": TaskStatus.SUCCEEDED,
    "FAILED": TaskStatus.FAILED,
    "CANCELED": TaskStatus.FAILED,
    "EXPIRED": TaskStatus.DELETED,
    "DELETED": TaskStatus.DELETED,
}


def translate_status(provider_status: Optional[str]) -> Optional[TaskStatus]:
    if not provider_status:
        return None
    return PROVIDER_STATUS_MAP.get(str(provider_status).upper())


def normalize_progress(value: Any) -> Optional[int]:
    """Meshy reports 0-100; some payloads use a 0-1 fraction."""
    if value is None or isinstance(value, bool):
        return None
    try:
        progress = float(value)
    except (TypeError, ValueError):
        return None
    if 0 < progress < 1:
        progress *= 100
    return max(0, min(100, int(progress)))


def _image_payload(req: GenerationRequest) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "image_url": req.image_urls[0],
        "ai_model": req.ai_model,
        "target_polycount": req.target_polycount,
        "should_remesh": req.should_remesh,
        "should_texture": req.should_texture,
        "enable_pbr": req.enable_pbr,
    }
    if req.texture_prompt:
        body["texture_prompt"] = req.texture_prompt
    return body


def _multi_image_payload(req: GenerationRequest) -> Dict[str, Any]:
    # only the list key; never both image_url and image_urls
    body = _image_payload(req)
    body.pop("image_url")
    body["image_urls"] = list(req.image_urls)
    return body


def _text_preview_payload(req: GenerationRequest) -> Dict[str, Any]:
    return {
        "mode": "preview",
        "prompt": req.prompt,
        "should_remesh": req.should_remesh,
        "target_polycount": req.target_polycount,
    }


def _text_refine_payload(req: GenerationRequest) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "mode": "refine",
        "preview_task_id": req.preview_task_id,
        "enable_pbr": req.enable_pbr,
    }
    if req.texture_prompt:
        body["texture_prompt"] = req.texture_prompt
    return body


PAYLOAD_BUILDERS: Dict[TaskMode, Callable[[GenerationRequest], Dict[str, Any]]] = {
    TaskMode.IMAGE: _image_payload,
    TaskMode.MULTI_IMAGE: _multi_image_payload,
    TaskMode.TEXT_PREVIEW: _text_preview_payload,
    TaskMode.TEXT_REFINE: _text_refine_payload,
}


def endpoint_for(mode: TaskMode, api_base: str) -> str:
    return f"{api_base.rstrip('/')}{ENDPOINT_PATHS[TaskMode(mode)]}"


def build_payload(req: GenerationRequest) -> Dict[str, Any]:
    return PAYLOAD_BUILDERS[req.mode](req)


def parse_status(task: Dict[str, Any]) -> ProviderStatusSnapshot:
    """Translate a Meshy task object into a ProviderStatusSnapshot."""
    provider_status = task.get("status")
    status = translate_status(provider_status)

    model_urls: Dict[str, str] = {}
    # output urls only count once the provider reports completion
    if status == TaskStatus.SUCCEEDED:
        raw_urls = task.get("model_urls") or {}
        if isinstance(raw_urls, dict):
            model_urls = {fmt: raw_urls[fmt] for fmt in MODEL_FORMATS if raw_urls.get(fmt)}

    return ProviderStatusSnapshot(
        provider_status=provider_status,
        status=status,
        progress=normalize_progress(task.get("progress")),
        thumbnail_url=task.get("thumbnail_url") or None,
        model_urls=model_urls,
        texture_urls=(task.get("texture_urls") or None) if status == TaskStatus.SUCCEEDED else None,
        error=task.get("task_error") or None,
    )


class MeshyClient:
    """Async wrapper over the Meshy OpenAPI endpoints"""

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.meshy.ai",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _headers_json(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _headers_get(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    async def submit(self, req: GenerationRequest) -> ProviderJobRef:
        """Create a provider job. Any failure raises ProviderSubmissionError."""
        mode = req.mode
        endpoint = endpoint_for(mode, self.api_base)
        body = build_payload(req)

        logger.info("[MeshyReq] POST %s mode=%s", endpoint, mode.value)
        try:
            async with get_httpx_client(self.timeout, self.transport) as client:
                resp = await client.post(endpoint, headers=self._headers_json(), json=body)
        except httpx.HTTPError as e:
            logger.error("[MeshyError] POST %s failed: %s", endpoint, e)
            raise ProviderSubmissionError(f"Meshy request failed: {e}", body=str(e)) from e

        logger.info("[MeshyResp] POST %s -> %s", endpoint, resp.status_code)
        if resp.status_code >= 400:
            error_body = resp.text
            logger.error("[MeshyError] submit rejected: status=%s, body=%s", resp.status_code, error_body[:500])
            raise ProviderSubmissionError(
                f"Meshy API error {resp.status_code}",
                status_code=resp.status_code,
                body=error_body,
            )

        try:
            j = resp.json()
        except ValueError:
            j = {}
        task_id = pick_task_id(j) if isinstance(j, dict) else None
        if not task_id:
            logger.warning("[MeshyTaskStart] task_id missing, raw=%s", resp.text[:500])
            raise ProviderSubmissionError(
                "Meshy response missing task id",
                status_code=resp.status_code,
                body=resp.text,
            )

        logger.info("[MeshyTaskStart] task_id=%s mode=%s", task_id, mode.value)
        return ProviderJobRef(provider_task_id=task_id, endpoint=endpoint, raw=j)

    async def fetch_status(self, provider_task_id: str, mode: TaskMode) -> ProviderStatusSnapshot:
        """Read job status. Failures raise ProviderStatusError and are never terminal."""
        endpoint = endpoint_for(mode, self.api_base)
        url = f"{endpoint}/{provider_task_id}"
        logger.info("[MeshyReq] GET %s", url)
        try:
            async with get_httpx_client(self.timeout, self.transport) as client:
                r = await client.get(url, headers=self._headers_get())
        except httpx.HTTPError as e:
            raise ProviderStatusError(f"Meshy status request failed: {e}") from e

        logger.info("[MeshyResp] GET %s -> %s", endpoint, r.status_code)
        if r.status_code >= 400:
            raise ProviderStatusError(
                f"Meshy status error {r.status_code}: {r.text[:200]}",
                status_code=r.status_code,
            )
        try:
            task = r.json()
        except ValueError as e:
            raise ProviderStatusError(f"Meshy status returned invalid JSON: {r.text[:200]}") from e
        if not isinstance(task, dict):
            raise ProviderStatusError(f"Meshy status returned unexpected body: {task!r}")

        snapshot = parse_status(task)
        logger.info(
            "[MeshyTask] id=%s status=%s progress=%s formats=%s",
            provider_task_id,
            snapshot.provider_status,
            snapshot.progress,
            sorted(snapshot.model_urls),
        )
        return snapshot
