"""
Generation task API router
Mounted by main.py under /api/v1/generation
"""
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from auth import require_auth
from gen_tasks.errors import GenerationError, TaskValidationError
from gen_tasks.models import CreateTaskRequest
from gen_tasks.webhook import SIGNATURE_HEADER, verify_signature

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api/v1/generation", tags=["Generation Tasks"])


class ApiResponse(BaseModel):
    status: str
    data: Optional[Any] = None
    error: Optional[str] = None


def _services(request: Request):
    return request.app.state.generation


def _error_response(exc: GenerationError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content={
            "status": "error",
            "error": str(exc),
            "data": {"error_code": exc.error_code, "detail": exc.detail},
        },
    )


@router.post("/tasks", status_code=201)
async def create_task(body: CreateTaskRequest, request: Request, user_id: str = Depends(require_auth)):
    """
    Create a generation task

    - source: image | multi-image | text
    - image_url / image_urls / prompt depending on source
    - refine + preview_task_id for a text-to-3d refine
    - preset: draft | standard | high

    Returns: {id, meshy_task_id}
    """
    services = _services(request)
    try:
        result = await services.creation.create(user_id, body)
    except GenerationError as e:
        logger.warning(f"[GenAPI] Create rejected for user {user_id[:8]}...: {e}")
        return _error_response(e)

    return JSONResponse(
        status_code=201,
        content=ApiResponse(status="ok", data=result).model_dump(),
    )


@router.get("/tasks/{task_id}", response_model=ApiResponse)
async def get_task_status(task_id: str, request: Request, user_id: str = Depends(require_auth)):
    """Reconcile the task with the provider and return the caller's view of it"""
    services = _services(request)
    try:
        snapshot = await services.reconciler.reconcile(task_id, owner_id=user_id)
    except GenerationError as e:
        return _error_response(e)
    return ApiResponse(status="ok", data=snapshot.model_dump(mode="json"))


@router.api_route("/webhook", methods=["GET", "HEAD"])
async def webhook_reachability():
    """Provider reachability check"""
    return Response(content="ok", media_type="text/plain")


@router.post("/webhook", response_model=ApiResponse)
async def provider_webhook(request: Request):
    """Meshy task update push"""
    services = _services(request)
    raw = await request.body()

    if not verify_signature(raw, request.headers.get(SIGNATURE_HEADER), services.config.webhook_secret):
        logger.warning("[Webhook] Invalid signature")
        return JSONResponse(status_code=401, content={"status": "error", "error": "invalid signature"})

    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        return JSONResponse(status_code=400, content={"status": "error", "error": "invalid json"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"status": "error", "error": "invalid json"})

    try:
        result = await services.reconciler.handle_provider_callback(payload)
    except TaskValidationError as e:
        return JSONResponse(status_code=400, content={"status": "error", "error": str(e)})

    if result.outcome == "not_found":
        return JSONResponse(status_code=404, content={"status": "error", "error": "task not found"})
    return ApiResponse(status="ok", data=result.model_dump())
