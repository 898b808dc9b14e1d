"""
Task Creation Service

Validates a creation request, persists the task, submits it to the
provider and records the provider id. A row is only written once the
request is valid; a submission failure leaves the row FAILED.
"""
import logging
from typing import List, Optional

from supabase import Client

from gen_tasks import analytics, task_store
from gen_tasks.config import (
    MAX_MULTI_IMAGES,
    MAX_PROMPT_CHARS,
    MAX_TEXTURE_PROMPT_CHARS,
    GenerationConfig,
)
from gen_tasks.errors import (
    OwnershipError,
    ProviderSubmissionError,
    TaskValidationError,
)
from gen_tasks.meshy_client import MeshyClient
from gen_tasks.models import (
    CreateTaskRequest,
    GenerationRequest,
    TaskMode,
    TaskSource,
    TaskStatus,
)

logger = logging.getLogger("uvicorn.error")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_urls(urls: Optional[List[str]]) -> List[str]:
    return [u.strip() for u in urls or [] if isinstance(u, str) and u.strip()]


class TaskCreationService:
    """Creates generation tasks for authenticated owners"""

    def __init__(
        self,
        config: GenerationConfig,
        provider: MeshyClient,
        supabase: Client = None,
        watcher=None,
    ):
        self.config = config
        self.provider = provider
        self.supabase = supabase
        self.watcher = watcher

    def normalize(self, owner_id: str, body: CreateTaskRequest) -> GenerationRequest:
        """
        Validate ``body`` and turn it into a GenerationRequest

        Raises:
            OwnershipError: body names another owner
            TaskValidationError: input does not fit the source
        """
        if body.owner_id and body.owner_id != owner_id:
            raise OwnershipError("Cannot create a task for another user")

        try:
            source = TaskSource((body.source or "").strip().lower())
        except ValueError:
            raise TaskValidationError(
                f"Unknown source '{body.source}'",
                detail={"allowed": [s.value for s in TaskSource]},
            ) from None

        preset = self.config.preset(body.preset)
        texture_prompt = _clean(body.texture_prompt)
        if texture_prompt:
            texture_prompt = texture_prompt[:MAX_TEXTURE_PROMPT_CHARS]

        image_urls: List[str] = []
        prompt = _clean(body.prompt)
        refine = False
        preview_provider_id = None

        if source == TaskSource.IMAGE:
            image_url = _clean(body.image_url) or next(iter(_clean_urls(body.image_urls)), None)
            if not image_url:
                raise TaskValidationError("image_url is required for image source")
            image_urls = [image_url]

        elif source == TaskSource.MULTI_IMAGE:
            image_urls = _clean_urls(body.image_urls)
            if not image_urls:
                raise TaskValidationError("image_urls must contain at least one URL")
            if len(image_urls) > MAX_MULTI_IMAGES:
                raise TaskValidationError(f"image_urls accepts at most {MAX_MULTI_IMAGES} URLs")
            if len(image_urls) == 1:
                source = TaskSource.IMAGE

        else:
            refine = bool(body.refine)
            if refine:
                preview = self._resolve_preview(owner_id, body.preview_task_id)
                preview_provider_id = preview["meshy_task_id"]
                prompt = prompt or preview.get("prompt")
            else:
                if not prompt:
                    raise TaskValidationError("prompt is required for text source")
                if len(prompt) > MAX_PROMPT_CHARS:
                    raise TaskValidationError(f"prompt must be at most {MAX_PROMPT_CHARS} characters")

        return GenerationRequest(
            source=source,
            image_urls=image_urls,
            prompt=prompt if source == TaskSource.TEXT else None,
            texture_prompt=texture_prompt,
            refine=refine,
            preview_task_id=preview_provider_id,
            target_polycount=preset.target_polycount,
            should_remesh=preset.should_remesh,
            should_texture=preset.should_texture,
            enable_pbr=preset.enable_pbr,
            ai_model=self.config.meshy_ai_model,
        )

    def _resolve_preview(self, owner_id: str, preview_task_id: Optional[str]) -> dict:
        preview_task_id = _clean(preview_task_id)
        if not preview_task_id:
            raise TaskValidationError("preview_task_id is required for refine")
        preview = task_store.get_task(preview_task_id, owner_id=owner_id, supabase=self.supabase)
        if not preview:
            raise TaskValidationError(f"preview task {preview_task_id} not found")
        if preview.get("mode") != TaskMode.TEXT_PREVIEW.value:
            raise TaskValidationError("preview_task_id must name a text-to-3d preview task")
        if preview.get("status") != TaskStatus.SUCCEEDED.value or not preview.get("meshy_task_id"):
            raise TaskValidationError("preview task has not succeeded yet")
        return preview

    async def create(self, owner_id: str, body: CreateTaskRequest) -> dict:
        """
        Create one generation task

        Args:
            owner_id: Authenticated caller
            body: Creation request

        Returns:
            dict: {"id": task id, "meshy_task_id": provider id}

        Raises:
            TaskValidationError / OwnershipError: nothing was written
            ProviderSubmissionError: task row exists and is FAILED
        """
        req = self.normalize(owner_id, body)
        row = task_store.insert_task(owner_id, req, supabase=self.supabase)
        task_id = row["id"]

        try:
            job = await self.provider.submit(req)
        except ProviderSubmissionError as e:
            logger.error(f"[Create] Submission failed for task {task_id}: {e}")
            task_store.mark_failed(task_id, e.diagnostic(), supabase=self.supabase)
            raise

        task_store.mark_in_progress(task_id, job, supabase=self.supabase)
        logger.info(f"[Create] Task {task_id} -> meshy {job.provider_task_id} ({req.mode.value})")

        analytics.log_event(
            analytics.MODEL_REQUESTED,
            owner_id,
            {"mode": req.mode.value, "task_id": task_id},
            supabase=self.supabase,
        )

        if self.watcher is not None and self.config.server_side_polling:
            self.watcher.watch(task_id)

        return {"id": task_id, "meshy_task_id": job.provider_task_id}
