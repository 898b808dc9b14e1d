"""
Generation task data models
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    PENDING = "PENDING"          # persisted, not yet accepted by the provider
    IN_PROGRESS = "IN_PROGRESS"  # provider accepted, waiting
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    DELETED = "DELETED"


TERMINAL_STATUSES = frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.DELETED})

_STATUS_RANK = {
    TaskStatus.PENDING: 0,
    TaskStatus.IN_PROGRESS: 1,
    TaskStatus.SUCCEEDED: 2,
    TaskStatus.FAILED: 2,
    TaskStatus.DELETED: 2,
}


def is_terminal(status: Optional[str]) -> bool:
    return status in {s.value for s in TERMINAL_STATUSES}


def can_transition(current: Optional[str], new: Optional[str]) -> bool:
    """True when moving ``current`` -> ``new`` is a forward edge."""
    if not new or new == current:
        return False
    if current is None:
        return True
    if is_terminal(current):
        return False
    return _STATUS_RANK[TaskStatus(new)] > _STATUS_RANK[TaskStatus(current)]


def prior_statuses(new: TaskStatus) -> List[str]:
    """Statuses a row may hold for an update to ``new`` to be allowed."""
    return [s.value for s, rank in _STATUS_RANK.items() if rank < _STATUS_RANK[new]]


class TaskSource(str, Enum):
    IMAGE = "image"
    MULTI_IMAGE = "multi-image"
    TEXT = "text"


class TaskMode(str, Enum):
    IMAGE = "image-to-3d"
    MULTI_IMAGE = "multi-image-to-3d"
    TEXT_PREVIEW = "text-to-3d:preview"
    TEXT_REFINE = "text-to-3d:refine"


# (source, refine) -> mode; refine only changes the text variants
_MODE_TABLE: Dict[tuple, TaskMode] = {
    (TaskSource.IMAGE, False): TaskMode.IMAGE,
    (TaskSource.IMAGE, True): TaskMode.IMAGE,
    (TaskSource.MULTI_IMAGE, False): TaskMode.MULTI_IMAGE,
    (TaskSource.MULTI_IMAGE, True): TaskMode.MULTI_IMAGE,
    (TaskSource.TEXT, False): TaskMode.TEXT_PREVIEW,
    (TaskSource.TEXT, True): TaskMode.TEXT_REFINE,
}


def derive_mode(source: TaskSource, refine: bool = False) -> TaskMode:
    """Mode tag for a source/refine pair. Raises KeyError for unknown sources."""
    return _MODE_TABLE[(TaskSource(source), bool(refine))]


MODEL_FORMATS = ("glb", "fbx", "usdz")

MODEL_URL_COLUMNS: Dict[str, str] = {
    "glb": "model_glb_url",
    "fbx": "model_fbx_url",
    "usdz": "model_usdz_url",
}


class CreateTaskRequest(BaseModel):
    """Raw creation body as sent by the storefront client"""
    source: str
    image_url: Optional[str] = None
    image_urls: Optional[List[str]] = None
    prompt: Optional[str] = None
    texture_prompt: Optional[str] = None
    refine: bool = False
    preview_task_id: Optional[str] = None  # local id of the preview task
    preset: Optional[str] = None
    owner_id: Optional[str] = None


class GenerationRequest(BaseModel):
    """Validated, normalized input for one generation task"""
    source: TaskSource
    image_urls: List[str] = Field(default_factory=list)
    prompt: Optional[str] = None
    texture_prompt: Optional[str] = None
    refine: bool = False
    preview_task_id: Optional[str] = None  # provider id of the preview job

    target_polycount: int = 220_000
    should_remesh: bool = True
    should_texture: bool = True
    enable_pbr: bool = True
    ai_model: str = "latest"

    @property
    def mode(self) -> TaskMode:
        return derive_mode(self.source, self.refine)


class ProviderJobRef(BaseModel):
    provider_task_id: str
    endpoint: str
    raw: Optional[Dict[str, Any]] = None


class ProviderStatusSnapshot(BaseModel):
    """One provider status read, already translated to internal codes"""
    provider_status: Optional[str] = None
    status: Optional[TaskStatus] = None  # None = unknown provider status, no change
    progress: Optional[int] = None
    thumbnail_url: Optional[str] = None
    model_urls: Dict[str, str] = Field(default_factory=dict)
    texture_urls: Optional[Any] = None
    error: Optional[Any] = None


class AssetUrls(BaseModel):
    """Model file per format plus thumbnail"""
    model_urls: Dict[str, str] = Field(default_factory=dict)
    thumbnail_url: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.model_urls and not self.thumbnail_url


class MirroredUrls(AssetUrls):
    """Same shape as AssetUrls; ``fallbacks`` lists roles still on provider URLs"""
    fallbacks: List[str] = Field(default_factory=list)


class TaskSnapshot(BaseModel):
    """Owner-facing view of a task"""
    id: str
    status: TaskStatus
    mode: Optional[str] = None
    progress: int = 0
    meshy_task_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    model_glb_url: Optional[str] = None
    model_fbx_url: Optional[str] = None
    model_usdz_url: Optional[str] = None
    texture_urls: Optional[Any] = None
    design_id: Optional[str] = None
    error: Optional[Any] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TaskSnapshot":
        fields = {k: row.get(k) for k in cls.model_fields if k in row}
        if fields.get("progress") is None:
            fields["progress"] = 0
        return cls(**fields)


def asset_urls_from_row(row: Dict[str, Any]) -> AssetUrls:
    """Stored output URLs of a task row as AssetUrls"""
    model_urls = {
        fmt: row[col] for fmt, col in MODEL_URL_COLUMNS.items() if row.get(col)
    }
    return AssetUrls(model_urls=model_urls, thumbnail_url=row.get("thumbnail_url"))
