"""
Asset Mirror

Copies provider-hosted assets (model files, thumbnail) into the Supabase
Storage bucket so stored URLs outlive the provider's retention window.
"""
import time
import logging
from typing import Dict, Optional, Set

import httpx
from supabase import Client

from gen_tasks.errors import AssetMirrorError
from gen_tasks.models import AssetUrls, MirroredUrls
from utill import get_httpx_client, url_extension

logger = logging.getLogger("uvicorn.error")

BUCKET_NAME = "design-files"

MODEL_CONTENT_TYPES: Dict[str, str] = {
    "glb": "model/gltf-binary",
    "fbx": "application/octet-stream",
    "usdz": "model/vnd.usdz+zip",
}

THUMBNAIL_CONTENT_TYPES: Dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


def asset_path(owner_id: str, task_id: str, filename: str) -> str:
    """Deterministic storage path for one asset of one task"""
    return f"{owner_id}/{task_id}/{filename}"


def model_filename(fmt: str) -> str:
    return f"model.{fmt}"


def thumbnail_filename(url: str) -> str:
    ext = url_extension(url, ".png")
    if ext not in THUMBNAIL_CONTENT_TYPES:
        ext = ".png"
    return f"thumbnail{ext}"


class AssetMirror:
    """Relocates provider assets into system storage. Knows nothing of task status."""

    def __init__(
        self,
        supabase: Client = None,
        bucket: str = BUCKET_NAME,
        supabase_url: str = "",
        signed_url_ttl: int = 0,
        timeout: float = 180.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._supabase = supabase
        self.bucket = bucket
        self.supabase_url = supabase_url.rstrip("/")
        self.signed_url_ttl = signed_url_ttl
        self.timeout = timeout
        self.transport = transport

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            from supabase_client import get_supabase_client
            self._supabase = get_supabase_client()
        return self._supabase

    def owns_url(self, url: Optional[str]) -> bool:
        """True when ``url`` already points into this bucket."""
        if not url:
            return False
        marker = "/storage/v1/object/"
        if marker not in url or f"/{self.bucket}/" not in url:
            return False
        return not self.supabase_url or url.startswith(self.supabase_url)

    async def mirror(self, owner_id: str, task_id: str, urls: AssetUrls) -> MirroredUrls:
        """
        Mirror every asset in ``urls``

        Args:
            owner_id: Task owner (first path segment)
            task_id: Task id (second path segment)
            urls: Provider URLs per model format plus thumbnail

        Returns:
            MirroredUrls: Same shape; assets that could not be copied keep
            their provider URL and are listed in ``fallbacks``
        """
        existing = self._existing_files(owner_id, task_id)
        result = MirroredUrls()

        for fmt, url in urls.model_urls.items():
            filename = model_filename(fmt)
            content_type = MODEL_CONTENT_TYPES.get(fmt, "application/octet-stream")
            mirrored = await self._mirror_one(owner_id, task_id, filename, url, content_type, existing)
            result.model_urls[fmt] = mirrored or url
            if not mirrored:
                result.fallbacks.append(f"model.{fmt}")

        if urls.thumbnail_url:
            filename = thumbnail_filename(urls.thumbnail_url)
            content_type = THUMBNAIL_CONTENT_TYPES[filename[len("thumbnail"):]]
            mirrored = await self._mirror_one(owner_id, task_id, filename, urls.thumbnail_url, content_type, existing)
            result.thumbnail_url = mirrored or urls.thumbnail_url
            if not mirrored:
                result.fallbacks.append("thumbnail")

        logger.info(
            "[Mirror] task=%s mirrored=%d fallbacks=%s",
            task_id,
            len(urls.model_urls) + (1 if urls.thumbnail_url else 0) - len(result.fallbacks),
            result.fallbacks,
        )
        return result

    def _existing_files(self, owner_id: str, task_id: str) -> Set[str]:
        folder = f"{owner_id}/{task_id}"
        try:
            entries = self.supabase.storage.from_(self.bucket).list(folder)
        except Exception as e:
            # unknown means "re-upload"; uploads use upsert so this stays safe
            logger.warning(f"[Mirror] Failed to list {folder}: {e}")
            return set()
        return {entry.get("name") for entry in entries or [] if entry.get("name")}

    async def _mirror_one(
        self,
        owner_id: str,
        task_id: str,
        filename: str,
        source_url: str,
        content_type: str,
        existing: Set[str],
    ) -> Optional[str]:
        path = asset_path(owner_id, task_id, filename)
        if filename in existing:
            logger.info(f"[Mirror] Already mirrored, skipping download: {path}")
            return self._resolve_url(path)

        if self.owns_url(source_url):
            return source_url

        try:
            data = await self._download(source_url)
            self._upload(path, data, content_type)
            return self._resolve_url(path)
        except AssetMirrorError as e:
            logger.warning(f"[Mirror] Falling back to provider URL for {path}: {e}")
            return None

    async def _download(self, url: str) -> bytes:
        try:
            async with get_httpx_client(self.timeout, self.transport) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            raise AssetMirrorError(f"download failed: {e}") from e
        if resp.status_code >= 400:
            raise AssetMirrorError(f"download failed: HTTP {resp.status_code}")
        return resp.content

    def _upload(self, path: str, data: bytes, content_type: str) -> None:
        size = len(data)
        logger.info(f"[Storage] Uploading {path}, size: {size / 1024:.2f} KB")
        start_time = time.time()
        try:
            self.supabase.storage.from_(self.bucket).upload(
                path=path,
                file=data,
                file_options={
                    "content-type": content_type,
                    "cache-control": "3600",
                    "upsert": "true"
                }
            )
        except Exception as e:
            raise AssetMirrorError(f"upload failed: {e}") from e
        duration = time.time() - start_time
        logger.info(f"[Storage] ✅ Uploaded {path} in {duration:.2f}s")

    def _resolve_url(self, path: str) -> Optional[str]:
        bucket = self.supabase.storage.from_(self.bucket)
        try:
            if self.signed_url_ttl > 0:
                signed = bucket.create_signed_url(path, self.signed_url_ttl)
                return signed.get("signedURL") or signed.get("signedUrl")
            return bucket.get_public_url(path)
        except Exception as e:
            logger.warning(f"[Mirror] Failed to resolve URL for {path}: {e}")
            return None
