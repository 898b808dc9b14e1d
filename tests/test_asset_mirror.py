"""
Asset mirror tests
"""
import pytest

from gen_tasks.asset_mirror import AssetMirror, asset_path, thumbnail_filename
from gen_tasks.models import AssetUrls

from conftest import OWNER_ID, SUPABASE_URL

GLB = "https://assets.meshy.ai/t1/model.glb?Expires=1"
FBX = "https://assets.meshy.ai/t1/model.fbx?Expires=1"
THUMB = "https://assets.meshy.ai/t1/preview.jpg?Expires=1"
TASK_ID = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"


def _public(path: str) -> str:
    return f"{SUPABASE_URL}/storage/v1/object/public/design-files/{path}"


class TestPaths:
    """Deterministic destination paths"""

    def test_asset_path(self):
        assert asset_path("u", "t", "model.glb") == "u/t/model.glb"

    def test_thumbnail_filename(self):
        """Extension follows the URL path, query ignored"""
        assert thumbnail_filename(THUMB) == "thumbnail.jpg"
        assert thumbnail_filename("https://x/preview?x=1") == "thumbnail.png"


class TestAssetMirror:
    """AssetMirror.mirror"""

    @pytest.mark.asyncio
    async def test_mirror_all(self, mirror, meshy, fake_db):
        """Every asset lands under {owner}/{task}/ and public URLs come back"""
        meshy.files = {GLB: b"glb", FBX: b"fbx", THUMB: b"jpg"}
        urls = AssetUrls(model_urls={"glb": GLB, "fbx": FBX}, thumbnail_url=THUMB)

        result = await mirror.mirror(OWNER_ID, TASK_ID, urls)

        assert result.model_urls == {
            "glb": _public(f"{OWNER_ID}/{TASK_ID}/model.glb"),
            "fbx": _public(f"{OWNER_ID}/{TASK_ID}/model.fbx"),
        }
        assert result.thumbnail_url == _public(f"{OWNER_ID}/{TASK_ID}/thumbnail.jpg")
        assert result.fallbacks == []
        uploaded = {path: ctype for _, path, ctype in fake_db.storage.uploads}
        assert uploaded[f"{OWNER_ID}/{TASK_ID}/model.glb"] == "model/gltf-binary"
        assert uploaded[f"{OWNER_ID}/{TASK_ID}/thumbnail.jpg"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_existing_object_skips_download(self, mirror, meshy, fake_db):
        """A second run downloads nothing"""
        meshy.files = {GLB: b"glb"}
        urls = AssetUrls(model_urls={"glb": GLB})

        first = await mirror.mirror(OWNER_ID, TASK_ID, urls)
        downloads = len(meshy.downloads())
        second = await mirror.mirror(OWNER_ID, TASK_ID, urls)

        assert first.model_urls == second.model_urls
        assert len(meshy.downloads()) == downloads
        assert len(fake_db.storage.uploads) == 1

    @pytest.mark.asyncio
    async def test_download_failure_keeps_provider_url(self, mirror, meshy):
        """404 on one asset -> that asset keeps its provider URL"""
        meshy.files = {GLB: b"glb"}
        urls = AssetUrls(model_urls={"glb": GLB, "fbx": FBX})

        result = await mirror.mirror(OWNER_ID, TASK_ID, urls)

        assert result.model_urls["fbx"] == FBX
        assert result.model_urls["glb"].startswith(SUPABASE_URL)
        assert result.fallbacks == ["model.fbx"]

    @pytest.mark.asyncio
    async def test_upload_failure_keeps_provider_url(self, mirror, meshy, fake_db):
        """Storage errors never raise out of mirror()"""
        meshy.files = {GLB: b"glb", THUMB: b"jpg"}
        fake_db.storage.fail_uploads = True

        result = await mirror.mirror(OWNER_ID, TASK_ID, AssetUrls(model_urls={"glb": GLB}, thumbnail_url=THUMB))

        assert result.model_urls == {"glb": GLB}
        assert result.thumbnail_url == THUMB
        assert sorted(result.fallbacks) == ["model.glb", "thumbnail"]

    @pytest.mark.asyncio
    async def test_signed_urls(self, fake_db, meshy, transport):
        """A positive TTL returns signed URLs"""
        meshy.files = {GLB: b"glb"}
        mirror = AssetMirror(supabase=fake_db, supabase_url=SUPABASE_URL, signed_url_ttl=3600, transport=transport)

        result = await mirror.mirror(OWNER_ID, TASK_ID, AssetUrls(model_urls={"glb": GLB}))

        assert "/storage/v1/object/sign/design-files/" in result.model_urls["glb"]
        assert "ttl=3600" in result.model_urls["glb"]

    def test_owns_url(self, mirror):
        """Only URLs in this project's bucket count as mirrored"""
        assert mirror.owns_url(_public("u/t/model.glb"))
        assert not mirror.owns_url(GLB)
        assert not mirror.owns_url("https://other.supabase.co/storage/v1/object/public/design-files/u/t/model.glb")
        assert not mirror.owns_url(None)
