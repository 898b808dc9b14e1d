"""
Shared fixtures: in-memory Supabase double and HTTP mock transports
"""
import copy
import uuid
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from gen_tasks.asset_mirror import AssetMirror
from gen_tasks.config import GenerationConfig
from gen_tasks.meshy_client import MeshyClient

SUPABASE_URL = "https://proj.supabase.co"
OWNER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_OWNER_ID = "22222222-2222-4222-8222-222222222222"


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable query over one in-memory table"""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.action = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List[Callable[[dict], bool]] = []
        self.order_by: Optional[str] = None
        self.max_rows: Optional[int] = None

    # actions
    def select(self, *_columns):
        self.action = "select"
        return self

    def insert(self, data):
        self.action = "insert"
        self.payload = data
        return self

    def update(self, data):
        self.action = "update"
        self.payload = data
        return self

    def upsert(self, data, on_conflict: Optional[str] = None):
        self.action = "upsert"
        self.payload = data
        self.on_conflict = on_conflict
        return self

    # filters
    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def is_(self, column, value):
        if value in ("null", None):
            self.filters.append(lambda row: row.get(column) is None)
        else:
            self.filters.append(lambda row: row.get(column) == value)
        return self

    def order(self, column, desc: bool = False):
        self.order_by = column
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self) -> FakeResponse:
        if self.table_name in self.db.fail_tables:
            raise RuntimeError(f"{self.table_name} unavailable")

        rows = self.db.tables.setdefault(self.table_name, [])
        if self.action != "select":
            self.db.writes.append((self.table_name, self.action, copy.deepcopy(self.payload)))

        if self.action == "insert":
            row = dict(self.payload)
            row.setdefault("id", str(uuid.uuid4()))
            rows.append(row)
            return FakeResponse([copy.deepcopy(row)])

        if self.action == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(row))
            return FakeResponse(updated)

        if self.action == "upsert":
            key = self.on_conflict or "id"
            for row in rows:
                if row.get(key) == self.payload.get(key):
                    row.update(copy.deepcopy(self.payload))
                    return FakeResponse([copy.deepcopy(row)])
            row = dict(self.payload)
            row.setdefault("id", str(uuid.uuid4()))
            rows.append(row)
            return FakeResponse([copy.deepcopy(row)])

        found = [copy.deepcopy(r) for r in rows if self._matches(r)]
        if self.order_by:
            found.sort(key=lambda r: r.get(self.order_by) or "")
        if self.max_rows is not None:
            found = found[:self.max_rows]
        return FakeResponse(found)


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self.storage = storage
        self.name = name

    def list(self, folder: str):
        prefix = folder.rstrip("/") + "/"
        return [
            {"name": path[len(prefix):]}
            for path in self.storage.objects.get(self.name, {})
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]

    def upload(self, path: str, file: bytes, file_options: Optional[dict] = None):
        if self.storage.fail_uploads:
            raise RuntimeError("storage unavailable")
        self.storage.objects.setdefault(self.name, {})[path] = file
        self.storage.uploads.append((self.name, path, (file_options or {}).get("content-type")))
        return {"Key": f"{self.name}/{path}"}

    def get_public_url(self, path: str) -> str:
        return f"{SUPABASE_URL}/storage/v1/object/public/{self.name}/{path}"

    def create_signed_url(self, path: str, expires_in: int) -> dict:
        return {"signedURL": f"{SUPABASE_URL}/storage/v1/object/sign/{self.name}/{path}?token=t&ttl={expires_in}"}


class FakeStorage:
    def __init__(self):
        self.objects: Dict[str, Dict[str, bytes]] = {}
        self.uploads: List[tuple] = []
        self.fail_uploads = False

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeSupabase:
    """Just enough of supabase.Client for the task store, mirror and linkage"""

    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}
        self.writes: List[tuple] = []
        self.fail_tables: set = set()
        self.storage = FakeStorage()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[dict]:
        return self.tables.get(name, [])

    def writes_to(self, name: str, action: Optional[str] = None) -> List[tuple]:
        return [w for w in self.writes if w[0] == name and (action is None or w[1] == action)]


class MeshyStub:
    """Serves Meshy OpenAPI routes and provider-hosted asset downloads"""

    def __init__(self):
        self.submit_status = 202
        self.submit_body: Any = {"result": "meshy-task-1"}
        self.tasks: Dict[str, Any] = {}
        self.status_error: Optional[int] = None
        self.files: Dict[str, bytes] = {}
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.url.host == "assets.meshy.ai":
            url = str(request.url)
            if url in self.files:
                return httpx.Response(200, content=self.files[url])
            return httpx.Response(404)
        if request.method == "POST" and path.startswith("/openapi/"):
            if isinstance(self.submit_body, (dict, list)):
                return httpx.Response(self.submit_status, json=self.submit_body)
            return httpx.Response(self.submit_status, text=self.submit_body)
        if request.method == "GET" and path.startswith("/openapi/"):
            if self.status_error:
                return httpx.Response(self.status_error, text="upstream error")
            task_id = path.rsplit("/", 1)[-1]
            if task_id in self.tasks:
                return httpx.Response(200, json=self.tasks[task_id])
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(404)

    def posted(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def downloads(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == "assets.meshy.ai"]


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def meshy():
    return MeshyStub()


@pytest.fixture
def transport(meshy):
    return httpx.MockTransport(meshy.handler)


@pytest.fixture
def config():
    return GenerationConfig(
        supabase_url=SUPABASE_URL,
        supabase_service_key="service-key",
        meshy_api_base="https://api.meshy.ai",
        meshy_api_key="msy_test_key_123456",
    )


@pytest.fixture
def provider(config, transport):
    return MeshyClient(config.meshy_api_key, config.meshy_api_base, transport=transport)


@pytest.fixture
def mirror(fake_db, config, transport):
    return AssetMirror(
        supabase=fake_db,
        bucket=config.mirror_bucket,
        supabase_url=config.supabase_url,
        transport=transport,
    )


def make_task_row(fake_db: FakeSupabase, **fields) -> dict:
    """Insert a generation_tasks row directly and return it"""
    row = {
        "id": str(uuid.uuid4()),
        "user_id": OWNER_ID,
        "source": "image",
        "mode": "image-to-3d",
        "prompt": None,
        "status": "IN_PROGRESS",
        "progress": 0,
        "meshy_task_id": "meshy-task-1",
        "thumbnail_url": None,
        "model_glb_url": None,
        "model_fbx_url": None,
        "model_usdz_url": None,
        "texture_urls": None,
        "error": None,
        "design_id": None,
        "created_at": "2026-01-01T00:00:00+00:00",
        "started_at": "2026-01-01T00:00:01+00:00",
        "finished_at": None,
    }
    row.update(fields)
    fake_db.tables.setdefault("generation_tasks", []).append(row)
    return copy.deepcopy(row)


def succeeded_task(task_id: str = "meshy-task-1", host: str = "https://assets.meshy.ai") -> dict:
    """Meshy task object for a finished job"""
    return {
        "id": task_id,
        "status": "SUCCEEDED",
        "progress": 100,
        "model_urls": {
            "glb": f"{host}/{task_id}/model.glb?Expires=1",
            "fbx": f"{host}/{task_id}/model.fbx?Expires=1",
            "usdz": "",
        },
        "thumbnail_url": f"{host}/{task_id}/preview.png?Expires=1",
        "texture_urls": [{"base_color": f"{host}/{task_id}/texture_0.png"}],
        "task_error": {"message": ""},
    }
