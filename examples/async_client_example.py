"""
Async Client Example - Image to 3D keychain with progress tracking

Creates a task and polls GET /tasks/{id} every 2.5s the way the storefront
does, until the task is SUCCEEDED, FAILED or DELETED.

Usage:
    ACCESS_TOKEN=<supabase jwt> python examples/async_client_example.py <image_url>
"""
import asyncio
import os
import sys

import httpx

from gen_tasks.poller import TaskPoller

BASE_URL = os.getenv("GEN_API_BASE", "http://localhost:7000")
API_PREFIX = "/api/v1/generation"


def _headers() -> dict:
    return {"Authorization": f"Bearer {os.getenv('ACCESS_TOKEN', '')}"}


async def create_task(client: httpx.AsyncClient, image_url: str, preset: str = "standard") -> dict:
    """Start an image-to-3d task. Returns {id, meshy_task_id}."""
    response = await client.post(
        f"{BASE_URL}{API_PREFIX}/tasks",
        json={"source": "image", "image_url": image_url, "preset": preset},
        headers=_headers(),
    )
    result = response.json()
    if response.status_code != 201 or result.get("status") != "ok":
        raise RuntimeError(f"Failed to start task: {result.get('error')}")
    return result["data"]


async def check_progress(client: httpx.AsyncClient, task_id: str) -> dict:
    response = await client.get(f"{BASE_URL}{API_PREFIX}/tasks/{task_id}", headers=_headers())
    response.raise_for_status()
    return response.json()["data"]


def print_progress(data: dict) -> None:
    progress = data.get("progress") or 0
    bar_length = 40
    filled = int(bar_length * progress / 100)
    bar = "█" * filled + "░" * (bar_length - filled)
    print(f"\r[{bar}] {progress}% - {data.get('status')}", end="", flush=True)


async def main(image_url: str) -> None:
    print("=" * 60)
    print("🚀 Async Image-to-3D Example")
    print("=" * 60)

    async with httpx.AsyncClient(timeout=30.0) as client:
        task = await create_task(client, image_url)
        task_id = task["id"]
        print(f"✅ Task started: {task_id} (meshy {task['meshy_task_id']})")

        poller = TaskPoller(
            lambda: check_progress(client, task_id),
            interval=2.5,
            on_update=print_progress,
            name=task_id,
        )
        poller.start()
        try:
            result = await poller.wait()
        except KeyboardInterrupt:
            poller.cancel()
            print(f"\n⚠️  Cancelled. Task {task_id} keeps running on the server.")
            return

    print("\n" + "=" * 60)
    if result and result.get("status") == "SUCCEEDED":
        print(f"📥 GLB Model: {result.get('model_glb_url')}")
        print(f"🖼  Thumbnail: {result.get('thumbnail_url')}")
        print(f"🔑 Design: {result.get('design_id')}")
    else:
        print(f"❌ Task ended with {result and result.get('status')}: {result and result.get('error')}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
