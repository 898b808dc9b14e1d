"""
Service container for the generation lifecycle. One instance per app,
kept on ``app.state.generation``.
"""
import logging
from typing import Callable, Optional

import httpx
from supabase import Client

from gen_tasks.asset_mirror import AssetMirror
from gen_tasks.config import GenerationConfig
from gen_tasks.creation import TaskCreationService
from gen_tasks.meshy_client import MeshyClient
from gen_tasks.reconciler import TaskReconciler

logger = logging.getLogger("uvicorn.error")


class GenerationServices:
    """Wires config, provider client, mirror, creation and reconciliation together"""

    def __init__(
        self,
        config: GenerationConfig,
        supabase: Client = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        notifier: Optional[Callable] = None,
    ):
        self.config = config
        self.supabase = supabase
        self.provider = MeshyClient(
            api_key=config.meshy_api_key,
            api_base=config.meshy_api_base,
            timeout=config.meshy_timeout_sec,
            transport=transport,
        )
        self.mirror = AssetMirror(
            supabase=supabase,
            bucket=config.mirror_bucket,
            supabase_url=config.supabase_url,
            signed_url_ttl=config.mirror_signed_url_ttl,
            timeout=config.mirror_timeout_sec,
            transport=transport,
        )
        self.reconciler = TaskReconciler(
            provider=self.provider,
            mirror=self.mirror,
            supabase=supabase,
            notifier=notifier,
        )
        self.watcher = None
        if config.server_side_polling:
            from background_tasks import TaskWatchRegistry
            self.watcher = TaskWatchRegistry(
                self.reconciler,
                interval=config.poll_interval_sec,
                supabase=supabase,
            )
        self.creation = TaskCreationService(
            config=config,
            provider=self.provider,
            supabase=supabase,
            watcher=self.watcher,
        )

    async def startup(self) -> None:
        if self.watcher is not None:
            resumed = self.watcher.resume_open_tasks()
            logger.info(f"[GenServices] Server-side polling on, resumed {resumed} task(s)")

    async def shutdown(self) -> None:
        if self.watcher is not None:
            await self.watcher.cancel_all()
