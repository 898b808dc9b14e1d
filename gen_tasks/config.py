"""
Generation Task Configuration

Environment-driven settings for the provider client, storage mirror and
reconciliation loop.
"""
import os
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel

from utill import mask_secret

logger = logging.getLogger("uvicorn.error")


class PresetConfig(BaseModel):
    """Quality preset sent to the provider"""
    target_polycount: int
    should_remesh: bool = True
    should_texture: bool = True
    enable_pbr: bool = True


DEFAULT_PRESETS: Dict[str, PresetConfig] = {
    "draft": PresetConfig(target_polycount=120_000),
    "standard": PresetConfig(target_polycount=220_000),
    "high": PresetConfig(target_polycount=350_000),
}

MAX_PROMPT_CHARS = 600          # Meshy text-to-3d prompt limit
MAX_TEXTURE_PROMPT_CHARS = 800  # Meshy texture_prompt limit
MAX_MULTI_IMAGES = 5


class GenerationConfig(BaseModel):
    """Settings for the generation task lifecycle"""
    supabase_url: str = ""
    supabase_service_key: str = ""

    meshy_api_base: str = "https://api.meshy.ai"
    meshy_api_key: str = ""
    meshy_timeout_sec: float = 60.0
    meshy_ai_model: str = "latest"
    webhook_secret: Optional[str] = None

    mirror_bucket: str = "design-files"
    mirror_signed_url_ttl: int = 0  # 0 = public URL
    mirror_timeout_sec: float = 180.0

    default_preset: str = "standard"
    presets: Dict[str, PresetConfig] = DEFAULT_PRESETS

    poll_interval_sec: float = 2.5
    server_side_polling: bool = False

    allowed_origins: List[str] = ["*"]

    def preset(self, name: Optional[str]) -> PresetConfig:
        """Resolve a preset by name; unknown names fall back to the default preset."""
        key = (name or self.default_preset).lower()
        return self.presets.get(key) or self.presets[self.default_preset]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> GenerationConfig:
    """Build the config from environment variables (call after load_dotenv)."""
    origins_raw = os.getenv("ALLOWED_ORIGINS", "*")
    origins = [o.strip() for o in origins_raw.split(",") if o.strip()] or ["*"]

    config = GenerationConfig(
        supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
        supabase_service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        meshy_api_base=os.getenv("MESHY_API_BASE", "https://api.meshy.ai").rstrip("/"),
        meshy_api_key=os.getenv("MESHY_API_KEY", ""),
        meshy_timeout_sec=float(os.getenv("MESHY_TIMEOUT_SEC", "60")),
        meshy_ai_model=os.getenv("MESHY_AI_MODEL", "latest"),
        webhook_secret=os.getenv("MESHY_WEBHOOK_SECRET") or None,
        mirror_bucket=os.getenv("MIRROR_BUCKET", "design-files"),
        mirror_signed_url_ttl=int(os.getenv("MIRROR_SIGNED_URL_TTL", "0")),
        mirror_timeout_sec=float(os.getenv("MIRROR_TIMEOUT_SEC", "180")),
        default_preset=os.getenv("DEFAULT_PRESET", "standard").lower(),
        poll_interval_sec=float(os.getenv("POLL_INTERVAL_SEC", "2.5")),
        server_side_polling=_env_bool("SERVER_SIDE_POLLING", False),
        allowed_origins=origins,
    )
    if config.default_preset not in config.presets:
        logger.warning("[GenCfg] unknown DEFAULT_PRESET=%s, using standard", config.default_preset)
        config.default_preset = "standard"

    logger.info(
        "[GenCfg] meshy_base=%s meshy_key=%s supabase=%s bucket=%s signed_ttl=%d preset=%s poll=%.1fs server_poll=%s webhook_secret=%s",
        config.meshy_api_base,
        mask_secret(config.meshy_api_key),
        config.supabase_url,
        config.mirror_bucket,
        config.mirror_signed_url_ttl,
        config.default_preset,
        config.poll_interval_sec,
        config.server_side_polling,
        "set" if config.webhook_secret else "unset",
    )
    return config
