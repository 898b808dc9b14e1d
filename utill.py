import os
from typing import Optional, Any, Iterable, Mapping
from urllib.parse import urlparse

import httpx


# ---- HTTP Client --------------------------------------------------
def get_httpx_client(
    timeout: float = 60.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    # httpx.Timeout은 default 또는 4개 인자를 모두 요구하므로, 단일 기본값으로 설정
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        transport=transport,
    )


# ---- Result parsing -----------------------------------------------
def pick_task_id(j: dict) -> Optional[str]:
    for k in ("result", "task_id", "id"):
        v = j.get(k)
        if v:
            return str(v)
    return None


def lookup_path(payload: Mapping[str, Any], dotted: str) -> Any:
    """Read ``a.b.c`` out of nested dicts; None when any hop is missing."""
    current: Any = payload
    for part in dotted.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def first_present(payload: Mapping[str, Any], candidates: Iterable[str]) -> Any:
    """Return the first candidate key whose value is not None/empty."""
    for key in candidates:
        value = lookup_path(payload, key)
        if value is None or value == "":
            continue
        return value
    return None


def url_extension(url: str, default: str) -> str:
    """File extension (with dot) from a URL path, ignoring the query string."""
    path = urlparse(url).path
    ext = os.path.splitext(path)[1].lower()
    return ext or default


def mask_secret(token: Optional[str]) -> str:
    if not token:
        return ""
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"
