"""Shared HTTP client management for upstream calls."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

import httpx

from ..helpers import info_log, error_log
from ..config import settings


def _connection_pool_config(read_timeout: float) -> Dict[str, object]:
    return {
        "limits": httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30,
        ),
        "timeout": httpx.Timeout(
            connect=10.0,
            read=read_timeout,
            write=30.0,
            pool=10.0,
        ),
        "http2": True,
    }


class NetworkManager:
    """Manage the shared upstream HTTP client (optionally behind an outbound proxy)."""

    def __init__(self, proxy_url: Optional[str] = None, read_timeout: float = 300.0) -> None:
        self._proxy_url = proxy_url
        self._read_timeout = read_timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    async def get_or_create_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None or self._client.is_closed:
                config = _connection_pool_config(self._read_timeout)
                if self._proxy_url:
                    info_log("[CLIENT] 创建上游客户端", proxy=self._proxy_url)
                    self._client = httpx.AsyncClient(proxy=self._proxy_url, **config)
                else:
                    info_log("[CLIENT] 创建上游客户端（无代理）")
                    self._client = httpx.AsyncClient(**config)
            return self._client

    async def cleanup_clients(self) -> None:
        async with self._client_lock:
            client = self._client
            self._client = None

        if client:
            try:
                await client.aclose()
                info_log("[CLIENT] 上游客户端已关闭")
            except Exception as exc:  # pragma: no cover - 问题记录即可
                error_log("[CLIENT] 关闭上游客户端失败", error=str(exc))


network_manager = NetworkManager(
    proxy_url=settings.HTTP_PROXY,
    read_timeout=settings.REQUEST_TIMEOUT,
)
