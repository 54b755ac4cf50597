import httpx
from typing import Any, Optional

from config import settings


class QubicRpcClient:
    """Read-only transport for the public Qubic RPC.

    Only issues GET requests; no keys, no signing. Non-2xx responses raise
    ``httpx.HTTPStatusError`` so the caller's retry policy sees them.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.QUBIC_RPC_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        client = await self._get_client()
        response = await client.get(self.url_for(path), params=params)
        response.raise_for_status()
        return response.json()

    # ==================== ENDPOINTS ====================

    async def get_balance(self, identity: str) -> Any:
        return await self.get_json(f"/v1/balances/{identity}")

    async def get_owned_assets(self, identity: str) -> Any:
        return await self.get_json(f"/v1/assets/{identity}/owned")

    async def get_transfers(self, identity: str) -> Any:
        return await self.get_json(f"/v2/identities/{identity}/transfers")

    async def get_status(self) -> Any:
        return await self.get_json("/v1/status")
