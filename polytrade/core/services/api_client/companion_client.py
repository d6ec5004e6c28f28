"""
Companion API Client
HTTP client for the platform server: fee configuration, fee and order records,
runtime config and relayer request signing
"""
import time
from typing import Any, Dict, Optional

import httpx

from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


class CompanionAPIClient:
    """
    Client for the companion server endpoints
    - Fee configuration is cached (fees.config_ttl_seconds)
    - Record endpoints are best-effort and never raise
    """

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or settings.polymarket.companion_api_url).rstrip('/')
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.polymarket.request_timeout,
            follow_redirects=True,
        )
        self._fee_config: Optional[Dict[str, Any]] = None
        self._fee_config_fetched_at = 0.0

    async def close(self) -> None:
        await self.client.aclose()

    async def get_fee_config(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Current platform fee configuration

        Returns:
            {'fee_percentage': float, 'treasury_address': str|None, 'enabled': bool}
        """
        now = time.monotonic()
        if (
            not force_refresh
            and self._fee_config is not None
            and now - self._fee_config_fetched_at < settings.fees.config_ttl_seconds
        ):
            return self._fee_config

        try:
            response = await self.client.get("/api/fees/current")
            response.raise_for_status()
            data = response.json()
            percentage = float(data.get("feePercentage") or 0)
            config = {
                "fee_percentage": percentage,
                "treasury_address": data.get("treasuryAddress"),
                "enabled": bool(data.get("enabled")) and percentage > 0,
            }
        except Exception as e:
            logger.warning(f"⚠️ Fee config unavailable, trading without platform fee: {e}")
            config = {"fee_percentage": 0.0, "treasury_address": None, "enabled": False}

        self._fee_config = config
        self._fee_config_fetched_at = now
        return config

    async def record_fee(self, payload: Dict[str, Any]) -> bool:
        """Record a fee expectation or collection"""
        return await self._post_best_effort("/api/fees/record", payload)

    async def record_order(self, payload: Dict[str, Any]) -> bool:
        """Record a client-submitted order"""
        return await self._post_best_effort("/api/polymarket/record-order", payload)

    async def get_runtime_config(self) -> Dict[str, Any]:
        """Runtime secrets lookup (wallet provider keys)"""
        response = await self.client.get("/api/config")
        response.raise_for_status()
        return response.json()

    async def is_relayer_available(self) -> bool:
        """Whether the server holds builder credentials for the gasless relayer"""
        try:
            response = await self.client.get("/api/polymarket/relayer-status")
            if response.status_code != 200:
                return False
            return bool(response.json().get("available"))
        except Exception as e:
            logger.warning(f"⚠️ Relayer status check failed: {e}")
            return False

    async def builder_sign(self, method: str, path: str, body: Optional[str] = None) -> Dict[str, str]:
        """Builder authentication headers for a relayer request"""
        response = await self.client.post(
            "/api/polymarket/builder-sign",
            json={"method": method, "path": path, "body": body or ""},
        )
        response.raise_for_status()
        return {str(k): str(v) for k, v in response.json().items()}

    async def _post_best_effort(self, path: str, payload: Dict[str, Any]) -> bool:
        try:
            response = await self.client.post(path, json=payload)
            if response.status_code >= 400:
                logger.warning(f"⚠️ {path} returned {response.status_code}: {response.text[:200]}")
                return False
            return True
        except Exception as e:
            logger.warning(f"⚠️ {path} failed: {e}")
            return False


# Global instance
_companion_client: Optional[CompanionAPIClient] = None


def get_companion_client() -> CompanionAPIClient:
    """Get or create the companion API client"""
    global _companion_client
    if _companion_client is None:
        _companion_client = CompanionAPIClient()
    return _companion_client
