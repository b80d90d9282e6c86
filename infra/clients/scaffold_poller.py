import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from app.settings import settings
from domain.errors import (
    AuthError,
    NotFound,
    PayloadTooLarge,
    PipelineError,
    ScaffoldNotReady,
    UpstreamQuotaExceeded,
    UpstreamRateLimited,
    ValidationError,
)
from domain.services.progress import progress_percent

logger = logging.getLogger(__name__)

_ERRORS_BY_STATUS = {
    400: ValidationError,
    401: AuthError,
    402: UpstreamQuotaExceeded,
    404: NotFound,
    409: ScaffoldNotReady,
    413: PayloadTooLarge,
    429: UpstreamRateLimited,
}

TERMINAL = {"READY", "FAILED"}


class ScaffoldPoller:
    """Polls the audition scaffold endpoint until the scaffold is READY or FAILED."""

    def __init__(
        self,
        base_url: str,
        token: str,
        interval_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {token}"}
        self.interval = settings.POLL_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        self._transport = transport
        self._sleep = sleep
        self._timeout = timeout

    async def _request(self, method: str, path: str, json: Optional[Dict] = None) -> Dict[str, Any]:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout,
                                     transport=self._transport) as client:
            response = await client.request(method, path, headers=self.headers, json=json)
        if response.status_code >= 400:
            try:
                message = response.json().get("error")
            except ValueError:
                message = None
            error_cls = _ERRORS_BY_STATUS.get(response.status_code, PipelineError)
            raise error_cls(message)
        return response.json()

    async def start(self, project_id: str, **body: Any) -> Dict[str, Any]:
        return await self._request("POST", "/audition/scaffold", json={"project_id": project_id, **body})

    async def fetch(self, project_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/audition/scaffold/{project_id}")

    async def wait(
        self,
        project_id: str,
        on_progress: Optional[Callable[[float], None]] = None,
        start_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if start_body is not None:
            payload = await self.start(project_id, **start_body)
        else:
            payload = await self.fetch(project_id)
        while payload.get("status") not in TERMINAL:
            pct = progress_percent(payload.get("elapsed_minutes", 0),
                                   payload.get("estimated_remaining_minutes", 0))
            logger.debug("Scaffold for %s still generating (%.1f%%)", project_id, pct)
            if on_progress:
                on_progress(pct)
            await self._sleep(self.interval)
            payload = await self.fetch(project_id)
        if payload["status"] == "READY" and on_progress:
            on_progress(100.0)
        return payload
