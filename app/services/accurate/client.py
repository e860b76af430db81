import base64
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.schemas.accurate.records import AccurateResponse, Branch, Warehouse

logger = logging.getLogger(__name__)


class AccurateClient:
    """Thin async wrapper over the Accurate Online REST API.

    Every request carries the bearer token and the database session id; a
    request hook stamps ``X-Api-Timestamp`` and signs it with HMAC-SHA256 when a
    signature secret is configured.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        signature_secret: Optional[str] = None,
        db_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.ACCURATE_API_HOST
        self.signature_secret = signature_secret if signature_secret is not None else settings.ACCURATE_SIGNATURE_SECRET
        token = api_token if api_token is not None else settings.ACCURATE_API_TOKEN
        self.headers = {
            "Authorization": f"Bearer {token}",
            "X-Session-ID": db_id or settings.ACCURATE_DB_ID,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=timeout or settings.ACCURATE_TIMEOUT_SECONDS,
            event_hooks={"request": [self._sign_request]},
            transport=transport,
        )

    async def __aenter__(self) -> "AccurateClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self.client.aclose()

    def sign(self, timestamp: str) -> str:
        digest = hmac.new(
            self.signature_secret.encode("utf-8"),
            timestamp.encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    async def _sign_request(self, request: httpx.Request):
        now = datetime.now(timezone.utc)
        timestamp = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
        request.headers["X-Api-Timestamp"] = timestamp
        if self.signature_secret:
            request.headers["X-Api-Signature"] = self.sign(timestamp)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> AccurateResponse:
        """GET an endpoint and parse the {s, d} envelope.

        Transport errors and non-2xx responses propagate as ``httpx.HTTPError``;
        an ``s=false`` envelope is returned as-is for the caller to judge.
        """
        response = await self.client.get(path, params=params)
        response.raise_for_status()
        return AccurateResponse.model_validate(response.json())

    async def list_branches(self) -> List[Branch]:
        result = await self.get("/branch/list.do", params={"sp.pageSize": 100})
        return [
            Branch(id=b["id"], name=b.get("name") or "", default_branch=bool(b.get("defaultBranch")))
            for b in (result.data or [])
        ]

    async def list_warehouses(self, page_size: int = 100, max_pages: int = 20) -> List[Warehouse]:
        warehouses: List[Warehouse] = []
        for page in range(1, max_pages + 1):
            result = await self.get("/warehouse/list.do", params={"sp.pageSize": page_size, "sp.page": page})
            rows = result.data or []
            warehouses.extend(
                Warehouse(
                    id=w["id"],
                    name=w.get("name") or "",
                    default_warehouse=bool(w.get("defaultWarehouse")),
                    description=w.get("description") or None,
                )
                for w in rows
            )
            if len(rows) < page_size:
                break
        return warehouses
