"""
relays.py - HTTP clients for the out-of-band submission paths.

WarpRelay:        POST signed (fee tx, swap tx) to Warp's execute endpoint.
JitoBlockEngine:  JSON-RPC sendBundle / getTipAccounts against the regional
                  block engines, plus the public tip-floor feed.

Transport failures (connect, timeout, protocol) raise httpx exceptions to
the caller; relay-level rejections come back as data.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import httpx
from loguru import logger

from rayswap.config.settings import DEFAULT_JITO_ENDPOINTS, WARP_EXECUTE_URL
from rayswap.engines.execution.ledger import BlockhashInfo

WARP_FEE_WALLET = "WARPzUMPnycu9eeCZ95rcAUxorqpBqHndfV3ZP5FSyS"

# A relay answer slower than this arrives after the blockhash has usually expired.
WARP_HTTP_TIMEOUT = 30.0

JITO_TIP_FLOOR_URL = "https://bundles.jito.wtf/api/v1/bundles/tip_floor"

# Used when getTipAccounts is unreachable.
JITO_TIP_ACCOUNTS = (
    "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
    "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
    "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
    "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
    "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
    "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
    "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
    "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
)


class _HttpRelay:
    def __init__(
        self,
        http_timeout: float,
        proxy: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.http_timeout = http_timeout
        self.proxy = proxy
        self._client: Optional[httpx.AsyncClient] = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.http_timeout, proxy=self.proxy)
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()


# =============================================================================
# WARP
# =============================================================================

@dataclass(frozen=True)
class WarpResponse:
    confirmed: bool
    signature: Optional[str] = None
    error: Optional[str] = None


class WarpRelay(_HttpRelay):
    def __init__(
        self,
        url: str = WARP_EXECUTE_URL,
        http_timeout: float = WARP_HTTP_TIMEOUT,
        proxy: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(http_timeout, proxy, client)
        self.url = url

    async def execute(self, encoded_transactions: Sequence[str], blockhash: BlockhashInfo) -> WarpResponse:
        """Submit [fee tx, swap tx] (base58). Non-2xx answers are rejections."""
        client = await self._get_client()
        payload = {
            "transactions": list(encoded_transactions),
            "latestBlockhash": {
                "blockhash": str(blockhash.blockhash),
                "lastValidBlockHeight": blockhash.last_valid_block_height,
            },
        }
        resp = await client.post(self.url, json=payload)
        if resp.status_code >= 400:
            logger.warning(f"WARP | http_error | status={resp.status_code}")
            return WarpResponse(confirmed=False, error=f"http {resp.status_code}: {resp.text[:200]}")

        try:
            body = resp.json()
        except ValueError:
            return WarpResponse(confirmed=False, error="invalid json from relay")

        return WarpResponse(
            confirmed=bool(body.get("confirmed")),
            signature=body.get("signature"),
            error=body.get("error"),
        )


# =============================================================================
# JITO
# =============================================================================

@dataclass
class BundleSubmission:
    """Per-endpoint results of one sendBundle fan-out."""
    bundle_ids: Dict[str, str] = field(default_factory=dict)
    rejections: Dict[str, str] = field(default_factory=dict)
    transport_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return bool(self.bundle_ids)

    @property
    def all_transport_failed(self) -> bool:
        return not self.bundle_ids and not self.rejections and bool(self.transport_errors)


class JitoBlockEngine(_HttpRelay):
    def __init__(
        self,
        endpoints: Sequence[str] = DEFAULT_JITO_ENDPOINTS,
        tip_floor_url: str = JITO_TIP_FLOOR_URL,
        http_timeout: float = 10.0,
        proxy: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(http_timeout, proxy, client)
        if not endpoints:
            raise ValueError("at least one block engine endpoint is required")
        self.endpoints = tuple(endpoints)
        self.tip_floor_url = tip_floor_url
        self._tip_accounts: List[str] = []

    async def _rpc(self, url: str, method: str, params: list) -> dict:
        client = await self._get_client()
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        resp = await client.post(url, json=payload)
        try:
            return resp.json()
        except ValueError:
            return {"error": {"message": f"http {resp.status_code}: non-json response"}}

    async def get_tip_accounts(self) -> List[str]:
        """Tip accounts from the first reachable endpoint, cached. Falls back to the static list."""
        if self._tip_accounts:
            return self._tip_accounts
        for url in self.endpoints:
            try:
                body = await self._rpc(url, "getTipAccounts", [])
            except httpx.HTTPError as e:
                logger.debug(f"JITO_TIP_ACCOUNTS | error | url={url} | {e}")
                continue
            accounts = body.get("result")
            if isinstance(accounts, list) and accounts:
                self._tip_accounts = [str(a) for a in accounts]
                logger.info(f"JITO_TIP_ACCOUNTS | cached={len(self._tip_accounts)}")
                return self._tip_accounts
        logger.warning("JITO_TIP_ACCOUNTS | unavailable | using static list")
        return list(JITO_TIP_ACCOUNTS)

    async def random_tip_account(self) -> str:
        return random.choice(await self.get_tip_accounts())

    async def get_tip_floor(self) -> Optional[float]:
        """50th percentile landed tip in SOL, or None if the feed is unavailable."""
        try:
            client = await self._get_client()
            resp = await client.get(self.tip_floor_url)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"JITO_TIP_FLOOR | error | {e}")
            return None
        if not isinstance(data, list) or not data:
            return None
        value = data[0].get("landed_tips_50th_percentile")
        return float(value) if value is not None else None

    async def _send_one(self, url: str, encoded_transactions: Sequence[str]):
        body = await self._rpc(url, "sendBundle", [list(encoded_transactions)])
        if body.get("result"):
            return str(body["result"]), None
        error = body.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else str(error)
        return None, message or "bundle rejected"

    async def send_bundle(self, encoded_transactions: Sequence[str]) -> BundleSubmission:
        """sendBundle to every endpoint concurrently."""
        results = await asyncio.gather(
            *(self._send_one(url, encoded_transactions) for url in self.endpoints),
            return_exceptions=True,
        )
        submission = BundleSubmission()
        for url, result in zip(self.endpoints, results):
            if isinstance(result, httpx.HTTPError):
                submission.transport_errors[url] = str(result) or type(result).__name__
            elif isinstance(result, BaseException):
                raise result
            else:
                bundle_id, error = result
                if bundle_id:
                    submission.bundle_ids[url] = bundle_id
                else:
                    submission.rejections[url] = error
        logger.info(
            f"JITO_BUNDLE | accepted={len(submission.bundle_ids)} | "
            f"rejected={len(submission.rejections)} | transport_errors={len(submission.transport_errors)}"
        )
        return submission
