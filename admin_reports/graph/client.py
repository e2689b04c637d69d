"""
Async Graph API client with pagination, throttling, retry, and read-only enforcement.
Also downloads the CSV usage reports (mailbox usage, Teams activity) that
Graph serves through a redirect to a short-lived blob URL.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
from typing import Any, AsyncGenerator, Optional

import httpx

from ..config import (
    GRAPH_BASE_URL,
    GRAPH_API_VERSION,
    GRAPH_BETA_VERSION,
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    DEFAULT_PAGE_SIZE,
    MAX_PAGES_PER_ENDPOINT,
    BATCH_SIZE,
    MAX_CONCURRENT_REQUESTS,
)
from ..safety.guardian import ReadOnlyGuard, SafetyViolation

logger = logging.getLogger("admin_reports.graph")

RETRYABLE_STATUS = (429, 503, 504)


class GraphAPIError(Exception):
    """Raised when Graph API returns a non-recoverable error."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Graph API Error {status_code} for {url}: {message}")


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json() if response.content else {}
    except ValueError:
        return response.text[:200] or default
    if isinstance(body, dict):
        return body.get("error", {}).get("message", default)
    return default


class GraphClient:
    """
    Async Microsoft Graph API client.
    Features:
      - Read-only validated requests
      - Automatic pagination with @odata.nextLink
      - Exponential backoff on 429/503/504
      - Concurrent request semaphore
      - $batch with results returned in request order
      - CSV usage report download
    """

    def __init__(
        self,
        access_token: str,
        guard: ReadOnlyGuard,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
    ):
        self.access_token = access_token
        self.guard = guard
        self._transport = transport
        self._initial_backoff = initial_backoff
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(60.0, connect=30.0),
            limits=httpx.Limits(
                max_connections=MAX_CONCURRENT_REQUESTS * 2,
                max_keepalive_connections=MAX_CONCURRENT_REQUESTS,
            ),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
                "ConsistencyLevel": "eventual",  # Required for $count and advanced filters
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str, beta: bool = False) -> str:
        if endpoint.startswith("http"):
            return endpoint
        version = GRAPH_BETA_VERSION if beta else GRAPH_API_VERSION
        return f"{GRAPH_BASE_URL}/{version}/{endpoint.lstrip('/')}"

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
    ) -> dict:
        """Execute a single GET request with retry/throttle handling."""
        url = self._build_url(endpoint, beta=beta)
        self.guard.validate_request("GET", url)

        async with self._semaphore:
            return await self._execute_with_retry("GET", url, params=params)

    async def get_all_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        skip_top: bool = False,
    ) -> list[dict]:
        """Fetch all pages of a paginated endpoint into a list."""
        return [
            item
            async for item in self.get_all_pages_stream(
                endpoint, params, beta, skip_top=skip_top
            )
        ]

    async def get_all_pages_stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        skip_top: bool = False,
    ) -> AsyncGenerator[dict, None]:
        """
        Stream all pages of a paginated endpoint, one item at a time.
        Set skip_top=True for endpoints that don't support $top.
        """
        params = dict(params or {})
        if not skip_top and "$top" not in params:
            params["$top"] = str(DEFAULT_PAGE_SIZE)

        url: Optional[str] = self._build_url(endpoint, beta=beta)
        request_params: Optional[dict] = params
        pages = 0

        while url and pages < MAX_PAGES_PER_ENDPOINT:
            self.guard.validate_request("GET", url)

            async with self._semaphore:
                data = await self._execute_with_retry("GET", url, params=request_params)

            if data.get("_forbidden"):
                raise GraphAPIError(
                    403,
                    data.get("_error_message", "Forbidden — missing API permission"),
                    url,
                )

            for item in data.get("value", []):
                yield item

            url = data.get("@odata.nextLink")
            request_params = None  # nextLink carries the query
            pages += 1

        if url and pages >= MAX_PAGES_PER_ENDPOINT:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_ENDPOINT} pages) "
                f"for endpoint: {endpoint}"
            )

    async def batch_get(
        self,
        endpoints: list[str],
        beta: bool = False,
    ) -> list[dict]:
        """
        Execute GET requests as Graph $batch calls of BATCH_SIZE.
        Graph may answer sub-requests in any order; results are returned
        in the order of `endpoints`.
        """
        results: list[dict] = []
        version = GRAPH_BETA_VERSION if beta else GRAPH_API_VERSION
        batch_url = f"{GRAPH_BASE_URL}/{version}/$batch"

        for start in range(0, len(endpoints), BATCH_SIZE):
            chunk = endpoints[start:start + BATCH_SIZE]
            batch_body = {
                "requests": [
                    {
                        "id": str(idx),
                        "method": "GET",
                        "url": ep if ep.startswith("/") else f"/{ep}",
                    }
                    for idx, ep in enumerate(chunk)
                ]
            }
            self.guard.validate_request("POST", batch_url, batch_body)

            async with self._semaphore:
                data = await self._execute_with_retry(
                    "POST", batch_url, json_body=batch_body
                )

            by_id = {str(r.get("id")): r for r in data.get("responses", [])}
            for idx, ep in enumerate(chunk):
                resp = by_id.get(str(idx))
                if resp is None:
                    results.append({
                        "_error": True,
                        "status": None,
                        "_error_message": "No response in batch",
                    })
                    continue
                status = resp.get("status")
                body = resp.get("body") or {}
                if status == 200:
                    results.append(body)
                    continue
                msg = body.get("error", {}).get("message", "Unknown") if isinstance(body, dict) else "Unknown"
                if status in (403, 404):
                    logger.debug(f"Batch sub-request {ep} returned {status}: {msg}")
                else:
                    logger.warning(f"Batch sub-request {ep} failed: {status} — {msg}")
                results.append({"_error": True, "status": status, "_error_message": msg})

        return results

    async def get_report(self, endpoint: str, beta: bool = False) -> list[dict]:
        """
        Download a Graph usage report (e.g. reports/getMailboxUsageDetail(period='D30'))
        and parse the CSV body into dict rows.
        """
        url = self._build_url(endpoint, beta=beta)
        self.guard.validate_request("GET", url)

        async with self._semaphore:
            response = await self._execute_with_retry(
                "GET", url, raw=True, follow_redirects=True
            )

        if response is None:
            return []
        text = response.content.decode("utf-8-sig", errors="replace")
        if not text.strip():
            return []
        reader = csv.DictReader(io.StringIO(text))
        return [
            {(k or "").strip(): (v or "").strip() for k, v in row.items()}
            for row in reader
        ]

    async def _execute_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        raw: bool = False,
        follow_redirects: bool = False,
    ) -> Any:
        """
        Execute a request with exponential backoff on throttling.
        With raw=True the successful httpx.Response is returned (None on 404)
        instead of decoded JSON.
        """
        backoff = self._initial_backoff

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._execute_raw(
                    method, url, params=params, json_body=json_body,
                    follow_redirects=follow_redirects,
                )
                self._request_count += 1

                if response.status_code == 200:
                    if raw:
                        return response
                    if not response.content or not response.content.strip():
                        return {"value": []}
                    try:
                        return response.json()
                    except ValueError:
                        logger.debug(f"200 response with non-JSON body from {url}")
                        return {"value": []}

                if response.status_code == 204:
                    return None if raw else {}

                if response.status_code == 404:
                    logger.debug(f"404 Not Found: {url}")
                    return None if raw else {"value": [], "_not_found": True}

                if response.status_code in RETRYABLE_STATUS:
                    self._throttle_count += 1
                    if attempt == MAX_RETRIES:
                        break
                    try:
                        retry_after = float(response.headers.get("Retry-After", backoff))
                    except ValueError:
                        retry_after = backoff
                    wait_time = max(retry_after, backoff)
                    logger.warning(
                        f"Throttled ({response.status_code}) on {url}. "
                        f"Retry {attempt + 1}/{MAX_RETRIES} in {wait_time:.1f}s"
                    )
                    await asyncio.sleep(wait_time)
                    backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                    continue

                if response.status_code == 403:
                    error_msg = _error_message(response, "Forbidden")
                    logger.warning(f"403 Forbidden: {url} — {error_msg}")
                    if raw:
                        raise GraphAPIError(403, error_msg, url)
                    return {"value": [], "_forbidden": True, "_error_message": error_msg}

                raise GraphAPIError(
                    response.status_code,
                    _error_message(response, response.text[:200]),
                    url,
                )

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                logger.warning(
                    f"{type(e).__name__} on {url}, attempt {attempt + 1}/{MAX_RETRIES + 1}"
                )
                if attempt == MAX_RETRIES:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

        raise GraphAPIError(429, f"Still throttled after {MAX_RETRIES} retries", url)

    async def _execute_raw(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        follow_redirects: bool = False,
    ) -> httpx.Response:
        if not self._client:
            raise RuntimeError("GraphClient not initialized. Use 'async with' context.")

        if method == "GET":
            return await self._client.get(
                url, params=params, follow_redirects=follow_redirects
            )
        elif method == "POST":
            return await self._client.post(url, json=json_body, params=params)
        raise SafetyViolation(f"Unsupported method at raw level: {method}")

    def get_stats(self) -> dict:
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
        }
