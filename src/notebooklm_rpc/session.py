"""Session-owning transport with one-shot self-healing.

Every outbound call goes through :meth:`RpcSession.call`, a small state
machine::

    READY -> SENDING -> result
                     -> AuthenticationError -> RECOVERING -> READY -> retry (once)
                     -> RequestTimeoutError / TransportError -> caller

Recovery, short-circuiting on the first success:

1. Reload the credential store; adopt it if strictly newer than ours.
2. Headless browser refresh (saved Chrome profile).
3. Interactive browser login.

After a browser recovery a warm-up SETTINGS call primes the new session
server-side, then a short settle delay passes before the real retry. If
every path fails the original AuthenticationError is re-raised.
"""

import asyncio
import enum
import logging
import os
import random
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

import httpx

from . import rpc
from .auth import (
    CredentialRecord,
    CredentialStore,
    extract_bl_from_page,
    extract_csrf_from_page,
    extract_session_id_from_page,
)
from .constants import (
    BASE_URL,
    DEFAULT_BL,
    DEFAULT_TIMEOUT,
    LOGIN_HOST,
    PAGE_FETCH_TIMEOUT,
    QUERY_PATH,
    QUERY_TIMEOUT,
    RPC_NAMES,
    RPC_SETTINGS,
    SETTLE_DELAY,
    USER_AGENT,
    WARMUP_PARAMS,
    WARMUP_TIMEOUT,
)
from .errors import (
    AuthenticationError,
    NotebookLMError,
    RequestTimeoutError,
    TransportError,
)

logger = logging.getLogger("notebooklm_rpc.session")
api_logger = logging.getLogger("notebooklm_rpc.api")

T = TypeVar("T")

_RPC_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded;charset=UTF-8",
    "Origin": BASE_URL,
    "Referer": f"{BASE_URL}/",
    "X-Same-Domain": "1",
    "User-Agent": USER_AGENT,
    "sec-ch-ua": '"Not(A:Brand";v="99", "Google Chrome";v="133", "Chromium";v="133"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Linux"',
    "X-Goog-Encode-Response-If-Executable": "base64",
    "X-Google-SIDRT": "1",
}

# Page fetch must look like a browser navigation
_PAGE_FETCH_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
}


class SessionState(enum.Enum):
    READY = "ready"
    SENDING = "sending"
    RECOVERING = "recovering"


class RecoveryChannel(Protocol):
    """Browser-driven credential reacquisition.

    Both methods persist the record before returning it and raise a
    NotebookLMError subclass on failure.
    """

    async def recover_headless(self) -> CredentialRecord: ...

    async def recover_interactive(self) -> CredentialRecord: ...


class RetryBudget:
    """Retries left for one call: 0 or 1."""

    def __init__(self, retries: int = 1):
        if retries not in (0, 1):
            raise ValueError(f"retries must be 0 or 1, got {retries}")
        self.remaining = retries

    def consume(self) -> bool:
        if self.remaining == 0:
            return False
        self.remaining -= 1
        return True


class RpcSession:
    """Owns the live credential record, the HTTP client and the recovery policy.

    Construct one per process and share it; ``adopt_credentials`` is the only
    way to swap the record wholesale.
    """

    def __init__(
        self,
        record: CredentialRecord,
        store: CredentialStore | None = None,
        recovery: RecoveryChannel | None = None,
        http_client: httpx.AsyncClient | None = None,
        settle_delay: float = SETTLE_DELAY,
        warmup_timeout: float = WARMUP_TIMEOUT,
    ):
        self.record = record
        self.store = store
        self.recovery = recovery
        self.settle_delay = settle_delay
        self.warmup_timeout = warmup_timeout
        self.state = SessionState.READY
        self.recovery_count = 0

        self._client = http_client
        self._owns_client = http_client is None
        # _reqid must grow between calls; the web UI starts at a random offset
        self._reqid = random.randint(100000, 999999)

    @property
    def bl(self) -> str:
        return self.record.bl or os.environ.get("NOTEBOOKLM_BL") or DEFAULT_BL

    def _next_reqid(self) -> int:
        self._reqid += 100000
        return self._reqid

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Deadlines are enforced per call
            self._client = httpx.AsyncClient(timeout=None)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "RpcSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================================================================
    # Credential state transitions
    # =========================================================================

    def adopt_credentials(self, record: CredentialRecord, persist: bool = False) -> None:
        """Replace the live record (after recovery, or tokens saved by the user)."""
        self.record = record
        self.state = SessionState.READY
        if persist:
            self._persist()

    def _persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.record)
        except OSError as e:
            logger.warning("Could not persist credentials to %s: %s", self.store.path, e)

    def _rotate_session_id(self, session_id: str) -> None:
        if session_id == self.record.session_id:
            return
        logger.debug("Server rotated session id")
        self.record.session_id = session_id
        self._persist()

    def _absorb_cookies(self, response: httpx.Response) -> None:
        if self.record.merge_set_cookies(response.headers.get_list("set-cookie")):
            logger.debug("Merged refreshed cookies from Set-Cookie headers")
            self._persist()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _send(self, method: str, url: str, timeout: float, label: str, **kwargs) -> httpx.Response:
        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.request(method, url, timeout=timeout, **kwargs),
                timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RequestTimeoutError(
                f"{label} timed out after {timeout:g}s. Try increasing the timeout with --query-timeout."
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{label} failed: {e}") from e

        # Cookie refreshes are kept whatever the outcome
        self._absorb_cookies(response)
        return response

    async def _post(self, url: str, body: str, timeout: float, label: str, headers: dict | None = None) -> str:
        request_headers = {**_RPC_HEADERS, "Cookie": self.record.cookie_header, **(headers or {})}
        response = await self._send("POST", url, timeout, label, content=body, headers=request_headers)

        if api_logger.isEnabledFor(logging.DEBUG):
            api_logger.debug("Response Status: %s", response.status_code)
            if response.status_code >= 400:
                api_logger.debug("Error Response Body:\n%s", response.text[:2000])

        if response.status_code in (401, 403):
            raise AuthenticationError(f"HTTP {response.status_code}: Authentication expired")
        if response.status_code >= 400:
            raise TransportError(f"{label} failed: HTTP {response.status_code}", status_code=response.status_code)
        return response.text

    async def refresh_tokens(self) -> None:
        """Scrape CSRF token, session id and build label from the NotebookLM page.

        Raises:
            AuthenticationError: If the cookies are dead (redirected to Google login).
        """
        headers = {**_PAGE_FETCH_HEADERS, "Cookie": self.record.cookie_header}
        response = await self._send(
            "GET", f"{BASE_URL}/", PAGE_FETCH_TIMEOUT, "Page fetch",
            headers=headers, follow_redirects=True,
        )

        if LOGIN_HOST in str(response.url):
            raise AuthenticationError("Authentication expired: redirected to Google login")
        if response.status_code != 200:
            raise TransportError(
                f"Failed to fetch NotebookLM page: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        html = response.text
        csrf_token = extract_csrf_from_page(html)
        session_id = extract_session_id_from_page(html)
        bl = extract_bl_from_page(html)

        if csrf_token:
            self.record.csrf_token = csrf_token
        else:
            logger.warning("Failed to extract CSRF token from page; the page structure may have changed")
        if session_id:
            self.record.session_id = session_id
        else:
            logger.warning("Failed to extract session id from page")
        if bl:
            self.record.bl = bl

        self._persist()

    # =========================================================================
    # Calls
    # =========================================================================

    async def call(self, attempt: Callable[[], Awaitable[T]], retries: int = 1) -> T:
        """Run ``attempt`` with the warm path and at most one recovery + retry."""
        budget = RetryBudget(retries)
        while True:
            try:
                if not self.record.csrf_token or not self.record.session_id:
                    await self.refresh_tokens()
                self.state = SessionState.SENDING
                return await attempt()
            except AuthenticationError as exc:
                if not budget.consume():
                    raise
                self.state = SessionState.RECOVERING
                logger.warning("Session expired (%s). Attempting recovery...", exc)
                if not await self.recover():
                    logger.error("Session recovery failed")
                    raise exc
                logger.warning("Session recovered. Retrying once.")
            finally:
                self.state = SessionState.READY

    async def recover(self) -> bool:
        """Run one recovery cycle. Returns True if new credentials were adopted."""
        self.recovery_count += 1

        if self.store is not None:
            fresh = self.store.load()
            if fresh is not None and fresh.extracted_at > self.record.extracted_at:
                logger.warning("Found fresher credentials on disk")
                self.adopt_credentials(fresh)
                return True

        record = await self._browser_recover()
        if record is None:
            return False

        self.adopt_credentials(record)
        await self._warm_up()
        if self.settle_delay:
            await asyncio.sleep(self.settle_delay)
        return True

    async def _browser_recover(self) -> CredentialRecord | None:
        if self.recovery is None:
            logger.warning("No browser recovery configured. Run `notebooklm-rpc-auth` to re-authenticate.")
            return None

        # Any recovery failure falls through; the caller re-raises the original auth error
        try:
            return await self.recovery.recover_headless()
        except Exception as e:
            logger.warning("Headless refresh failed (%s). Launching a login window.", e)

        try:
            return await self.recovery.recover_interactive()
        except Exception as e:
            logger.error("Interactive login failed: %s", e)
            return None

    async def _warm_up(self) -> None:
        try:
            await self.execute(RPC_SETTINGS, WARMUP_PARAMS, timeout=self.warmup_timeout, retries=0)
        except NotebookLMError as e:
            logger.debug("Warm-up call failed (ignored): %s", e)

    async def execute(
        self,
        rpc_id: str,
        params: Any,
        source_path: str = "/",
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = 1,
    ) -> Any:
        """Execute one batchexecute RPC and return its decoded payload (or None)."""
        label = RPC_NAMES.get(rpc_id, rpc_id)

        async def attempt() -> Any:
            body = rpc.encode_request_body(rpc_id, params, self.record.csrf_token, self.record.session_id)
            url = rpc.build_rpc_url(rpc_id, source_path, self.bl, self._next_reqid(), self.record.session_id)
            self._log_request(f"RPC Call: {rpc_id} ({label})", url, body)

            text = await self._post(url, body, timeout, label)
            result = rpc.extract_rpc_result(
                rpc.decode_response(text), rpc_id, on_session_id=self._rotate_session_id
            )

            if api_logger.isEnabledFor(logging.DEBUG):
                api_logger.debug("Response Data:\n%s", rpc.format_debug_json(result))
            return result

        return await self.call(attempt, retries=retries)

    async def stream_query(self, params: Any, source_path: str = "/", timeout: float = QUERY_TIMEOUT) -> list[Any]:
        """Call the streamed query endpoint and return every result payload."""

        async def attempt() -> list[Any]:
            body = rpc.encode_query_body(params, self.record.csrf_token, self.record.session_id)
            url = rpc.build_query_url(self.bl, self._next_reqid(), self.record.session_id)
            self._log_request(f"Query: {source_path}", url, body)

            text = await self._post(url, body, timeout, "Query", headers={"X-Goog-BatchExecute-Path": QUERY_PATH})
            return rpc.extract_all_results(rpc.decode_response(text), None, on_session_id=self._rotate_session_id)

        return await self.call(attempt)

    def _log_request(self, title: str, url: str, body: str) -> None:
        if not api_logger.isEnabledFor(logging.DEBUG):
            return
        api_logger.debug("=" * 70)
        api_logger.debug(title)
        api_logger.debug("URL: %s", url)
        decoded = rpc.decode_request_body(body)
        api_logger.debug("Request Params:\n%s", rpc.format_debug_json(decoded.get("params", decoded)))
