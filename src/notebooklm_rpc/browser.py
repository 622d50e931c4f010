"""Browser-driven credential recovery over the Chrome DevTools Protocol.

A dedicated Chrome profile lives next to auth.json so the Google login is
remembered between runs without touching the user's main browser profile.

- Headless recovery reuses that saved login with no window. It fails fast
  when the profile has never been logged in.
- Interactive recovery opens a visible window and waits for the user to
  log in.

Both poll ``Network.getCookies`` until the required Google cookies show up,
scrape the page tokens, save the record, and always kill Chrome.
"""

import asyncio
import json
import logging
import os
import platform
import shutil
import subprocess
import time
from pathlib import Path
from urllib.parse import quote

import httpx
import websocket

from .auth import (
    CredentialRecord,
    CredentialStore,
    extract_bl_from_page,
    extract_csrf_from_page,
    extract_session_id_from_page,
    get_data_dir,
    missing_cookies,
    parse_cookies_from_chrome_format,
    validate_cookies,
)
from .constants import BASE_URL, LOGIN_HOST
from .errors import BrowserRecoveryError

logger = logging.getLogger("notebooklm_rpc.browser")

CDP_DEFAULT_PORT = 9229
NOTEBOOKLM_URL = f"{BASE_URL}/"

HEADLESS_TIMEOUT = 15.0
INTERACTIVE_TIMEOUT = 120.0
COOKIE_POLL_INTERVAL = 2.0
DEBUGGER_WAIT = 10.0

_LINUX_CHROME_CANDIDATES = ("google-chrome", "google-chrome-stable", "chromium", "chromium-browser")


def get_profile_dir() -> Path:
    profile_dir = get_data_dir() / "chrome-profile"
    profile_dir.mkdir(parents=True, exist_ok=True)
    return profile_dir


def has_chrome_profile() -> bool:
    """A Cookies file means the profile has been used (and probably logged in)."""
    return (get_profile_dir() / "Default" / "Cookies").exists()


def is_profile_locked() -> bool:
    """Chrome holds a SingletonLock while the profile is open."""
    return os.path.lexists(get_profile_dir() / "SingletonLock")


def find_chrome_binary() -> str:
    override = os.environ.get("NOTEBOOKLM_CHROME")
    if override:
        return override

    system = platform.system()
    if system == "Darwin":
        return "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    if system == "Windows":
        return r"C:\Program Files\Google\Chrome\Application\chrome.exe"
    if system == "Linux":
        for candidate in _LINUX_CHROME_CANDIDATES:
            if shutil.which(candidate):
                return candidate
        raise BrowserRecoveryError(f"Chrome not found. Tried: {', '.join(_LINUX_CHROME_CANDIDATES)}")
    raise BrowserRecoveryError(f"Unsupported platform: {system}")


def launch_chrome(port: int, headless: bool = False) -> subprocess.Popen:
    """Launch Chrome with remote debugging on the dedicated profile."""
    args = [
        find_chrome_binary(),
        f"--remote-debugging-port={port}",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-extensions",
        # Chrome 136+ refuses remote debugging on the default profile
        f"--user-data-dir={get_profile_dir()}",
        "--remote-allow-origins=*",
    ]
    if headless:
        args.append("--headless=new")
    args.append(NOTEBOOKLM_URL)

    logger.debug("Launching Chrome: %s", " ".join(args[:3]))
    return subprocess.Popen(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)


def terminate_chrome(process: subprocess.Popen) -> None:
    try:
        process.terminate()
        process.wait(timeout=5)
    except (OSError, subprocess.TimeoutExpired):
        try:
            process.kill()
        except OSError:
            logger.warning("Could not kill Chrome (pid %s)", process.pid)


def get_chrome_debugger_url(port: int = CDP_DEFAULT_PORT) -> str | None:
    try:
        response = httpx.get(f"http://localhost:{port}/json/version", timeout=5)
        return response.json().get("webSocketDebuggerUrl")
    except (httpx.HTTPError, ValueError):
        return None


def wait_for_debugger(port: int, process: subprocess.Popen | None = None, timeout: float = DEBUGGER_WAIT) -> str:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if process is not None and process.poll() is not None:
            raise BrowserRecoveryError(f"Chrome exited early with code {process.returncode}")
        debugger_url = get_chrome_debugger_url(port)
        if debugger_url:
            return debugger_url
        time.sleep(0.5)
    raise BrowserRecoveryError(f"Cannot connect to Chrome on port {port}")


def get_chrome_pages(port: int = CDP_DEFAULT_PORT) -> list[dict]:
    response = httpx.get(f"http://localhost:{port}/json", timeout=5)
    return response.json()


def find_or_create_notebooklm_page(port: int = CDP_DEFAULT_PORT) -> dict:
    for page in get_chrome_pages(port):
        if page.get("type", "page") == "page" and "notebooklm.google.com" in page.get("url", ""):
            return page

    response = httpx.put(f"http://localhost:{port}/json/new?{quote(NOTEBOOKLM_URL, safe='')}", timeout=15)
    if response.status_code == 200 and response.text.strip():
        return response.json()
    raise BrowserRecoveryError(f"Failed to open a NotebookLM tab: HTTP {response.status_code}")


def execute_cdp_command(ws_url: str, method: str, params: dict | None = None) -> dict:
    """Execute one CDP command over a short-lived WebSocket."""
    ws = websocket.create_connection(ws_url, timeout=30)
    try:
        ws.send(json.dumps({"id": 1, "method": method, "params": params or {}}))
        while True:
            response = json.loads(ws.recv())
            if response.get("id") == 1:
                if "error" in response:
                    raise BrowserRecoveryError(f"CDP {method} failed: {response['error']}")
                return response.get("result", {})
    finally:
        ws.close()


def get_page_cookies(ws_url: str) -> dict[str, str]:
    result = execute_cdp_command(ws_url, "Network.getCookies", {"urls": [NOTEBOOKLM_URL, "https://accounts.google.com/"]})
    return parse_cookies_from_chrome_format(result.get("cookies", []))


def evaluate(ws_url: str, expression: str) -> str:
    result = execute_cdp_command(ws_url, "Runtime.evaluate", {"expression": expression})
    value = result.get("result", {}).get("value", "")
    return value if isinstance(value, str) else ""


def get_current_url(ws_url: str) -> str:
    return evaluate(ws_url, "window.location.href")


def get_page_html(ws_url: str) -> str:
    return evaluate(ws_url, "document.documentElement.outerHTML")


def is_logged_in_url(url: str) -> bool:
    """NotebookLM redirects to accounts.google.com when the login is gone."""
    return "notebooklm.google.com" in url and LOGIN_HOST not in url


def extract_credentials(
    ws_url: str,
    timeout: float,
    poll_interval: float = COOKIE_POLL_INTERVAL,
) -> CredentialRecord:
    """Poll the page until the required cookies exist, then scrape its tokens."""
    deadline = time.monotonic() + timeout
    cookies: dict[str, str] = {}
    current_url = ""

    while True:
        current_url = get_current_url(ws_url)
        if is_logged_in_url(current_url):
            cookies = get_page_cookies(ws_url)
            if validate_cookies(cookies):
                break
        if time.monotonic() >= deadline:
            missing = ", ".join(missing_cookies(cookies)) or "login"
            raise BrowserRecoveryError(f"Timed out after {timeout:g}s waiting for {missing} (at {current_url or 'no page'})")
        time.sleep(poll_interval)

    html = get_page_html(ws_url)
    record = CredentialRecord(
        cookies=cookies,
        csrf_token=extract_csrf_from_page(html) or "",
        session_id=extract_session_id_from_page(html) or "",
        bl=extract_bl_from_page(html),
        extracted_at=time.time(),
    )
    if not record.csrf_token:
        logger.warning("Could not extract CSRF token from page; it will be re-fetched on the next call")
    return record


class BrowserRecovery:
    """Reacquire credentials by driving Chrome; saves every record it returns."""

    def __init__(
        self,
        store: CredentialStore,
        port: int | None = None,
        headless_timeout: float = HEADLESS_TIMEOUT,
        interactive_timeout: float = INTERACTIVE_TIMEOUT,
        poll_interval: float = COOKIE_POLL_INTERVAL,
    ):
        self.store = store
        self.port = port or int(os.environ.get("NOTEBOOKLM_CDP_PORT", CDP_DEFAULT_PORT))
        self.headless_timeout = headless_timeout
        self.interactive_timeout = interactive_timeout
        self.poll_interval = poll_interval

    async def recover_headless(self) -> CredentialRecord:
        if not has_chrome_profile():
            raise BrowserRecoveryError("No saved Chrome login. Run `notebooklm-rpc-auth` once to create one.")
        if is_profile_locked():
            raise BrowserRecoveryError("The NotebookLM Chrome profile is already in use")
        logger.info("Refreshing cookies with headless Chrome...")
        return await asyncio.to_thread(self.run, True, self.headless_timeout)

    async def recover_interactive(self) -> CredentialRecord:
        if is_profile_locked():
            raise BrowserRecoveryError("The NotebookLM Chrome profile is already in use. Close that window and retry.")
        logger.warning("Opening Chrome: please log in to NotebookLM (waiting up to %gs)", self.interactive_timeout)
        return await asyncio.to_thread(self.run, False, self.interactive_timeout)

    def run(self, headless: bool, timeout: float) -> CredentialRecord:
        """Blocking recovery flow. Chrome is always torn down."""
        mode = "headless" if headless else "interactive"
        process = None
        try:
            process = launch_chrome(self.port, headless=headless)
            wait_for_debugger(self.port, process)
            page = find_or_create_notebooklm_page(self.port)
            ws_url = page.get("webSocketDebuggerUrl")
            if not ws_url:
                raise BrowserRecoveryError("NotebookLM tab has no WebSocket debugger URL")
            record = extract_credentials(ws_url, timeout, self.poll_interval)
            self.store.save(record)
        except (OSError, httpx.HTTPError, websocket.WebSocketException, ValueError) as e:
            raise BrowserRecoveryError(f"{mode} recovery failed: {e}") from e
        finally:
            if process is not None:
                terminate_chrome(process)

        logger.info("Credentials refreshed via %s Chrome (%d cookies)", mode, len(record.cookies))
        return record
