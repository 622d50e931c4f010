#!/usr/bin/env python3
"""CLI tool to authenticate with NotebookLM.

Drives a dedicated Chrome profile over the DevTools Protocol, waits for a
Google login, and saves cookies plus page tokens to
``~/.notebooklm-rpc/auth.json``. Once that profile is logged in, the server
can refresh an expired session on its own with headless Chrome.

Usage:
    notebooklm-rpc-auth                       # Log in via a Chrome window
    notebooklm-rpc-auth --headless            # Refresh using the saved login
    notebooklm-rpc-auth --file ~/cookies.txt  # Import a copied cookie header
"""

import argparse
import asyncio
import sys
import time
from pathlib import Path

from .auth import (
    CredentialRecord,
    CredentialStore,
    missing_cookies,
    parse_cookie_header,
)
from .browser import CDP_DEFAULT_PORT, INTERACTIVE_TIMEOUT, BrowserRecovery
from .constants import REQUIRED_COOKIES
from .errors import NotebookLMError

FILE_INSTRUCTIONS = """Follow these steps to extract and save your cookies:

  1. Open Chrome and go to: https://notebooklm.google.com
  2. Make sure you're logged in
  3. Press F12 (or Cmd+Option+I on Mac) to open DevTools
  4. Click the 'Network' tab and filter for: batchexecute
  5. Click on any notebook to trigger a request
  6. Select a 'batchexecute' request and find 'cookie:' under Request Headers
  7. Right-click the cookie VALUE and select 'Copy value'
  8. Paste it into a text file and save
"""


def read_cookie_file(path: Path) -> dict[str, str]:
    """Parse cookies saved to a file, as one header or one name=value per line.

    Lines starting with # are ignored.
    """
    text = path.read_text(encoding="utf-8")
    cookie_lines = [line.strip() for line in text.splitlines() if line.strip() and not line.strip().startswith("#")]
    return parse_cookie_header("; ".join(cookie_lines))


def run_file_cookie_entry(store: CredentialStore, cookie_file: str | None = None) -> CredentialRecord | None:
    """Import cookies from a file; page tokens are fetched on first use."""
    print("NotebookLM RPC - Cookie File Import")
    print("=" * 50)
    print()

    if not cookie_file:
        print(FILE_INSTRUCTIONS)
        try:
            cookie_file = input("Enter the path to your cookie file: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nCancelled.")
            return None
        if not cookie_file:
            print("ERROR: No file path provided.")
            return None

    path = Path(cookie_file).expanduser()
    print(f"Reading cookies from: {path}")
    try:
        cookies = read_cookie_file(path)
    except OSError as e:
        print(f"ERROR: Could not read file: {e}")
        return None

    if not cookies:
        print("ERROR: Could not parse any cookies from the file.")
        print("Expected format: SID=xxx; HSID=xxx; SSID=xxx; ...")
        return None

    missing = missing_cookies(cookies)
    if missing:
        print(f"ERROR: Required cookies missing: {', '.join(missing)}")
        print(f"Required: {', '.join(REQUIRED_COOKIES)}")
        return None

    record = CredentialRecord(cookies=cookies, extracted_at=time.time())
    store.save(record)
    print()
    print(f"SUCCESS: {len(cookies)} cookies saved to {store.path}")
    return record


def run_browser_auth(store: CredentialStore, port: int, headless: bool, timeout: float) -> CredentialRecord | None:
    recovery = BrowserRecovery(store, port=port, interactive_timeout=timeout)
    if headless:
        print("Refreshing credentials with headless Chrome...")
        method = recovery.recover_headless
    else:
        print("Opening Chrome. Log in to NotebookLM in the window that appears.")
        print(f"Waiting up to {timeout:g}s...")
        method = recovery.recover_interactive

    try:
        record = asyncio.run(method())
    except NotebookLMError as e:
        print(f"ERROR: {e}")
        if headless:
            print("Run `notebooklm-rpc-auth` without --headless to log in again.")
        return None

    print()
    print("=" * 50)
    print("SUCCESS!")
    print("=" * 50)
    print(f"Cookies saved: {len(record.cookies)} cookies")
    print(f"CSRF token: {'found' if record.csrf_token else 'will be fetched on first use'}")
    print(f"Cache location: {store.path}")
    print()
    print("Start the server with: notebooklm-rpc")
    return record


def show_tokens(store: CredentialStore) -> int:
    """Print a summary of the cached record without secret values."""
    record = store.load()
    if record is None:
        print(f"No valid cached tokens at {store.path}")
        return 1

    age_hours = (time.time() - record.extracted_at) / 3600
    print(f"Cache location: {store.path}")
    print(f"Cookies: {len(record.cookies)} ({', '.join(sorted(record.cookies))})")
    print(f"CSRF token: {'present' if record.csrf_token else 'missing'}")
    print(f"Session ID: {'present' if record.session_id else 'missing'}")
    print(f"Build label: {record.bl or '(default)'}")
    print(f"Age: {age_hours:.1f}h{' (stale)' if record.is_expired() else ''}")
    return 0


def export_cookies(store: CredentialStore, destination: str) -> int:
    """Write the cached cookies as a Cookie header string, e.g. for NOTEBOOKLM_COOKIES."""
    record = store.load()
    if record is None:
        print(f"No valid cached tokens at {store.path}")
        return 1

    path = Path(destination).expanduser()
    path.write_text(record.cookie_header, encoding="utf-8")
    print(f"Successfully exported {len(record.cookies)} cookies to {path}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Authenticate with NotebookLM",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
MODES:
  (default)      Open Chrome and wait for you to log in
  --headless     Refresh using the login saved in the dedicated Chrome profile
  --file [PATH]  Import a cookie header copied from DevTools

EXAMPLES:
  notebooklm-rpc-auth
  notebooklm-rpc-auth --file ~/cookies.txt
  notebooklm-rpc-auth --export-cookies cookies.txt

After authentication, start the server with: notebooklm-rpc
""",
    )
    parser.add_argument(
        "--file",
        nargs="?",
        const="",
        metavar="PATH",
        help="Import cookies from file. Shows instructions if no path given.",
    )
    parser.add_argument("--headless", action="store_true", help="Refresh without opening a window")
    parser.add_argument(
        "--port",
        type=int,
        default=CDP_DEFAULT_PORT,
        help=f"Chrome DevTools port (default: {CDP_DEFAULT_PORT})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=INTERACTIVE_TIMEOUT,
        help=f"Seconds to wait for login (default: {INTERACTIVE_TIMEOUT:g})",
    )
    parser.add_argument("--show-tokens", action="store_true", help="Summarize cached tokens (no secrets)")
    parser.add_argument("--export-cookies", metavar="PATH", help="Write cached cookies as a header string")
    args = parser.parse_args()

    store = CredentialStore()

    if args.show_tokens:
        return show_tokens(store)
    if args.export_cookies:
        return export_cookies(store, args.export_cookies)

    try:
        if args.file is not None:
            record = run_file_cookie_entry(store, args.file or None)
        else:
            record = run_browser_auth(store, args.port, args.headless, args.timeout)
    except KeyboardInterrupt:
        print("\nCancelled.")
        return 1
    return 0 if record else 1


if __name__ == "__main__":
    sys.exit(main())
