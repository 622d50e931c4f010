"""Credential record and its file-backed store.

A record holds the Google cookies plus the page tokens (CSRF ``at`` value,
``f.sid`` session id and ``bl`` build label) scraped from the NotebookLM
page. Cookies are the only hard requirement: the tokens can always be
re-extracted from the page while the cookies are alive.
"""

import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path

from .constants import REQUIRED_COOKIES

logger = logging.getLogger("notebooklm_rpc.auth")

HOME_ENV = "NOTEBOOKLM_RPC_HOME"


@dataclass
class CredentialRecord:
    """Authentication state for NotebookLM.

    Only cookies are required. The CSRF token, session id and build label
    are auto-extracted from the NotebookLM page when missing.
    """
    cookies: dict[str, str]
    csrf_token: str = ""
    session_id: str = ""
    bl: str | None = None
    extracted_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "cookies": self.cookies,
            "csrf_token": self.csrf_token,
            "session_id": self.session_id,
            "bl": self.bl,
            "extracted_at": self.extracted_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CredentialRecord":
        return cls(
            cookies=dict(data["cookies"]),
            csrf_token=data.get("csrf_token") or "",
            session_id=data.get("session_id") or "",
            bl=data.get("bl") or None,
            extracted_at=float(data.get("extracted_at") or 0),
        )

    @property
    def is_usable(self) -> bool:
        return validate_cookies(self.cookies)

    def is_expired(self, max_age_hours: float = 168) -> bool:
        """Check if the cookies are older than max_age_hours (one week by default)."""
        return time.time() - self.extracted_at > max_age_hours * 3600

    @property
    def cookie_header(self) -> str:
        return "; ".join(f"{k}={v}" for k, v in self.cookies.items())

    def merge_set_cookies(self, set_cookie_headers: list[str]) -> bool:
        """Merge raw ``Set-Cookie`` header values into the cookie jar.

        Returns True if any cookie value changed.
        """
        changed = False
        for header in set_cookie_headers:
            name, sep, value = header.split(";", 1)[0].partition("=")
            name = name.strip()
            if not sep or not name:
                continue
            value = value.strip()
            if self.cookies.get(name) != value:
                self.cookies[name] = value
                changed = True
        return changed


def get_data_dir() -> Path:
    """Directory holding auth.json and the Chrome profile."""
    override = os.environ.get(HOME_ENV)
    data_dir = Path(override).expanduser() if override else Path.home() / ".notebooklm-rpc"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_cache_path() -> Path:
    return get_data_dir() / "auth.json"


class CredentialStore:
    """Durable JSON storage for one CredentialRecord.

    Every save replaces the whole document. Records missing a required
    cookie are treated as absent on load.
    """

    def __init__(self, path: Path | str | None = None):
        self._path = Path(path) if path else None

    @property
    def path(self) -> Path:
        return self._path or get_cache_path()

    def load(self) -> CredentialRecord | None:
        path = self.path
        if not path.exists():
            return None

        try:
            with open(path) as f:
                record = CredentialRecord.from_dict(json.load(f))
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Failed to load cached credentials from %s: %s", path, e)
            return None

        if not record.is_usable:
            missing = ", ".join(missing_cookies(record.cookies))
            logger.warning("Cached credentials at %s are missing required cookies: %s", path, missing)
            return None

        if record.is_expired():
            logger.info("Cached credentials are older than 1 week. They may still work.")
        return record

    def save(self, record: CredentialRecord) -> None:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(record.to_dict(), f, indent=2)
        os.replace(tmp_path, path)
        logger.debug("Credentials saved to %s", path)


def load_env_credentials() -> CredentialRecord | None:
    """Build a record from NOTEBOOKLM_COOKIES / _CSRF_TOKEN / _SESSION_ID."""
    cookie_header = os.environ.get("NOTEBOOKLM_COOKIES", "").strip()
    if not cookie_header:
        return None

    return CredentialRecord(
        cookies=parse_cookie_header(cookie_header),
        csrf_token=os.environ.get("NOTEBOOKLM_CSRF_TOKEN", ""),
        session_id=os.environ.get("NOTEBOOKLM_SESSION_ID", ""),
        bl=os.environ.get("NOTEBOOKLM_BL") or None,
    )


def load_credentials(store: CredentialStore) -> CredentialRecord | None:
    """Environment variables win over the cached file."""
    record = load_env_credentials()
    if record is not None:
        if not record.is_usable:
            logger.warning(
                "NOTEBOOKLM_COOKIES is missing required cookies: %s",
                ", ".join(missing_cookies(record.cookies)),
            )
        return record
    return store.load()


# ============================================================================
# Page token extraction
# ============================================================================

_CSRF_PATTERNS = (r'"SNlM0e":"([^"]+)"', r'at=([^&"]+)')
_SESSION_ID_PATTERNS = (r'"FdrFJe":"([^"]+)"', r'f\.sid=(\d+)')
_BL_PATTERNS = (r'"cfb2h":"([^"]+)"',)


def _first_match(patterns: tuple[str, ...], html: str) -> str | None:
    for pattern in patterns:
        match = re.search(pattern, html)
        if match:
            return match.group(1)
    return None


def extract_csrf_from_page(html: str) -> str | None:
    """CSRF token lives in WIZ_global_data.SNlM0e."""
    return _first_match(_CSRF_PATTERNS, html)


def extract_session_id_from_page(html: str) -> str | None:
    return _first_match(_SESSION_ID_PATTERNS, html)


def extract_bl_from_page(html: str) -> str | None:
    return _first_match(_BL_PATTERNS, html)


# ============================================================================
# Cookie helpers
# ============================================================================

def parse_cookie_header(cookie_header: str) -> dict[str, str]:
    """Parse a ``name=value; name2=value2`` header into a dict."""
    cookies = {}
    for part in cookie_header.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name.strip():
            cookies[name.strip()] = value.strip()
    return cookies


def parse_cookies_from_chrome_format(cookies_list: list[dict]) -> dict[str, str]:
    """Parse cookies from Chrome DevTools ``Network.getCookies`` format."""
    result = {}
    for cookie in cookies_list:
        name = cookie.get("name", "")
        if name:
            result[name] = cookie.get("value", "")
    return result


def missing_cookies(cookies: dict[str, str]) -> list[str]:
    return [name for name in REQUIRED_COOKIES if name not in cookies]


def validate_cookies(cookies: dict[str, str]) -> bool:
    """Check that every required cookie is present."""
    return not missing_cookies(cookies)
