"""batchexecute wire codec and result extraction.

Request body::

    f.req=[[["<rpc_id>","<params json>",null,"generic"]]]&at=<csrf>&f.sid=<sid>&

Response body::

    )]}'

    <byte_count>
    [["wrb.fr","<rpc_id>","<payload json>",null,null,null,"generic"],["af.httprm",...]]
    <byte_count>
    [["di",123],["e",4,null,null,456]]

Payloads are schema-less positional trees; use :func:`dig` and friends to
read them.
"""

import json
import logging
import urllib.parse
from collections.abc import Callable, Iterator
from typing import Any

from .constants import (
    AUTH_EXPIRED_CODE,
    BASE_URL,
    BATCHEXECUTE_PATH,
    QUERY_PATH,
    RESULT_MARKER,
    SESSION_ROTATION_MARKER,
    XSSI_PREFIX,
)
from .errors import AuthenticationError

logger = logging.getLogger("notebooklm_rpc.api")


# =============================================================================
# Encoding
# =============================================================================

def _compact(value: Any) -> str:
    # Chrome sends compact JSON, no spaces
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _form_encode(fields: list[tuple[str, str]]) -> str:
    body = "&".join(f"{name}={urllib.parse.quote(value, safe='')}" for name, value in fields)
    # trailing & matches what the web UI sends
    return body + "&"


def _auth_fields(csrf_token: str, session_id: str) -> list[tuple[str, str]]:
    fields = []
    if csrf_token:
        fields.append(("at", csrf_token))
    if session_id:
        fields.append(("f.sid", session_id))
    return fields


def encode_request_body(rpc_id: str, params: Any, csrf_token: str = "", session_id: str = "") -> str:
    """Encode one batchexecute call into a form body."""
    f_req = [[[rpc_id, _compact(params), None, "generic"]]]
    return _form_encode([("f.req", _compact(f_req)), *_auth_fields(csrf_token, session_id)])


def encode_query_body(params: Any, csrf_token: str = "", session_id: str = "") -> str:
    """Encode a streamed query call; its envelope is ``[null, params_json]``."""
    f_req = [None, _compact(params)]
    return _form_encode([("f.req", _compact(f_req)), *_auth_fields(csrf_token, session_id)])


def build_rpc_url(rpc_id: str, source_path: str, bl: str, reqid: int, session_id: str = "", hl: str = "en") -> str:
    params = {
        "rpcids": rpc_id,
        "source-path": source_path,
        "bl": bl,
        "hl": hl,
        "_reqid": str(reqid),
        "rt": "c",
    }
    if session_id:
        params["f.sid"] = session_id
    return f"{BASE_URL}{BATCHEXECUTE_PATH}?{urllib.parse.urlencode(params)}"


def build_query_url(bl: str, reqid: int, session_id: str = "", hl: str = "en") -> str:
    params = {
        "bl": bl,
        "hl": hl,
        "_reqid": str(reqid),
        "rt": "c",
    }
    if session_id:
        params["f.sid"] = session_id
    return f"{BASE_URL}{QUERY_PATH}?{urllib.parse.urlencode(params)}"


# =============================================================================
# Decoding
# =============================================================================

def decode_response(response_text: str) -> list[Any]:
    """Decode a framed response into its JSON fragments, in arrival order.

    A frame is either a byte-count line followed by a JSON line, or a bare
    JSON line. The byte count is advisory and ignored. Lines that fail to
    parse are noise and are skipped.
    """
    text = response_text
    if text.startswith(XSSI_PREFIX):
        text = text[len(XSSI_PREFIX):]

    lines = text.strip().split("\n")
    fragments = []
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        i += 1
        if not line:
            continue

        if line.isdigit():
            # Next non-blank line is the JSON document
            while i < len(lines) and not lines[i].strip():
                i += 1
            if i >= len(lines):
                break
            line = lines[i].strip()
            i += 1

        try:
            fragments.append(json.loads(line))
        except json.JSONDecodeError:
            logger.debug("Skipping unparseable frame: %.120s", line)

    return fragments


def is_auth_failure(item: list) -> bool:
    """True if a result item carries the authentication-expired discriminator.

    Signature: ``["wrb.fr", "<rpc_id>", null, null, null, [16], "generic"]``
    """
    return len(item) > 5 and isinstance(item[5], list) and AUTH_EXPIRED_CODE in item[5]


def item_payload(item: list) -> Any:
    """Parse the payload slot of a result item.

    Strings are nested JSON (raw string if that fails); anything else is
    returned unchanged.
    """
    payload = item[2]
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            return payload
    return payload


def iter_result_items(
    fragments: list[Any],
    rpc_id: str | None = None,
    on_session_id: Callable[[str], None] | None = None,
) -> Iterator[list]:
    """Yield ``wrb.fr`` result items for ``rpc_id`` (any id if None).

    ``af.httprm`` session rotations are reported through ``on_session_id``
    as they are encountered, whichever call they arrive with.
    """
    for fragment in fragments:
        if not isinstance(fragment, list):
            continue
        for item in fragment:
            if not isinstance(item, list) or len(item) < 3:
                continue

            if item[0] == SESSION_ROTATION_MARKER:
                if isinstance(item[2], str) and item[2] and on_session_id is not None:
                    on_session_id(item[2])
                continue

            if item[0] != RESULT_MARKER:
                continue
            if rpc_id is not None and item[1] != rpc_id:
                continue
            yield item


def extract_rpc_result(
    fragments: list[Any],
    rpc_id: str | None,
    on_session_id: Callable[[str], None] | None = None,
) -> Any:
    """Return the payload of the first result item for ``rpc_id``, or None.

    The whole fragment sequence is scanned so that session rotations
    arriving after the result are still applied.

    Raises:
        AuthenticationError: If the result item carries the sentinel code.
    """
    first = None
    for item in iter_result_items(fragments, rpc_id, on_session_id):
        if first is None:
            first = item

    if first is None:
        return None
    if is_auth_failure(first):
        raise AuthenticationError("RPC Error 16: Authentication expired")
    return item_payload(first)


def extract_all_results(
    fragments: list[Any],
    rpc_id: str | None = None,
    on_session_id: Callable[[str], None] | None = None,
) -> list[Any]:
    """Payloads of every result item, for streamed endpoints.

    Raises:
        AuthenticationError: If any item carries the sentinel code.
    """
    items = list(iter_result_items(fragments, rpc_id, on_session_id))
    if any(is_auth_failure(item) for item in items):
        raise AuthenticationError("RPC Error 16: Authentication expired")
    return [item_payload(item) for item in items]


# =============================================================================
# Tolerant positional accessors
# =============================================================================

def dig(tree: Any, *path: int, default: Any = None) -> Any:
    """Read ``tree[p0][p1]...``, returning ``default`` on any shape drift."""
    node = tree
    for index in path:
        if not isinstance(node, list):
            return default
        try:
            node = node[index]
        except IndexError:
            return default
    return default if node is None else node


def dig_str(tree: Any, *path: int, default: str | None = None) -> str | None:
    value = dig(tree, *path)
    return value if isinstance(value, str) else default


def dig_list(tree: Any, *path: int) -> list:
    value = dig(tree, *path)
    return value if isinstance(value, list) else []


def dig_int(tree: Any, *path: int, default: int | None = None) -> int | None:
    value = dig(tree, *path)
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def unwrap_id(value: Any) -> str | None:
    """Ids arrive either bare or wrapped as ``[id]``."""
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, str) and value else None


# =============================================================================
# Debug helpers
# =============================================================================

def format_debug_json(data: Any, max_length: int = 2000) -> str:
    """Pretty-print data for debug logging, truncated."""
    try:
        formatted = json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        formatted = str(data)
    if len(formatted) > max_length:
        return formatted[:max_length] + "\n  ... (truncated)"
    return formatted


def decode_request_body(body: str) -> dict[str, Any]:
    """Decode a form body back into its params for debug display. The CSRF token is masked."""
    parsed = urllib.parse.parse_qs(body.rstrip("&"))
    result: dict[str, Any] = {}

    if "f.req" in parsed:
        raw = parsed["f.req"][0]
        try:
            f_req = json.loads(raw)
        except json.JSONDecodeError:
            f_req = raw
        result["f.req"] = f_req

        # batchexecute: [[[rpc_id, params_json, null, "generic"]]]; query: [null, params_json]
        params_json = dig(f_req, 0, 0, 1) or dig(f_req, 1)
        if isinstance(params_json, str):
            try:
                result["params"] = json.loads(params_json)
            except json.JSONDecodeError:
                result["params"] = params_json

    if "at" in parsed:
        result["at"] = "(csrf_token)"
    return result
