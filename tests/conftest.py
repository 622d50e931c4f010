import json
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from notebooklm_rpc.auth import CredentialRecord, CredentialStore
from notebooklm_rpc.client import NotebookLMClient
from notebooklm_rpc.constants import REQUIRED_COOKIES, XSSI_PREFIX
from notebooklm_rpc.session import RpcSession

COOKIES = {name: f"{name.lower()}-value" for name in REQUIRED_COOKIES}

PAGE_HTML = (
    "<html><script>window.WIZ_global_data = "
    '{"SNlM0e":"csrf-page","FdrFJe":"sid-page","cfb2h":"boq_test_bl"};'
    "</script></html>"
)

SENTINEL = object()


def make_record(**overrides) -> CredentialRecord:
    values = {
        "cookies": dict(COOKIES),
        "csrf_token": "csrf-1",
        "session_id": "sid-1",
        "extracted_at": 1000.0,
    }
    values.update(overrides)
    return CredentialRecord(**values)


def frame(*items) -> str:
    """One length-prefixed chunk, as the server frames it."""
    doc = json.dumps(list(items))
    return f"{XSSI_PREFIX}\n\n{len(doc)}\n{doc}\n"


def result_item(rpc_id: str, payload) -> list:
    return ["wrb.fr", rpc_id, json.dumps(payload), None, None, None, "generic"]


def sentinel_item(rpc_id: str) -> list:
    return ["wrb.fr", rpc_id, None, None, None, [16], "generic"]


def rpc_id_of(request: httpx.Request) -> str:
    return request.url.params.get("rpcids", "rpc-query")


class ScriptedServer:
    """MockTransport handler replaying one scripted reply per POST.

    A reply is SENTINEL, a callable taking the request, or a payload that is
    wrapped as a result item for the requested call. The last reply repeats.
    GETs serve the NotebookLM page.
    """

    def __init__(self, *replies, page_html=PAGE_HTML):
        self.replies = list(replies)
        self.page_html = page_html
        self.posts: list[httpx.Request] = []
        self.gets: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.gets.append(request)
            return httpx.Response(200, text=self.page_html)

        self.posts.append(request)
        reply = self.replies[min(len(self.posts), len(self.replies)) - 1]
        if reply is SENTINEL:
            return httpx.Response(200, text=frame(sentinel_item(rpc_id_of(request))))
        if callable(reply):
            return reply(request)
        return httpx.Response(200, text=frame(result_item(rpc_id_of(request), reply)))

    def body(self, index: int) -> str:
        return self.posts[index].content.decode()


def make_session(handler, record=None, store=None, recovery=None) -> RpcSession:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RpcSession(
        record or make_record(),
        store=store,
        recovery=recovery,
        http_client=http_client,
        settle_delay=0,
    )


def make_client(handler, **kwargs) -> NotebookLMClient:
    return NotebookLMClient(make_session(handler, **kwargs))


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "auth.json")


@pytest.fixture
def recovered_record():
    return make_record(csrf_token="csrf-2", session_id="sid-2", extracted_at=time.time())


@pytest.fixture
def recovery(recovered_record):
    channel = MagicMock()
    channel.recover_headless = AsyncMock(return_value=recovered_record)
    channel.recover_interactive = AsyncMock(return_value=recovered_record)
    return channel


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep the default credential store and env credentials out of tests."""
    monkeypatch.setenv("NOTEBOOKLM_RPC_HOME", str(tmp_path / "home"))
    for name in ("NOTEBOOKLM_COOKIES", "NOTEBOOKLM_CSRF_TOKEN", "NOTEBOOKLM_SESSION_ID", "NOTEBOOKLM_BL"):
        monkeypatch.delenv(name, raising=False)
