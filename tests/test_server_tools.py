import pytest
from starlette.testclient import TestClient

from notebooklm_rpc import __version__
from notebooklm_rpc.client import QueryResult
from notebooklm_rpc.server import NotebookTools, create_server

from conftest import SENTINEL, ScriptedServer, make_client, make_record

NOTEBOOKS = [[
    ["Mine", [], "nb-1", None, None, [1, True]],
    ["Theirs", [], "nb-2", None, None, [2, False]],
]]


def make_tools(*replies, **kwargs):
    server = ScriptedServer(*replies)
    return NotebookTools(client=make_client(server, **kwargs)), server


@pytest.mark.asyncio
async def test_notebook_list_counts():
    tools, _ = make_tools(NOTEBOOKS)
    result = await tools.notebook_list()

    assert result["status"] == "success"
    assert result["count"] == 2
    assert result["owned_count"] == 1
    assert result["shared_by_me_count"] == 1
    assert [nb["title"] for nb in result["notebooks"]] == ["Mine", "Theirs"]


@pytest.mark.asyncio
async def test_auth_failure_becomes_error_payload():
    tools, _ = make_tools(SENTINEL)
    result = await tools.notebook_list()

    assert result["status"] == "error"
    assert "RPC Error 16" in result["error"]


@pytest.mark.asyncio
async def test_validation_error_becomes_error_payload():
    tools, server = make_tools([])
    result = await tools.audio_overview_create("nb-1", source_ids=["s1"], format="bogus", confirm=True)

    assert result["status"] == "error"
    assert "Unknown name 'bogus'" in result["error"]
    assert server.posts == []


@pytest.mark.asyncio
async def test_destructive_tools_require_confirmation():
    tools, server = make_tools([])

    assert (await tools.notebook_delete("nb-1"))["status"] == "pending_confirmation"
    assert (await tools.source_delete("src-1"))["status"] == "pending_confirmation"
    assert (await tools.studio_delete("nb-1", "art-1"))["status"] == "pending_confirmation"
    pending = await tools.audio_overview_create("nb-1")
    assert pending["status"] == "pending_confirmation"
    assert pending["settings"]["source_ids"] == "all sources"
    assert server.posts == []


@pytest.mark.asyncio
async def test_confirmed_delete():
    tools, server = make_tools([])
    result = await tools.notebook_delete("nb-1", confirm=True)

    assert result["status"] == "success"
    assert server.posts[0].url.params["rpcids"] == "WWINqb"


@pytest.mark.asyncio
async def test_studio_defaults_to_all_sources():
    notebook = ["Nb", [[["s1"], "One", []], [["s2"], "Two", []]], "nb-1", None, None, [1]]
    tools, server = make_tools(notebook, [["art-1", "Audio", 1, [], 1]])

    result = await tools.audio_overview_create("nb-1", confirm=True)

    assert result["status"] == "success"
    assert result["artifact_id"] == "art-1"
    assert result["generation_status"] == "pending"
    assert [r.url.params["rpcids"] for r in server.posts] == ["rLM1Ne", "R7cb6c"]


@pytest.mark.asyncio
async def test_query_accepts_json_encoded_source_ids():
    tools, _ = make_tools([])

    async def fake_query(notebook_id, query, source_ids=None, conversation_id=None, timeout=None):
        assert source_ids == ["s1", "s2"]
        return QueryResult("Answer", "conv-1", 1, False)

    tools.client.query = fake_query
    result = await tools.notebook_query("nb-1", "q", source_ids='["s1", "s2"]')
    assert result == {
        "status": "success",
        "answer": "Answer",
        "conversation_id": "conv-1",
        "turn_number": 1,
        "is_follow_up": False,
    }


@pytest.mark.asyncio
async def test_save_auth_tokens_adopts_credentials(store):
    tools, _ = make_tools(NOTEBOOKS, store=store)
    tools.store = store
    header = "; ".join(f"{k}={v}" for k, v in make_record().cookies.items())

    result = await tools.save_auth_tokens(
        header,
        request_body="f.req=x&at=csrf%3Auser&",
        request_url="https://notebooklm.google.com/_/x?f.sid=-42&rt=c",
    )

    assert result["status"] == "success"
    assert result["extracted_csrf"] and result["extracted_session_id"]
    assert tools.client.session.record.csrf_token == "csrf:user"
    assert tools.client.session.record.session_id == "-42"
    assert store.load().csrf_token == "csrf:user"


@pytest.mark.asyncio
async def test_save_auth_tokens_rejects_missing_cookies():
    tools, _ = make_tools([])
    result = await tools.save_auth_tokens("SID=only")
    assert result["status"] == "error"
    assert "HSID" in result["error"]


@pytest.mark.asyncio
async def test_tools_without_credentials_report_login_hint():
    tools = NotebookTools()
    result = await tools.notebook_list()
    assert result["status"] == "error"
    assert "notebooklm-rpc-auth" in result["error"]


def test_health_route():
    mcp = create_server(NotebookTools(client=make_client(ScriptedServer([]))))
    response = TestClient(mcp.http_app()).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "notebooklm-rpc", "version": __version__}
