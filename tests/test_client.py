import json

import httpx
import pytest

from notebooklm_rpc import constants, rpc
from notebooklm_rpc.client import parse_query_answer, parse_timestamp
from notebooklm_rpc.errors import NotebookLMError, ValidationError

from conftest import SENTINEL, ScriptedServer, frame, make_client, sentinel_item

NOTEBOOK_META = [1, False, True, None, None, [1700000000, 0], None, None, [1690000000, 0]]
SOURCE_ENTRY = [["src-1"], "Design doc", [["drive-doc-1"], None, None, None, 1]]


def request_params(server: ScriptedServer, index: int = -1):
    return rpc.decode_request_body(server.body(index))["params"]


def query_reply(*payloads):
    """Streamed query reply: one chunk per payload."""
    def respond(request):
        chunks = "".join(
            frame(["wrb.fr", "rpc-query", json.dumps(payload), None, None, None, "generic"])
            for payload in payloads
        )
        return httpx.Response(200, text=chunks)
    return respond


def query_sentinel(request):
    return httpx.Response(200, text=frame(sentinel_item("rpc-query")))


class TestParsers:
    def test_parse_timestamp(self):
        assert parse_timestamp([1700000000, 0]) == "2023-11-14T22:13:20Z"
        assert parse_timestamp(None) is None
        assert parse_timestamp(["x"]) is None

    def test_longest_answer_wins(self):
        chunks = [
            [["Partial", None, None, None, [1]]],
            [["Partial answer, complete", None, None, None, [1]]],
        ]
        assert parse_query_answer(chunks) == ("Partial answer, complete", None)

    def test_thinking_used_only_without_answer(self):
        thinking = [["Let me think about this at length", None, None, None, [2]]]
        assert parse_query_answer([thinking]) == ("Let me think about this at length", None)
        assert parse_query_answer([thinking, [["Short", None, None, None, [1]]]])[0] == "Short"

    def test_nested_conversation_id(self):
        head = ["Answer", None, None, None, [1], None, None, None, None, None, "conv-nested"]
        assert parse_query_answer([[head]]) == ("Answer", "conv-nested")

    def test_flat_shape(self):
        assert parse_query_answer([["This is the answer", None, 1, None, "conv-123"]]) == ("This is the answer", "conv-123")

    def test_malformed_chunks_are_ignored(self):
        assert parse_query_answer([None, "text", [None], []]) == ("", None)


class TestNotebooks:
    @pytest.mark.asyncio
    async def test_list_notebooks(self):
        server = ScriptedServer([[["Notebook 1", [SOURCE_ENTRY], "nb-id-1", "📘", None, NOTEBOOK_META]]])
        client = make_client(server)

        notebooks = await client.list_notebooks()

        assert len(notebooks) == 1
        notebook = notebooks[0]
        assert notebook.title == "Notebook 1"
        assert notebook.id == "nb-id-1"
        assert notebook.emoji == "📘"
        assert notebook.is_owned and not notebook.is_shared
        assert notebook.created_at == "2023-07-22T04:26:40Z"
        assert notebook.modified_at == "2023-11-14T22:13:20Z"
        assert notebook.url == "https://notebooklm.google.com/notebook/nb-id-1"
        assert notebook.sources[0].id == "src-1"
        assert notebook.sources[0].source_type == "google_docs"
        assert notebook.sources[0].can_sync
        assert request_params(server) == [None, 1, None, [2]]

    @pytest.mark.asyncio
    async def test_list_notebooks_tolerates_drift(self):
        client = make_client(ScriptedServer([[["No id"], None, ["Ok", None, "nb-2"]]]))
        notebooks = await client.list_notebooks()
        assert [nb.id for nb in notebooks] == ["nb-2"]

    @pytest.mark.asyncio
    async def test_get_notebook_uses_notebook_path(self):
        server = ScriptedServer([["Notebook 1", [], "nb-id-1", None, None, NOTEBOOK_META]])
        notebook = await make_client(server).get_notebook("nb-id-1")

        assert notebook.title == "Notebook 1"
        assert server.posts[0].url.params["source-path"] == "/notebook/nb-id-1"

    @pytest.mark.asyncio
    async def test_describe_notebook(self):
        server = ScriptedServer([["A summary"], [[["What is it?", "Explain it"]]]])
        described = await make_client(server).describe_notebook("nb-1")

        assert described == {
            "summary": "A summary",
            "suggested_topics": [{"question": "What is it?", "prompt": "Explain it"}],
        }

    @pytest.mark.asyncio
    async def test_configure_chat_custom_requires_prompt(self):
        client = make_client(ScriptedServer([]))
        with pytest.raises(ValidationError, match="custom_prompt is required"):
            await client.configure_chat("nb-1", goal="custom")

    @pytest.mark.asyncio
    async def test_configure_chat_params(self):
        server = ScriptedServer(["nb-1"])
        await make_client(server).configure_chat("nb-1", goal="learning_guide", response_length="longer")
        assert request_params(server) == ["nb-1", [[None, None, None, None, None, None, None, [[3], [4]]]]]


class TestSources:
    @pytest.mark.asyncio
    async def test_add_url_source(self):
        server = ScriptedServer([[[["src-9"], "Example", [None] * 5]]])
        source = await make_client(server).add_url_source("nb-1", "https://example.com")

        assert source.id == "src-9"
        assert source.title == "Example"
        params = request_params(server)
        assert params[0] == [[None, None, ["https://example.com"], None, None, None, None, None, None, None, 1]]
        assert params[1] == "nb-1"

    @pytest.mark.asyncio
    async def test_youtube_url_goes_in_video_slot(self):
        server = ScriptedServer([[[["src-9"], "Video"]]])
        await make_client(server).add_url_source("nb-1", "https://youtu.be/abc")
        assert request_params(server)[0][0][7] == ["https://youtu.be/abc"]

    @pytest.mark.asyncio
    async def test_get_source_collects_text(self):
        server = ScriptedServer([
            [["src-1"], "Doc", [None, None, None, None, 5, None, None, ["https://example.com"]]],
            None,
            None,
            [[[0, 10, [[[0, 10, ["First block"]]]]], [10, 20, [[[10, 20, ["Second block"]]]]]]],
        ])
        content = await make_client(server).get_source("src-1")

        assert content.title == "Doc"
        assert content.source_type == "web_page"
        assert content.url == "https://example.com"
        assert content.content == "First block\n\nSecond block"
        assert content.char_count == len("First block\n\nSecond block")


class TestQuery:
    @pytest.mark.asyncio
    async def test_query_recovers_and_answers(self, store, recovery):
        # query sentinel, warm-up sentinel, retried query succeeds
        server = ScriptedServer(
            query_sentinel,
            SENTINEL,
            query_reply(["This is the answer", None, 1, None, "conv-123"]),
        )
        client = make_client(server, store=store, recovery=recovery)

        result = await client.query("nb-1", "What is this?")

        assert result.answer == "This is the answer"
        assert result.conversation_id == "conv-123"
        assert result.turn_number == 1
        assert result.is_follow_up is False
        assert client.session.recovery_count == 1
        assert server.posts[-1].headers["X-Goog-BatchExecute-Path"] == constants.QUERY_PATH

    @pytest.mark.asyncio
    async def test_query_params_and_follow_up_history(self):
        server = ScriptedServer(query_reply(["First answer", None, 1, None, "conv-1"]))
        client = make_client(server)

        await client.query("nb-1", "First question", source_ids=["s1", "s2"])
        params = request_params(server)
        assert params[0] == [[["s1"]], [["s2"]]]
        assert params[1] == "First question"
        assert params[2] is None
        assert params[3] == [2, None, [1], [1]]
        assert params[7] == "nb-1"

        follow_up = await client.query("nb-1", "Second question", conversation_id="conv-1")
        params = request_params(server)
        assert params[2] == [["First question", None, 1], ["First answer", None, 2]]
        assert params[4] == "conv-1"
        assert follow_up.turn_number == 2
        assert follow_up.is_follow_up is True

    @pytest.mark.asyncio
    async def test_no_sources_means_all(self):
        server = ScriptedServer(query_reply(["Answer", None, 1, None, "conv-1"]))
        await make_client(server).query("nb-1", "q")
        assert request_params(server)[0] == []

    @pytest.mark.asyncio
    async def test_conversation_id_fallbacks(self):
        server = ScriptedServer(query_reply([["Answer", None, None, None, [1]]]))
        client = make_client(server)

        assert (await client.query("nb-1", "q", conversation_id="mine")).conversation_id == "mine"
        generated = (await client.query("nb-1", "q")).conversation_id
        assert len(generated) == 36

    @pytest.mark.asyncio
    async def test_conversation_history_turns(self):
        server = ScriptedServer(query_reply(["Answer", None, 1, None, "conv-1"]))
        client = make_client(server)
        await client.query("nb-1", "q1")

        turns = client.get_conversation_history("conv-1")
        assert [turn.to_dict() for turn in turns] == [{"turn": 1, "query": "q1", "answer": "Answer"}]


class TestResearch:
    tasks = [[
        ["task_uuid_3", [None, ["Query 3", 1], 1, [[], "Summary 3"], 1]],
        ["task_uuid_2", [None, ["Query 2", 1], 1, [[], "Summary 2"], 6]],
        ["task_uuid_1", [None, ["Query 1", 1], 1, [[["https://a.example", "A", "About A", 1]], "Summary 1"], 2]],
    ]]

    @pytest.mark.asyncio
    async def test_poll_research_filtering(self):
        client = make_client(ScriptedServer(self.tasks))

        completed = await client.poll_research("nb_id", "task_uuid_1")
        assert completed.status == "completed"
        assert completed.is_complete
        assert completed.query == "Query 1"
        assert completed.summary == "Summary 1"
        assert completed.sources[0].url == "https://a.example"

        imported = await client.poll_research("nb_id", "task_uuid_2")
        assert imported.status == "imported"
        assert imported.is_complete

        running = await client.poll_research("nb_id", "task_uuid_3")
        assert running.status == "in_progress"
        assert not running.is_complete

        assert await client.poll_research("nb_id", "missing") is None
        assert (await client.poll_research("nb_id")).task_id == "task_uuid_3"

    @pytest.mark.asyncio
    async def test_deep_research_rejects_drive(self):
        with pytest.raises(ValidationError, match="Deep research only supports web"):
            await make_client(ScriptedServer([])).start_research("nb-1", "q", source="drive", mode="deep")

    @pytest.mark.asyncio
    async def test_start_fast_research(self):
        server = ScriptedServer(["task-1", "report-1"])
        started = await make_client(server).start_research("nb-1", "solar", source="drive")

        assert started["task_id"] == "task-1"
        assert started["source"] == "drive"
        assert rpc_ids(server) == ["Ljjv0c"]
        assert request_params(server) == [["solar", 2], None, 1, "nb-1"]

    @pytest.mark.asyncio
    async def test_import_research(self):
        server = ScriptedServer(self.tasks, [[[["src-a"], "A"]]])
        imported = await make_client(server).import_research("nb_id", "task_uuid_1")

        assert imported == [{"id": "src-a", "title": "A"}]
        params = request_params(server)
        assert params[2] == "task_uuid_1"
        assert params[4] == [[None, None, ["https://a.example", "A"], None, None, None, None, None, None, None, 2]]

    @pytest.mark.asyncio
    async def test_import_unknown_task(self):
        with pytest.raises(NotebookLMError, match="not found"):
            await make_client(ScriptedServer(self.tasks)).import_research("nb_id", "missing")


class TestStudio:
    @pytest.mark.asyncio
    async def test_poll_studio_status_mapping(self):
        audio = ["art-1", "Deep dive", 1, [], 3, None,
                 [None, None, None, "https://audio.example", None, None, None, None, None, [312]]]
        video = ["art-2", "Explainer", 3, [], 2]
        server = ScriptedServer([[audio, video]])

        artifacts = await make_client(server).poll_studio("nb-1")

        assert artifacts[0].status == "completed"
        assert artifacts[0].type == "audio"
        assert artifacts[0].audio_url == "https://audio.example"
        assert artifacts[0].duration_seconds == 312
        assert artifacts[1].status == "generating"
        assert request_params(server) == [[2], "nb-1", constants.STUDIO_POLL_FILTER]

    @pytest.mark.asyncio
    async def test_unknown_status_is_pending(self):
        client = make_client(ScriptedServer([[["art-1", "X", 1, [], 99]]]))
        assert (await client.poll_studio("nb-1"))[0].status == "pending"

    @pytest.mark.asyncio
    async def test_create_audio_overview_params(self):
        server = ScriptedServer([["art-1", "Audio", 1, [], 1]])
        artifact = await make_client(server).create_audio_overview("nb-1", ["s1"], format="brief", length="long")

        assert artifact.artifact_id == "art-1"
        assert artifact.status == "pending"
        params = request_params(server)
        assert params[:2] == [[2], "nb-1"]
        content = params[2]
        assert content[2] == 1
        assert content[3] == [[["s1"]]]
        assert content[6] == [None, ["", 3, None, [["s1"]], "en", None, 2]]

    @pytest.mark.asyncio
    async def test_create_slide_deck_options_slot(self):
        server = ScriptedServer([["art-5", "Deck", 8, [], 1]])
        await make_client(server).create_slide_deck("nb-1", ["s1"])
        content = request_params(server)[2]
        assert len(content) == 17
        assert content[16] == [["", "en", 1, 3]]

    @pytest.mark.asyncio
    async def test_invalid_option_raises_before_any_call(self):
        server = ScriptedServer([])
        with pytest.raises(ValidationError, match="Must be one of"):
            await make_client(server).create_video_overview("nb-1", ["s1"], visual_style="cubist")
        assert server.posts == []

    @pytest.mark.asyncio
    async def test_custom_report_requires_prompt(self):
        with pytest.raises(ValidationError):
            await make_client(ScriptedServer([])).create_report("nb-1", ["s1"], constants.REPORT_FORMAT_CUSTOM)

    @pytest.mark.asyncio
    async def test_mind_map_create(self):
        server = ScriptedServer(
            [['{"name": "root"}', None, ["gen-1"]]],
            [["mm-1", '{"name": "root"}', [2], None, "Map"]],
        )
        created = await make_client(server).create_mind_map("nb-1", ["s1"], title="Map")

        assert created == {"mind_map_id": "mm-1", "notebook_id": "nb-1", "title": "Map", "generation_id": "gen-1"}
        assert rpc_ids(server) == ["yyryJe", "CYK0Xb"]


def rpc_ids(server: ScriptedServer) -> list[str]:
    return [request.url.params["rpcids"] for request in server.posts]


class TestCodeMapper:
    def test_round_trip_names(self):
        assert constants.STUDIO_STATUSES.get_code("completed") == 3
        assert constants.STUDIO_STATUSES.get_name(3) == "completed"
        assert constants.AUDIO_FORMATS.get_code("DEEP_DIVE") == 1

    def test_unknown_name_lists_options(self):
        with pytest.raises(ValidationError, match="Unknown name 'bogus'. Must be one of: brief, critique, debate, deep_dive"):
            constants.AUDIO_FORMATS.get_code("bogus")

    def test_validation_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            constants.CHAT_GOALS.get_code("")

    def test_unknown_code(self):
        assert constants.RESEARCH_STATUSES.get_name(42) == "in_progress"
        assert constants.SOURCE_TYPES.get_name(None) == "unknown"
