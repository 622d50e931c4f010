"""NotebookLM call surface (notebooklm.google.com internal API).

Each method builds a positional parameter tree, routes it through the
shared :class:`~notebooklm_rpc.session.RpcSession` and decodes the
positional reply with the tolerant accessors from :mod:`notebooklm_rpc.rpc`.
Request shapes come from captured browser traffic; the inline comments
record the layouts the decoders rely on.
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from . import constants
from .auth import CredentialRecord, load_credentials
from .constants import CLIENT_CONTEXT, EXTENDED_TIMEOUT, PROJECT_CONTEXT, QUERY_TIMEOUT
from .conversation import ConversationHistory, ConversationTurn
from .errors import NotebookLMError, ValidationError
from .rpc import dig, dig_int, dig_list, dig_str, unwrap_id
from .session import RpcSession

logger = logging.getLogger("notebooklm_rpc.client")


def parse_timestamp(ts_array: Any) -> str | None:
    """Convert a ``[seconds, nanos]`` array to an ISO-8601 UTC string."""
    seconds = dig(ts_array, 0)
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    except (ValueError, OSError, OverflowError):
        return None


def _notebook_path(notebook_id: str) -> str:
    return f"/notebook/{notebook_id}"


def _sources_nested(source_ids: list[str]) -> list:
    return [[[sid]] for sid in source_ids]


def _sources_simple(source_ids: list[str]) -> list:
    return [[sid] for sid in source_ids]


# =============================================================================
# Result types
# =============================================================================

@dataclass
class Source:
    id: str
    title: str
    source_type: str = "unknown"
    url: str | None = None
    drive_doc_id: str | None = None

    @property
    def can_sync(self) -> bool:
        # Google Docs and Slides/Sheets live in Drive and can be re-synced
        return self.drive_doc_id is not None and self.source_type in ("google_docs", "google_slides_sheets")

    def to_dict(self) -> dict:
        return {**asdict(self), "can_sync": self.can_sync}


@dataclass
class SourceContent:
    id: str
    title: str
    source_type: str
    content: str
    url: str | None = None

    @property
    def char_count(self) -> int:
        return len(self.content)

    def to_dict(self) -> dict:
        return {**asdict(self), "char_count": self.char_count}


@dataclass
class Notebook:
    """A NotebookLM notebook."""

    id: str
    title: str
    sources: list[Source] = field(default_factory=list)
    emoji: str | None = None
    is_owned: bool = True
    is_shared: bool = False
    created_at: str | None = None
    modified_at: str | None = None

    @property
    def source_count(self) -> int:
        return len(self.sources)

    @property
    def url(self) -> str:
        return f"{constants.BASE_URL}/notebook/{self.id}"

    @property
    def ownership(self) -> str:
        return "owned" if self.is_owned else "shared_with_me"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "emoji": self.emoji,
            "source_count": self.source_count,
            "sources": [source.to_dict() for source in self.sources],
            "url": self.url,
            "ownership": self.ownership,
            "is_shared": self.is_shared,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
        }


@dataclass
class QueryResult:
    answer: str
    conversation_id: str
    turn_number: int
    is_follow_up: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ResearchSource:
    index: int
    url: str
    title: str
    description: str = ""
    result_type: int = 1

    @property
    def result_type_name(self) -> str:
        return constants.RESULT_TYPES.get_name(self.result_type)

    def to_dict(self) -> dict:
        return {**asdict(self), "result_type_name": self.result_type_name}


@dataclass
class ResearchTask:
    task_id: str
    status: str
    query: str = ""
    source_type: str = "web"
    mode: str = "fast"
    sources: list[ResearchSource] = field(default_factory=list)
    summary: str = ""
    report: str = ""

    @property
    def is_complete(self) -> bool:
        return self.status in ("completed", "imported")

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "status": self.status,
            "query": self.query,
            "source_type": self.source_type,
            "mode": self.mode,
            "sources": [source.to_dict() for source in self.sources],
            "source_count": len(self.sources),
            "summary": self.summary,
            "report": self.report,
        }


@dataclass
class StudioArtifact:
    artifact_id: str
    type: str
    status: str
    title: str = ""
    created_at: str | None = None
    audio_url: str | None = None
    video_url: str | None = None
    infographic_url: str | None = None
    slide_deck_url: str | None = None
    report_content: str | None = None
    flashcard_count: int | None = None
    duration_seconds: int | None = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


# =============================================================================
# Decoders
# =============================================================================

def parse_source_entry(entry: Any) -> Source | None:
    """``[[source_id], title, [metadata...], ...]``; metadata[4] is the type code."""
    source_id = unwrap_id(dig(entry, 0))
    if source_id is None:
        return None
    metadata = dig(entry, 2)
    return Source(
        id=source_id,
        title=dig_str(entry, 1, default="Untitled"),
        source_type=constants.SOURCE_TYPES.get_name(dig_int(metadata, 4)),
        url=dig_str(metadata, 7, 0),
        drive_doc_id=dig_str(metadata, 0, 0),
    )


def parse_notebook(data: Any) -> Notebook | None:
    """Decode ``[title, [sources], id, emoji, null, [metadata]]``.

    metadata[0] is ownership, metadata[1] the shared flag, metadata[5] and
    metadata[8] the modified / created timestamps.
    """
    # get_notebook wraps the record once more
    if isinstance(dig(data, 0), list) and isinstance(dig(data, 0, 2), str):
        data = data[0]

    notebook_id = dig_str(data, 2)
    if not notebook_id:
        return None

    metadata = dig(data, 5)
    sources = [source for source in map(parse_source_entry, dig_list(data, 1)) if source]
    return Notebook(
        id=notebook_id,
        title=dig_str(data, 0, default="Untitled"),
        sources=sources,
        emoji=dig_str(data, 3),
        is_owned=dig_int(metadata, 0, default=constants.OWNERSHIP_MINE) == constants.OWNERSHIP_MINE,
        is_shared=bool(dig(metadata, 1, default=False)),
        created_at=parse_timestamp(dig(metadata, 8)),
        modified_at=parse_timestamp(dig(metadata, 5)),
    )


def parse_query_answer(payloads: list[Any]) -> tuple[str, str | None]:
    """Pick the answer and server conversation id out of streamed payloads.

    Two chunk shapes are seen::

        [[answer, null, [...], null, [..., type]], ..., conversation_id@10]
        [answer, null, 1, null, conversation_id]

    type 2 marks a "thinking" step. The longest answer wins; thinking text
    is only used when no real answer arrived.
    """
    longest_answer = ""
    longest_thinking = ""
    conversation_id = None

    for data in payloads:
        head = dig(data, 0)
        if isinstance(head, list):
            text = dig_str(head, 0)
            type_info = dig_list(head, 4)
            is_thinking = bool(type_info) and type_info[-1] == 2
            candidate_id = dig(head, 10)
        elif isinstance(head, str):
            text = head
            is_thinking = False
            candidate_id = dig(data, 4)
        else:
            continue

        if isinstance(candidate_id, (str, int)) and not isinstance(candidate_id, bool) and candidate_id != "":
            conversation_id = str(candidate_id)

        if not text:
            continue
        if is_thinking:
            if len(text) > len(longest_thinking):
                longest_thinking = text
        elif len(text) > len(longest_answer):
            longest_answer = text

    return longest_answer or longest_thinking, conversation_id


def parse_research_task(task_data: Any) -> ResearchTask | None:
    """``[task_id, [null, [query, source_type], mode, [[sources], summary], status]]``"""
    task_id = dig(task_data, 0)
    task_info = dig(task_data, 1)
    # timestamp entries share the list; their first slot is not a UUID
    if not isinstance(task_id, str) or not isinstance(task_info, list):
        return None

    sources = []
    report = ""
    for index, src in enumerate(dig_list(task_info, 3, 0)):
        if not isinstance(src, list) or len(src) < 2:
            continue
        if src[0] is None and isinstance(src[1], str):
            # deep research: [null, title, null, type, null, null, [report]]
            report = dig_str(src, 6, 0, default=report)
            sources.append(ResearchSource(
                index=index,
                url="",
                title=src[1],
                result_type=dig_int(src, 3, default=5),
            ))
        else:
            # fast research: [url, title, description, type, ...]
            sources.append(ResearchSource(
                index=index,
                url=dig_str(src, 0, default=""),
                title=dig_str(src, 1, default=""),
                description=dig_str(src, 2, default=""),
                result_type=dig_int(src, 3, default=1),
            ))

    return ResearchTask(
        task_id=task_id,
        status=constants.RESEARCH_STATUSES.get_name(dig_int(task_info, 4)),
        query=dig_str(task_info, 1, 0, default=""),
        source_type=constants.RESEARCH_SOURCES.get_name(dig_int(task_info, 1, 1, default=1)),
        mode="deep" if dig_int(task_info, 2) == 5 else "fast",
        sources=sources,
        summary=dig_str(task_info, 3, 1, default=""),
        report=report,
    )


def parse_studio_artifact(data: Any) -> StudioArtifact | None:
    """``[id, title, type, sources, status, ...]`` with per-type option blocks."""
    artifact_id = dig_str(data, 0)
    if not artifact_id:
        return None

    type_code = dig_int(data, 2)
    kind = constants.STUDIO_TYPES.get_name(type_code)
    artifact = StudioArtifact(
        artifact_id=artifact_id,
        type=kind,
        status=constants.STUDIO_STATUSES.get_name(dig_int(data, 4)),
        title=dig_str(data, 1, default=""),
    )

    if kind == "audio":
        artifact.audio_url = dig_str(data, 6, 3)
        artifact.duration_seconds = dig_int(data, 6, 9, 0)
    elif kind == "video":
        artifact.video_url = dig_str(data, 8, 3)
    elif kind == "infographic":
        url = dig_str(data, 14, 2, 0, 1, 0)
        artifact.infographic_url = url if url and url.startswith("http") else None
    elif kind == "slide_deck":
        url = dig_str(data, 16, 0)
        artifact.slide_deck_url = url if url and url.startswith("http") else dig_str(data, 16, 3)
    elif kind == "report":
        artifact.report_content = dig_str(data, 7, 1, 0)
    elif kind == "flashcards":
        cards = dig(data, 9, 1)
        artifact.flashcard_count = len(cards) if isinstance(cards, list) else None

    for ts_pos in (10, 15, 17):
        seconds = dig(data, ts_pos, 0)
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool) and seconds > 1700000000:
            artifact.created_at = parse_timestamp(data[ts_pos])
            break
    return artifact


# =============================================================================
# Client
# =============================================================================

class NotebookLMClient:
    """Typed NotebookLM operations over one shared RpcSession."""

    def __init__(self, session: RpcSession, query_timeout: float = QUERY_TIMEOUT):
        self.session = session
        self.query_timeout = query_timeout
        self.conversations = ConversationHistory()

    async def aclose(self) -> None:
        await self.session.aclose()

    async def _rpc(self, rpc_id: str, params: Any, source_path: str = "/", timeout: float | None = None) -> Any:
        return await self.session.execute(
            rpc_id, params, source_path, timeout=timeout or constants.DEFAULT_TIMEOUT
        )

    # =========================================================================
    # Auth
    # =========================================================================

    async def refresh_auth(self) -> CredentialRecord:
        """Reload credentials (env first, then disk) and re-scrape the page tokens."""
        store = self.session.store
        if store is not None:
            record = load_credentials(store)
            if record is not None:
                self.session.adopt_credentials(record)
        await self.session.refresh_tokens()
        return self.session.record

    def adopt_credentials(self, record: CredentialRecord) -> None:
        """Switch to credentials supplied by the user and persist them."""
        self.session.adopt_credentials(record, persist=True)
        self.conversations = ConversationHistory()

    # =========================================================================
    # Notebooks
    # =========================================================================

    async def list_notebooks(self, max_results: int = 100) -> list[Notebook]:
        result = await self._rpc(constants.RPC_LIST_NOTEBOOKS, [None, 1, None, [2]])

        # Usually wrapped as [[notebook, ...]]
        notebook_list = result[0] if isinstance(dig(result, 0, 0), list) else result
        notebooks = []
        for nb_data in notebook_list if isinstance(notebook_list, list) else []:
            notebook = parse_notebook(nb_data)
            if notebook is not None:
                notebooks.append(notebook)
        return notebooks[:max_results]

    async def get_notebook(self, notebook_id: str) -> Notebook | None:
        result = await self._rpc(
            constants.RPC_GET_NOTEBOOK,
            [notebook_id, None, [2], None, 0],
            _notebook_path(notebook_id),
        )
        return parse_notebook(result)

    async def describe_notebook(self, notebook_id: str) -> dict[str, Any]:
        """AI summary and suggested topics: ``[[summary], [[[question, prompt], ...]]]``"""
        result = await self._rpc(
            constants.RPC_GET_SUMMARY, [notebook_id, [2]], _notebook_path(notebook_id)
        )
        topics = [
            {"question": topic[0], "prompt": topic[1]}
            for topic in dig_list(result, 1, 0)
            if isinstance(topic, list) and len(topic) >= 2
        ]
        return {"summary": dig_str(result, 0, 0, default=""), "suggested_topics": topics}

    async def create_notebook(self, title: str = "") -> Notebook | None:
        result = await self._rpc(
            constants.RPC_CREATE_NOTEBOOK,
            [title, None, None, CLIENT_CONTEXT, PROJECT_CONTEXT],
        )
        notebook = parse_notebook(result)
        if notebook is not None and not notebook.title:
            notebook.title = title or "Untitled notebook"
        return notebook

    async def rename_notebook(self, notebook_id: str, new_title: str) -> bool:
        result = await self._rpc(
            constants.RPC_RENAME_NOTEBOOK,
            [notebook_id, [[None, None, None, [None, new_title]]]],
            _notebook_path(notebook_id),
        )
        return result is not None

    async def delete_notebook(self, notebook_id: str) -> bool:
        result = await self._rpc(constants.RPC_DELETE_NOTEBOOK, [[notebook_id], CLIENT_CONTEXT])
        return result is not None

    async def configure_chat(
        self,
        notebook_id: str,
        goal: str = "default",
        custom_prompt: str | None = None,
        response_length: str = "default",
    ) -> dict[str, Any]:
        """Set the chat goal/style and response length. Settings ride on the rename RPC."""
        goal_code = constants.CHAT_GOALS.get_code(goal)
        length_code = constants.CHAT_RESPONSE_LENGTHS.get_code(response_length)

        is_custom = goal_code == constants.CHAT_GOALS.get_code("custom")
        if is_custom:
            if not custom_prompt:
                raise ValidationError("custom_prompt is required when goal='custom'")
            if len(custom_prompt) > constants.CHAT_CUSTOM_PROMPT_MAX:
                raise ValidationError(
                    f"custom_prompt exceeds {constants.CHAT_CUSTOM_PROMPT_MAX} chars (got {len(custom_prompt)})"
                )

        goal_setting = [goal_code, custom_prompt] if is_custom else [goal_code]
        chat_settings = [goal_setting, [length_code]]
        result = await self._rpc(
            constants.RPC_RENAME_NOTEBOOK,
            [notebook_id, [[None, None, None, None, None, None, None, chat_settings]]],
            _notebook_path(notebook_id),
        )
        if result is None:
            raise NotebookLMError("Failed to configure chat settings")

        return {
            "notebook_id": notebook_id,
            "goal": goal,
            "custom_prompt": custom_prompt if is_custom else None,
            "response_length": response_length,
            "raw_settings": dig(result, 7),
        }

    # =========================================================================
    # Sources
    # =========================================================================

    async def _add_source(self, notebook_id: str, source_data: list, fallback_title: str) -> Source | None:
        result = await self._rpc(
            constants.RPC_ADD_SOURCE,
            [[source_data], notebook_id, CLIENT_CONTEXT, PROJECT_CONTEXT],
            _notebook_path(notebook_id),
            timeout=EXTENDED_TIMEOUT,
        )
        # [[[[source_id], title, metadata, ...]]]
        source = parse_source_entry(dig(result, 0, 0))
        if source is not None and source.title == "Untitled":
            source.title = fallback_title
        return source

    async def add_url_source(self, notebook_id: str, url: str) -> Source | None:
        """Add a website or YouTube URL. YouTube URLs go in slot 7, others in slot 2."""
        lowered = url.lower()
        if "youtube.com" in lowered or "youtu.be" in lowered:
            source_data = [None, None, None, None, None, None, None, [url], None, None, 1]
        else:
            source_data = [None, None, [url], None, None, None, None, None, None, None, 1]
        return await self._add_source(notebook_id, source_data, url)

    async def add_text_source(self, notebook_id: str, text: str, title: str = "Pasted Text") -> Source | None:
        source_data = [None, [title, text], None, 2, None, None, None, None, None, None, 1]
        return await self._add_source(notebook_id, source_data, title)

    async def add_drive_source(
        self,
        notebook_id: str,
        document_id: str,
        title: str,
        mime_type: str = "application/vnd.google-apps.document",
    ) -> Source | None:
        source_data = [[document_id, mime_type, 1, title], None, None, None, None, None, None, None, None, None, 1]
        return await self._add_source(notebook_id, source_data, title)

    async def get_source(self, source_id: str) -> SourceContent:
        """Full indexed text of a source.

        Reply: ``[[[id], title, metadata], null, null, [[content_blocks]]]``
        """
        result = await self._rpc(constants.RPC_GET_SOURCE, [[source_id], [2], [2]])
        metadata = dig(result, 0, 2)

        text_parts = []
        for block in dig_list(result, 3, 0):
            if isinstance(block, list):
                text_parts.extend(_collect_text(block))

        return SourceContent(
            id=source_id,
            title=dig_str(result, 0, 1, default=""),
            source_type=constants.SOURCE_TYPES.get_name(dig_int(metadata, 4)),
            content="\n\n".join(text_parts),
            url=dig_str(metadata, 7, 0),
        )

    async def get_source_guide(self, source_id: str) -> dict[str, Any]:
        """AI summary and keyword chips: ``[[[null, [summary], [[keywords]]]]]``"""
        result = await self._rpc(constants.RPC_GET_SOURCE_GUIDE, [[[[source_id]]]])
        return {
            "summary": dig_str(result, 0, 0, 1, 0, default=""),
            "keywords": dig_list(result, 0, 0, 2, 0),
        }

    async def list_sources(self, notebook_id: str) -> list[Source]:
        notebook = await self.get_notebook(notebook_id)
        return notebook.sources if notebook else []

    async def check_source_freshness(self, source_id: str) -> bool | None:
        """True if a Drive source matches Drive, False if stale, None if unknown."""
        result = await self._rpc(constants.RPC_CHECK_FRESHNESS, [None, [source_id], [2]])
        fresh = dig(result, 0, 1)
        return fresh if isinstance(fresh, bool) else None

    async def sync_drive_sources(self, source_ids: list[str]) -> list[dict]:
        synced = []
        for source_id in source_ids:
            result = await self._rpc(
                constants.RPC_SYNC_DRIVE, [None, [source_id], [2]], timeout=EXTENDED_TIMEOUT
            )
            # [[[id], title, [.., .., .., [.., [seconds, nanos]]]]]
            source_data = dig(result, 0)
            synced.append({
                "id": unwrap_id(dig(source_data, 0)) or source_id,
                "title": dig_str(source_data, 1, default="Unknown"),
                "synced_at": parse_timestamp(dig(source_data, 2, 3, 1)),
                "synced": source_data is not None,
            })
        return synced

    async def delete_source(self, source_id: str) -> bool:
        result = await self._rpc(constants.RPC_DELETE_SOURCE, [[[source_id]], CLIENT_CONTEXT])
        return result is not None

    # =========================================================================
    # Query
    # =========================================================================

    async def query(
        self,
        notebook_id: str,
        query_text: str,
        source_ids: list[str] | None = None,
        conversation_id: str | None = None,
        timeout: float | None = None,
    ) -> QueryResult:
        """Ask a grounded question, continuing ``conversation_id`` if given.

        No ``source_ids`` means every source in the notebook.
        """
        history = self.conversations.get(conversation_id)
        params = [
            _sources_nested(source_ids or []),
            query_text,
            history or None,
            [2, None, [1], [1]],
            conversation_id,
            None,
            None,
            notebook_id,
            1,
        ]

        payloads = await self.session.stream_query(
            params, _notebook_path(notebook_id), timeout=timeout or self.query_timeout
        )
        answer, server_conversation_id = parse_query_answer(payloads)

        resolved_id = server_conversation_id or conversation_id or str(uuid.uuid4())
        if answer:
            turn_number = self.conversations.record_turn(resolved_id, query_text, answer)
        else:
            logger.warning("Query returned no answer text")
            turn_number = self.conversations.turn_count(resolved_id)

        return QueryResult(
            answer=answer,
            conversation_id=resolved_id,
            turn_number=turn_number,
            is_follow_up=conversation_id is not None,
        )

    def get_conversation_history(self, conversation_id: str) -> list[ConversationTurn]:
        return self.conversations.turns(conversation_id)

    # =========================================================================
    # Research
    # =========================================================================

    async def start_research(
        self,
        notebook_id: str,
        query: str,
        source: str = "web",
        mode: str = "fast",
    ) -> dict[str, Any]:
        source_code = constants.RESEARCH_SOURCES.get_code(source)
        mode_code = constants.RESEARCH_MODES.get_code(mode)
        if mode_code == constants.RESEARCH_MODES.get_code("deep") and source_code != constants.RESEARCH_SOURCES.get_code("web"):
            raise ValidationError("Deep research only supports web sources. Use mode='fast' for Drive.")

        if mode_code == constants.RESEARCH_MODES.get_code("fast"):
            rpc_id = constants.RPC_START_FAST_RESEARCH
            params = [[query, source_code], None, 1, notebook_id]
        else:
            rpc_id = constants.RPC_START_DEEP_RESEARCH
            params = [None, [1], [query, source_code], mode_code, notebook_id]

        result = await self._rpc(rpc_id, params, _notebook_path(notebook_id))
        task_id = dig_str(result, 0)
        if not task_id:
            raise NotebookLMError("Research did not start: no task id returned")

        return {
            "task_id": task_id,
            "report_id": dig_str(result, 1),
            "notebook_id": notebook_id,
            "query": query,
            "source": constants.RESEARCH_SOURCES.get_name(source_code),
            "mode": constants.RESEARCH_MODES.get_name(mode_code),
        }

    async def poll_research(self, notebook_id: str, task_id: str | None = None) -> ResearchTask | None:
        """Most recent research task, or the one matching ``task_id``. None if absent."""
        result = await self._rpc(
            constants.RPC_POLL_RESEARCH, [None, None, notebook_id], _notebook_path(notebook_id)
        )

        # [[task, task, ...], [timestamps]]
        task_list = result[0] if isinstance(dig(result, 0, 0), list) else result
        tasks = [task for task in map(parse_research_task, task_list if isinstance(task_list, list) else []) if task]

        if task_id:
            return next((task for task in tasks if task.task_id == task_id), None)
        return tasks[0] if tasks else None

    async def import_research(
        self,
        notebook_id: str,
        task_id: str,
        source_indices: list[int] | None = None,
    ) -> list[dict]:
        """Import discovered sources (all when ``source_indices`` is None)."""
        task = await self.poll_research(notebook_id, task_id)
        if task is None:
            raise NotebookLMError(f"Research task {task_id} not found")

        selected = task.sources
        if source_indices is not None:
            wanted = set(source_indices)
            selected = [src for src in task.sources if src.index in wanted]

        source_array = [data for data in map(_research_import_entry, selected) if data]
        if not source_array:
            return []

        result = await self._rpc(
            constants.RPC_IMPORT_RESEARCH,
            [None, [1], task_id, notebook_id, source_array],
            _notebook_path(notebook_id),
            timeout=EXTENDED_TIMEOUT,
        )

        imported_list = result[0] if isinstance(dig(result, 0, 0), list) else result
        imported = []
        for entry in imported_list if isinstance(imported_list, list) else []:
            source = parse_source_entry(entry)
            if source is not None:
                imported.append({"id": source.id, "title": source.title})
        return imported

    # =========================================================================
    # Studio
    # =========================================================================

    async def _create_studio(self, notebook_id: str, kind: str, content: list) -> StudioArtifact:
        result = await self._rpc(
            constants.RPC_CREATE_STUDIO,
            [CLIENT_CONTEXT, notebook_id, content],
            _notebook_path(notebook_id),
        )
        head = dig(result, 0)
        if isinstance(head, list):
            artifact = parse_studio_artifact(head)
            if artifact is not None:
                return artifact
        if isinstance(head, str) and head:
            return StudioArtifact(artifact_id=head, type=kind, status="pending")
        raise NotebookLMError(f"{kind} creation returned no artifact")

    def _studio_content(self, kind: str, source_ids: list[str], options_slot: int, options: list) -> list:
        content: list = [None, None, constants.STUDIO_TYPES.get_code(kind), _sources_nested(source_ids)]
        content.extend([None] * (options_slot - len(content)))
        content.append(options)
        return content

    async def create_audio_overview(
        self,
        notebook_id: str,
        source_ids: list[str],
        format: str = "deep_dive",
        length: str = "default",
        language: str = "en",
        focus_prompt: str = "",
    ) -> StudioArtifact:
        format_code = constants.AUDIO_FORMATS.get_code(format)
        length_code = constants.AUDIO_LENGTHS.get_code(length)
        options = [None, [focus_prompt, length_code, None, _sources_simple(source_ids), language, None, format_code]]
        return await self._create_studio(notebook_id, "audio", self._studio_content("audio", source_ids, 6, options))

    async def create_video_overview(
        self,
        notebook_id: str,
        source_ids: list[str],
        format: str = "explainer",
        visual_style: str = "auto_select",
        language: str = "en",
        focus_prompt: str = "",
    ) -> StudioArtifact:
        format_code = constants.VIDEO_FORMATS.get_code(format)
        style_code = constants.VIDEO_STYLES.get_code(visual_style)
        options = [None, None, [_sources_simple(source_ids), language, focus_prompt, None, format_code, style_code]]
        return await self._create_studio(notebook_id, "video", self._studio_content("video", source_ids, 8, options))

    async def create_infographic(
        self,
        notebook_id: str,
        source_ids: list[str],
        orientation: str = "landscape",
        detail_level: str = "standard",
        language: str = "en",
        focus_prompt: str = "",
    ) -> StudioArtifact:
        orientation_code = constants.INFOGRAPHIC_ORIENTATIONS.get_code(orientation)
        detail_code = constants.INFOGRAPHIC_DETAILS.get_code(detail_level)
        options = [[focus_prompt, language, None, orientation_code, detail_code]]
        return await self._create_studio(
            notebook_id, "infographic", self._studio_content("infographic", source_ids, 14, options)
        )

    async def create_slide_deck(
        self,
        notebook_id: str,
        source_ids: list[str],
        format: str = "detailed_deck",
        length: str = "default",
        language: str = "en",
        focus_prompt: str = "",
    ) -> StudioArtifact:
        format_code = constants.SLIDE_DECK_FORMATS.get_code(format)
        length_code = constants.SLIDE_DECK_LENGTHS.get_code(length)
        options = [[focus_prompt, language, format_code, length_code]]
        return await self._create_studio(
            notebook_id, "slide_deck", self._studio_content("slide_deck", source_ids, 16, options)
        )

    async def create_report(
        self,
        notebook_id: str,
        source_ids: list[str],
        report_format: str = "Briefing Doc",
        custom_prompt: str = "",
        language: str = "en",
    ) -> StudioArtifact:
        report = constants.REPORT_FORMATS.get(report_format)
        if report is None:
            raise ValidationError(
                f"Unknown report format '{report_format}'. Must be one of: {', '.join(constants.REPORT_FORMATS)}"
            )
        if report_format == constants.REPORT_FORMAT_CUSTOM:
            if not custom_prompt:
                raise ValidationError("custom_prompt is required for 'Create Your Own' reports")
            prompt = custom_prompt
        else:
            prompt = report["prompt"]

        options = [None, [report["title"], report["description"], None, _sources_simple(source_ids), language, prompt, None, True]]
        return await self._create_studio(notebook_id, "report", self._studio_content("report", source_ids, 7, options))

    async def create_flashcards(
        self,
        notebook_id: str,
        source_ids: list[str],
        difficulty: str = "medium",
    ) -> StudioArtifact:
        difficulty_code = constants.FLASHCARD_DIFFICULTIES.get_code(difficulty)
        options = [None, [1, None, None, None, None, None, [difficulty_code, constants.FLASHCARD_COUNT_DEFAULT]]]
        return await self._create_studio(
            notebook_id, "flashcards", self._studio_content("flashcards", source_ids, 9, options)
        )

    async def create_quiz(
        self,
        notebook_id: str,
        source_ids: list[str],
        question_count: int = constants.QUIZ_QUESTION_COUNT_DEFAULT,
        difficulty: str = "medium",
    ) -> StudioArtifact:
        if question_count < 1:
            raise ValidationError(f"question_count must be positive (got {question_count})")
        difficulty_code = constants.FLASHCARD_DIFFICULTIES.get_code(difficulty)
        # Quizzes share the flashcards type; variant 2 in the options block
        options = [None, [2, None, None, None, None, None, None, [question_count, difficulty_code]]]
        return await self._create_studio(
            notebook_id, "flashcards", self._studio_content("flashcards", source_ids, 9, options)
        )

    async def create_data_table(
        self,
        notebook_id: str,
        source_ids: list[str],
        description: str,
        language: str = "en",
    ) -> StudioArtifact:
        if not description:
            raise ValidationError("description is required for data tables")
        options = [[description, language]]
        return await self._create_studio(
            notebook_id, "data_table", self._studio_content("data_table", source_ids, 18, options)
        )

    async def create_mind_map(self, notebook_id: str, source_ids: list[str], title: str = "Mind Map") -> dict[str, Any]:
        """Generate a mind map from sources, then save it to the notebook."""
        generated = await self._rpc(
            constants.RPC_GENERATE_MIND_MAP,
            [
                _sources_nested(source_ids),
                None, None, None, None,
                ["interactive_mindmap", [["[CONTEXT]", ""]], ""],
                None,
                [2, None, [1]],
            ],
        )
        # [[json_string, null, [generation_id]]]
        mind_map_json = dig_str(generated, 0, 0)
        if not mind_map_json:
            raise NotebookLMError("Mind map generation returned no content")

        saved = await self._rpc(
            constants.RPC_SAVE_MIND_MAP,
            [notebook_id, mind_map_json, [2, None, None, 5, _sources_simple(source_ids)], None, title],
            _notebook_path(notebook_id),
        )
        # [[mind_map_id, json, metadata, null, title]]
        inner = dig(saved, 0)
        mind_map_id = dig_str(inner, 0)
        if not mind_map_id:
            raise NotebookLMError("Mind map could not be saved")

        return {
            "mind_map_id": mind_map_id,
            "notebook_id": notebook_id,
            "title": dig_str(inner, 4, default=title),
            "generation_id": dig_str(generated, 0, 2, 0),
        }

    async def list_mind_maps(self, notebook_id: str) -> list[dict]:
        result = await self._rpc(constants.RPC_LIST_MIND_MAPS, [notebook_id], _notebook_path(notebook_id))

        mind_maps = []
        for entry in dig_list(result, 0):
            details = dig(entry, 1)
            # deleted entries are tombstones: [uuid, null, 2]
            if not isinstance(details, list):
                continue
            mind_maps.append({
                "mind_map_id": dig_str(entry, 0),
                "title": dig_str(details, 4, default="Mind Map"),
                "created_at": parse_timestamp(dig(details, 2, 2)),
            })
        return mind_maps

    async def poll_studio(self, notebook_id: str) -> list[StudioArtifact]:
        result = await self._rpc(
            constants.RPC_POLL_STUDIO,
            [CLIENT_CONTEXT, notebook_id, constants.STUDIO_POLL_FILTER],
            _notebook_path(notebook_id),
        )
        artifact_list = result[0] if isinstance(dig(result, 0, 0), list) else result
        artifacts = []
        for data in artifact_list if isinstance(artifact_list, list) else []:
            artifact = parse_studio_artifact(data)
            if artifact is not None:
                artifacts.append(artifact)
        return artifacts

    async def delete_studio_artifact(self, artifact_id: str, notebook_id: str | None = None) -> bool:
        """Delete an audio/video/... artifact; mind maps need ``notebook_id``."""
        result = await self._rpc(constants.RPC_DELETE_STUDIO, [CLIENT_CONTEXT, artifact_id])
        if result is not None:
            return True
        if notebook_id:
            return await self.delete_mind_map(notebook_id, artifact_id)
        return False

    async def delete_mind_map(self, notebook_id: str, mind_map_id: str) -> bool:
        path = _notebook_path(notebook_id)
        listing = await self._rpc(constants.RPC_LIST_MIND_MAPS, [notebook_id], path)

        timestamp = None
        for entry in dig_list(listing, 0):
            if dig(entry, 0) == mind_map_id:
                timestamp = dig(entry, 1, 2, 2)
                break

        await self._rpc(constants.RPC_DELETE_MIND_MAP, [notebook_id, None, [mind_map_id], [2]], path)
        # Second, timestamp-keyed call clears the list entry
        if timestamp:
            await self._rpc(constants.RPC_LIST_MIND_MAPS, [notebook_id, None, timestamp, [2]], path)
        return True


def _collect_text(data: list) -> list[str]:
    texts = []
    for item in data:
        if isinstance(item, str) and item:
            texts.append(item)
        elif isinstance(item, list):
            texts.extend(_collect_text(item))
    return texts


def _research_import_entry(src: ResearchSource) -> list | None:
    """Web results import by URL; Drive results by document id."""
    # deep_report entries are the research write-up, not importable
    if src.result_type == constants.RESULT_TYPES.get_code("deep_report") or not src.url:
        return None

    if src.result_type == constants.RESULT_TYPES.get_code("web"):
        return [None, None, [src.url, src.title], None, None, None, None, None, None, None, 2]

    doc_id = src.url.split("id=")[-1].split("&")[0] if "id=" in src.url else None
    if not doc_id:
        return [None, None, [src.url, src.title], None, None, None, None, None, None, None, 2]
    mime_type = constants.DRIVE_MIME_TYPES.get(src.result_type, constants.DRIVE_MIME_TYPES[2])
    return [[doc_id, mime_type, 1, src.title], None, None, None, None, None, None, None, None, None, 2]
