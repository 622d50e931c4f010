"""NotebookLM RPC tool server."""

import argparse
import asyncio
import functools
import json
import logging
import os
import secrets
import time
import urllib.parse
from typing import Any

from fastmcp import FastMCP
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from . import __version__, constants
from .auth import CredentialRecord, CredentialStore, load_credentials, missing_cookies, parse_cookie_header
from .browser import BrowserRecovery
from .client import NotebookLMClient
from .errors import AuthenticationError, NotebookLMError, RequestTimeoutError
from .session import RpcSession

# MCP request/response logger
mcp_logger = logging.getLogger("notebooklm_rpc.mcp")

INSTRUCTIONS = """NotebookLM RPC - Access NotebookLM (notebooklm.google.com).

**Auth:** Expired sessions are recovered automatically. If a tool still reports an authentication error, run `notebooklm-rpc-auth` in a terminal, then call refresh_auth. Use save_auth_tokens only if the CLI fails.
**Confirmation:** Tools with a confirm param require user approval before setting confirm=True.
**Studio:** After creating audio/video/infographic/slides, poll studio_status for completion."""

TOOL_NAMES = (
    "refresh_auth",
    "save_auth_tokens",
    "notebook_list",
    "notebook_get",
    "notebook_describe",
    "notebook_create",
    "notebook_rename",
    "notebook_delete",
    "chat_configure",
    "notebook_add_url",
    "notebook_add_text",
    "notebook_add_drive",
    "source_describe",
    "source_get_content",
    "source_list_drive",
    "source_sync_drive",
    "source_delete",
    "notebook_query",
    "research_start",
    "research_status",
    "research_import",
    "audio_overview_create",
    "video_overview_create",
    "infographic_create",
    "slide_deck_create",
    "report_create",
    "flashcards_create",
    "quiz_create",
    "data_table_create",
    "mind_map_create",
    "studio_status",
    "studio_delete",
)

_api_key: str | None = os.environ.get("NOTEBOOKLM_API_KEY")


def validate_api_key(request: Request) -> JSONResponse | None:
    """Validate the bearer token. Returns None if auth passes, an error response otherwise."""
    if not _api_key:
        return None

    # Load balancers probe /health without credentials
    if request.url.path == "/health":
        return None

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return JSONResponse(
            {"error": "Missing or invalid Authorization header. Use 'Bearer <api_key>'"},
            status_code=401,
        )

    provided_key = auth_header[len("Bearer "):]
    if not secrets.compare_digest(provided_key, _api_key):
        return JSONResponse({"error": "Invalid API key"}, status_code=401)
    return None


class APIKeyAuthMiddleware(BaseHTTPMiddleware):
    """Enforce API key authentication for the HTTP transports."""

    async def dispatch(self, request: Request, call_next):
        auth_error = validate_api_key(request)
        if auth_error:
            return auth_error
        return await call_next(request)


def logged_tool(func):
    """Log tool request/response at DEBUG and turn library errors into error payloads."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        tool_name = func.__name__
        if mcp_logger.isEnabledFor(logging.DEBUG):
            params = {k: v for k, v in kwargs.items() if v is not None}
            mcp_logger.debug("MCP Request: %s(%s)", tool_name, json.dumps(params, default=str))

        try:
            result = await func(self, *args, **kwargs)
        except (NotebookLMError, ValueError) as e:
            result = {"status": "error", "error": str(e)}

        if mcp_logger.isEnabledFor(logging.DEBUG):
            result_str = json.dumps(result, default=str)
            if len(result_str) > 1000:
                result_str = result_str[:1000] + "..."
            mcp_logger.debug("MCP Response: %s -> %s", tool_name, result_str)
        return result

    return wrapper


def _confirmation_required(action: str, settings: dict[str, Any]) -> dict[str, Any]:
    return {
        "status": "pending_confirmation",
        "message": f"Please confirm these settings before {action}:",
        "settings": settings,
        "note": "Set confirm=True after user approves these settings.",
    }


def _deletion_not_confirmed(warning: str, **extra: str) -> dict[str, Any]:
    return {
        "status": "pending_confirmation",
        "error": "Deletion not confirmed. You must ask the user to confirm "
                 "before deleting. Set confirm=True only after user approval.",
        "warning": warning,
        **extra,
    }


def _normalize_source_ids(source_ids: list[str] | str | None) -> list[str] | None:
    # Some assistants send the list as a JSON string
    if isinstance(source_ids, str):
        try:
            parsed = json.loads(source_ids)
        except json.JSONDecodeError:
            return [source_ids]
        return parsed if isinstance(parsed, list) else [str(parsed)]
    return source_ids


def _compact_research(research: dict[str, Any], max_sources: int = 10, max_report: int = 500) -> dict[str, Any]:
    compact = dict(research)
    if len(compact.get("report", "")) > max_report:
        compact["report"] = compact["report"][:max_report] + "... (truncated, use compact=False for full report)"
    if len(compact.get("sources", [])) > max_sources:
        compact["sources"] = compact["sources"][:max_sources]
        compact["sources_truncated"] = True
    return compact


def build_client(query_timeout: float = constants.QUERY_TIMEOUT) -> NotebookLMClient:
    """Client over env or cached credentials, with browser recovery enabled.

    Raises:
        AuthenticationError: If no credentials are available yet.
    """
    store = CredentialStore()
    record = load_credentials(store)
    if record is None:
        raise AuthenticationError("No authentication found. Run 'notebooklm-rpc-auth' to log in.")
    session = RpcSession(record, store=store, recovery=BrowserRecovery(store))
    return NotebookLMClient(session, query_timeout=query_timeout)


class NotebookTools:
    """Tool handlers bound to one lazily created NotebookLMClient."""

    def __init__(
        self,
        client: NotebookLMClient | None = None,
        query_timeout: float = constants.QUERY_TIMEOUT,
        store: CredentialStore | None = None,
    ):
        self._client = client
        self.query_timeout = query_timeout
        self.store = store or CredentialStore()

    @property
    def client(self) -> NotebookLMClient:
        if self._client is None:
            self._client = build_client(self.query_timeout)
        return self._client

    async def _all_source_ids(self, notebook_id: str) -> list[str]:
        sources = await self.client.list_sources(notebook_id)
        return [source.id for source in sources]

    async def _studio_sources(self, notebook_id: str, source_ids: list[str] | str | None, what: str) -> list[str]:
        source_ids = _normalize_source_ids(source_ids)
        if source_ids is None:
            source_ids = await self._all_source_ids(notebook_id)
        if not source_ids:
            raise NotebookLMError(f"No sources found in notebook. Add sources before creating {what}.")
        return source_ids

    @staticmethod
    def _studio_started(notebook_id: str, artifact, label: str, **details: Any) -> dict[str, Any]:
        return {
            "status": "success",
            "artifact_id": artifact.artifact_id,
            "type": artifact.type,
            "generation_status": artifact.status,
            **details,
            "message": f"{label} generation started. Use studio_status to check progress.",
            "notebook_url": f"{constants.BASE_URL}/notebook/{notebook_id}",
        }

    # =========================================================================
    # Auth
    # =========================================================================

    @logged_tool
    async def refresh_auth(self) -> dict[str, Any]:
        """Reload auth tokens from env/disk and re-fetch the page tokens.

        Call this after running notebooklm-rpc-auth to pick up new tokens.
        """
        if self._client is None:
            self._client = build_client(self.query_timeout)
            await self._client.session.refresh_tokens()
            return {"status": "success", "message": "Auth tokens loaded and verified."}

        await self._client.refresh_auth()
        return {"status": "success", "message": "Auth tokens reloaded and verified."}

    @logged_tool
    async def save_auth_tokens(
        self,
        cookies: str,
        csrf_token: str = "",
        session_id: str = "",
        request_body: str = "",
        request_url: str = "",
    ) -> dict[str, Any]:
        """Save NotebookLM cookies (FALLBACK - try notebooklm-rpc-auth first!).

        Args:
            cookies: Cookie header copied from Chrome DevTools
            csrf_token: Optional, auto-extracted when empty
            session_id: Optional, auto-extracted when empty
            request_body: Optional batchexecute request body (contains at=<csrf>)
            request_url: Optional batchexecute request URL (contains f.sid=<sid>)
        """
        all_cookies = parse_cookie_header(cookies)
        missing = missing_cookies(all_cookies)
        if missing:
            return {"status": "error", "error": f"Missing required cookies: {missing}"}

        if not csrf_token and "at=" in request_body:
            csrf_token = urllib.parse.unquote(request_body.split("at=")[1].split("&")[0])
        if not session_id and "f.sid=" in request_url:
            session_id = urllib.parse.unquote(request_url.split("f.sid=")[1].split("&")[0])

        record = CredentialRecord(
            cookies=all_cookies,
            csrf_token=csrf_token,
            session_id=session_id,
            extracted_at=time.time(),
        )
        if self._client is not None:
            self._client.adopt_credentials(record)
        else:
            self.store.save(record)

        if csrf_token and session_id:
            token_msg = "CSRF token and session ID extracted from the request."
        else:
            token_msg = "Missing page tokens will be fetched on the first API call."
        return {
            "status": "success",
            "message": f"Saved {len(all_cookies)} cookies. {token_msg}",
            "cache_path": str(self.store.path),
            "extracted_csrf": bool(csrf_token),
            "extracted_session_id": bool(session_id),
        }

    # =========================================================================
    # Notebooks
    # =========================================================================

    @logged_tool
    async def notebook_list(self, max_results: int = 100) -> dict[str, Any]:
        """List all notebooks.

        Args:
            max_results: Maximum number of notebooks to return (default: 100)
        """
        notebooks = await self.client.list_notebooks(max_results=max_results)
        owned_count = sum(1 for nb in notebooks if nb.is_owned)
        return {
            "status": "success",
            "count": len(notebooks),
            "owned_count": owned_count,
            "shared_count": len(notebooks) - owned_count,
            "shared_by_me_count": sum(1 for nb in notebooks if nb.is_owned and nb.is_shared),
            "notebooks": [
                {key: value for key, value in nb.to_dict().items() if key != "sources"}
                for nb in notebooks
            ],
        }

    @logged_tool
    async def notebook_get(self, notebook_id: str) -> dict[str, Any]:
        """Get notebook details with sources.

        Args:
            notebook_id: Notebook UUID
        """
        notebook = await self.client.get_notebook(notebook_id)
        if notebook is None:
            return {"status": "error", "error": f"Notebook {notebook_id} not found"}
        return {"status": "success", "notebook": notebook.to_dict()}

    @logged_tool
    async def notebook_describe(self, notebook_id: str) -> dict[str, Any]:
        """Get AI-generated notebook summary with suggested topics.

        Args:
            notebook_id: Notebook UUID
        """
        return {"status": "success", **await self.client.describe_notebook(notebook_id)}

    @logged_tool
    async def notebook_create(self, title: str = "") -> dict[str, Any]:
        """Create a new notebook.

        Args:
            title: Optional title for the notebook
        """
        notebook = await self.client.create_notebook(title)
        if notebook is None:
            return {"status": "error", "error": "Failed to create notebook"}
        return {
            "status": "success",
            "notebook": {"id": notebook.id, "title": notebook.title, "url": notebook.url},
        }

    @logged_tool
    async def notebook_rename(self, notebook_id: str, new_title: str) -> dict[str, Any]:
        """Rename a notebook.

        Args:
            notebook_id: Notebook UUID
            new_title: New title
        """
        if not await self.client.rename_notebook(notebook_id, new_title):
            return {"status": "error", "error": "Failed to rename notebook"}
        return {"status": "success", "notebook": {"id": notebook_id, "title": new_title}}

    @logged_tool
    async def notebook_delete(self, notebook_id: str, confirm: bool = False) -> dict[str, Any]:
        """Delete notebook permanently. IRREVERSIBLE. Requires confirm=True.

        Args:
            notebook_id: Notebook UUID
            confirm: Must be True after user approval
        """
        if not confirm:
            return _deletion_not_confirmed(
                "This action is IRREVERSIBLE. The notebook and all its sources will be permanently deleted."
            )
        if not await self.client.delete_notebook(notebook_id):
            return {"status": "error", "error": "Failed to delete notebook"}
        return {"status": "success", "message": f"Notebook {notebook_id} has been permanently deleted."}

    @logged_tool
    async def chat_configure(
        self,
        notebook_id: str,
        goal: str = "default",
        custom_prompt: str | None = None,
        response_length: str = "default",
    ) -> dict[str, Any]:
        """Configure notebook chat settings.

        Args:
            notebook_id: Notebook UUID
            goal: default|learning_guide|custom
            custom_prompt: Required when goal=custom (max 10000 chars)
            response_length: default|longer|shorter
        """
        settings = await self.client.configure_chat(notebook_id, goal, custom_prompt, response_length)
        settings.pop("raw_settings", None)
        return {"status": "success", "settings": settings}

    # =========================================================================
    # Sources
    # =========================================================================

    @staticmethod
    def _source_added(source, what: str) -> dict[str, Any]:
        if source is None:
            return {"status": "error", "error": f"Failed to add {what}"}
        return {"status": "success", "source": {"id": source.id, "title": source.title}}

    @logged_tool
    async def notebook_add_url(self, notebook_id: str, url: str) -> dict[str, Any]:
        """Add a website or YouTube URL as a source.

        Args:
            notebook_id: Notebook UUID
            url: URL to add
        """
        try:
            source = await self.client.add_url_source(notebook_id, url)
        except RequestTimeoutError as e:
            return {
                "status": "error",
                "error": str(e),
                "hint": "Large pages can take a while. The source may still have been added; check notebook_get.",
            }
        return self._source_added(source, "URL source")

    @logged_tool
    async def notebook_add_text(self, notebook_id: str, text: str, title: str | None = None) -> dict[str, Any]:
        """Add pasted text as a source.

        Args:
            notebook_id: Notebook UUID
            text: Text content
            title: Optional title
        """
        source = await self.client.add_text_source(notebook_id, text, title or "Pasted Text")
        return self._source_added(source, "text source")

    @logged_tool
    async def notebook_add_drive(
        self,
        notebook_id: str,
        document_id: str,
        title: str,
        doc_type: str = "doc",
    ) -> dict[str, Any]:
        """Add a Google Drive document as a source.

        Args:
            notebook_id: Notebook UUID
            document_id: Drive document ID (from the URL)
            title: Display title
            doc_type: doc|slides|sheets
        """
        mime_types = {
            "doc": constants.DRIVE_MIME_TYPES[2],
            "slides": constants.DRIVE_MIME_TYPES[3],
            "sheets": constants.DRIVE_MIME_TYPES[8],
        }
        mime_type = mime_types.get(doc_type)
        if mime_type is None:
            return {"status": "error", "error": f"Unknown doc_type '{doc_type}'. Use: {', '.join(mime_types)}"}
        try:
            source = await self.client.add_drive_source(notebook_id, document_id, title, mime_type)
        except RequestTimeoutError as e:
            return {
                "status": "error",
                "error": str(e),
                "hint": "Large files can take a while. The source may still have been added; check notebook_get.",
            }
        return self._source_added(source, "Drive source")

    @logged_tool
    async def source_describe(self, source_id: str) -> dict[str, Any]:
        """Get AI-generated source summary with keyword chips.

        Args:
            source_id: Source UUID
        """
        return {"status": "success", **await self.client.get_source_guide(source_id)}

    @logged_tool
    async def source_get_content(self, source_id: str) -> dict[str, Any]:
        """Get the raw indexed text of a source.

        Args:
            source_id: Source UUID
        """
        content = await self.client.get_source(source_id)
        return {"status": "success", **content.to_dict()}

    @logged_tool
    async def source_list_drive(self, notebook_id: str) -> dict[str, Any]:
        """List sources with Drive sync status.

        Args:
            notebook_id: Notebook UUID
        """
        sources = await self.client.list_sources(notebook_id)
        listed = []
        for source in sources:
            entry = source.to_dict()
            if source.can_sync:
                entry["is_fresh"] = await self.client.check_source_freshness(source.id)
            listed.append(entry)

        stale = [entry for entry in listed if entry.get("is_fresh") is False]
        return {
            "status": "success",
            "notebook_id": notebook_id,
            "sources": listed,
            "syncable_count": sum(1 for entry in listed if entry["can_sync"]),
            "stale_count": len(stale),
            "hint": "Use source_sync_drive to refresh stale sources." if stale else None,
        }

    @logged_tool
    async def source_sync_drive(self, source_ids: list[str] | str, confirm: bool = False) -> dict[str, Any]:
        """Sync Drive sources with their latest content. Requires confirm=True.

        Args:
            source_ids: Source UUIDs to sync
            confirm: Must be True after user approval
        """
        source_ids = _normalize_source_ids(source_ids) or []
        if not confirm:
            return _confirmation_required("syncing Drive sources", {"source_ids": source_ids})
        results = await self.client.sync_drive_sources(source_ids)
        return {
            "status": "success",
            "synced_count": sum(1 for r in results if r["synced"]),
            "results": results,
        }

    @logged_tool
    async def source_delete(self, source_id: str, confirm: bool = False) -> dict[str, Any]:
        """Delete source permanently. IRREVERSIBLE. Requires confirm=True.

        Args:
            source_id: Source UUID
            confirm: Must be True after user approval
        """
        if not confirm:
            return _deletion_not_confirmed("This action is IRREVERSIBLE. The source will be permanently deleted.")
        if not await self.client.delete_source(source_id):
            return {"status": "error", "error": "Failed to delete source"}
        return {"status": "success", "message": f"Source {source_id} has been permanently deleted."}

    # =========================================================================
    # Query
    # =========================================================================

    @logged_tool
    async def notebook_query(
        self,
        notebook_id: str,
        query: str,
        source_ids: list[str] | str | None = None,
        conversation_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Ask AI about EXISTING sources already in notebook. NOT for finding new sources.

        Use research_start instead for web search or Drive search.

        Args:
            notebook_id: Notebook UUID
            query: Question to ask
            source_ids: Source IDs to query (default: all)
            conversation_id: For follow-up questions
            timeout: Request timeout in seconds (default: --query-timeout)
        """
        result = await self.client.query(
            notebook_id,
            query,
            source_ids=_normalize_source_ids(source_ids),
            conversation_id=conversation_id,
            timeout=timeout,
        )
        if not result.answer:
            return {"status": "error", "error": "Query returned no answer", "conversation_id": result.conversation_id}
        return {"status": "success", **result.to_dict()}

    # =========================================================================
    # Research
    # =========================================================================

    @logged_tool
    async def research_start(
        self,
        query: str,
        notebook_id: str,
        source: str = "web",
        mode: str = "fast",
    ) -> dict[str, Any]:
        """Search the web or Drive for NEW sources to import.

        Args:
            query: What to search for
            notebook_id: Notebook UUID to attach the research to
            source: web|drive
            mode: fast (~30s, ~10 sources) | deep (~5min, ~40 sources, web only)
        """
        task = await self.client.start_research(notebook_id, query, source, mode)
        return {
            "status": "success",
            **task,
            "message": "Research started. Use research_status to check progress.",
        }

    @logged_tool
    async def research_status(
        self,
        notebook_id: str,
        poll_interval: int = 30,
        max_wait: int = 300,
        compact: bool = True,
        task_id: str | None = None,
    ) -> dict[str, Any]:
        """Poll research progress. Blocks until complete or timeout.

        Args:
            notebook_id: Notebook UUID
            poll_interval: Seconds between polls (default: 30)
            max_wait: Max seconds to wait (default: 300, 0=single poll)
            compact: Truncate report and source list to save tokens
            task_id: Optional task ID to poll for a specific research task
        """
        start_time = time.monotonic()
        polls = 0
        while True:
            polls += 1
            task = await self.client.poll_research(notebook_id, task_id)
            elapsed = time.monotonic() - start_time

            if task is None and not task_id:
                return {"status": "success", "research": {"status": "no_research", "polls_made": polls}}

            done = task is not None and task.is_complete
            if done or max_wait == 0 or elapsed >= max_wait:
                if task is None:
                    return {"status": "error", "error": f"Research task {task_id} not found"}
                research = task.to_dict()
                research["polls_made"] = polls
                research["wait_time_seconds"] = round(elapsed, 1)
                if not done:
                    research["message"] = (
                        f"Research still in progress after {round(elapsed, 1)}s. "
                        "Call research_status again to continue waiting."
                    )
                if compact:
                    research = _compact_research(research)
                return {"status": "success", "research": research}

            await asyncio.sleep(poll_interval)

    @logged_tool
    async def research_import(
        self,
        notebook_id: str,
        task_id: str,
        source_indices: list[int] | None = None,
    ) -> dict[str, Any]:
        """Import discovered sources into the notebook.

        Args:
            notebook_id: Notebook UUID
            task_id: Research task ID
            source_indices: Source indices to import (default: all)
        """
        imported = await self.client.import_research(notebook_id, task_id, source_indices)
        return {
            "status": "success",
            "imported_count": len(imported),
            "imported_sources": imported,
        }

    # =========================================================================
    # Studio
    # =========================================================================

    @logged_tool
    async def audio_overview_create(
        self,
        notebook_id: str,
        source_ids: list[str] | None = None,
        format: str = "deep_dive",
        length: str = "default",
        language: str = "en",
        focus_prompt: str = "",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate audio overview. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            source_ids: Source IDs (default: all)
            format: deep_dive|brief|critique|debate
            length: short|default|long
            language: BCP-47 code (en, es, fr, de, ja)
            focus_prompt: Optional focus text
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating the audio overview", {
                "notebook_id": notebook_id,
                "format": format,
                "length": length,
                "language": language,
                "focus_prompt": focus_prompt or "(none)",
                "source_ids": source_ids or "all sources",
            })
        constants.AUDIO_FORMATS.get_code(format)
        constants.AUDIO_LENGTHS.get_code(length)
        ids = await self._studio_sources(notebook_id, source_ids, "audio overview")
        artifact = await self.client.create_audio_overview(notebook_id, ids, format, length, language, focus_prompt)
        return self._studio_started(notebook_id, artifact, "Audio", format=format, length=length, language=language)

    @logged_tool
    async def video_overview_create(
        self,
        notebook_id: str,
        source_ids: list[str] | None = None,
        format: str = "explainer",
        visual_style: str = "auto_select",
        language: str = "en",
        focus_prompt: str = "",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate video overview. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            source_ids: Source IDs (default: all)
            format: explainer|brief
            visual_style: auto_select|classic|whiteboard|kawaii|anime|watercolor|retro_print|heritage|paper_craft
            language: BCP-47 code
            focus_prompt: Optional focus text
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating the video overview", {
                "notebook_id": notebook_id,
                "format": format,
                "visual_style": visual_style,
                "language": language,
                "focus_prompt": focus_prompt or "(none)",
                "source_ids": source_ids or "all sources",
            })
        constants.VIDEO_FORMATS.get_code(format)
        constants.VIDEO_STYLES.get_code(visual_style)
        ids = await self._studio_sources(notebook_id, source_ids, "video overview")
        artifact = await self.client.create_video_overview(notebook_id, ids, format, visual_style, language, focus_prompt)
        return self._studio_started(notebook_id, artifact, "Video", format=format, visual_style=visual_style)

    @logged_tool
    async def infographic_create(
        self,
        notebook_id: str,
        source_ids: list[str] | None = None,
        orientation: str = "landscape",
        detail_level: str = "standard",
        language: str = "en",
        focus_prompt: str = "",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate infographic. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            source_ids: Source IDs (default: all)
            orientation: landscape|portrait|square
            detail_level: concise|standard|detailed
            language: BCP-47 code
            focus_prompt: Optional focus text
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating the infographic", {
                "notebook_id": notebook_id,
                "orientation": orientation,
                "detail_level": detail_level,
                "language": language,
                "focus_prompt": focus_prompt or "(none)",
                "source_ids": source_ids or "all sources",
            })
        constants.INFOGRAPHIC_ORIENTATIONS.get_code(orientation)
        constants.INFOGRAPHIC_DETAILS.get_code(detail_level)
        ids = await self._studio_sources(notebook_id, source_ids, "infographic")
        artifact = await self.client.create_infographic(notebook_id, ids, orientation, detail_level, language, focus_prompt)
        return self._studio_started(notebook_id, artifact, "Infographic", orientation=orientation)

    @logged_tool
    async def slide_deck_create(
        self,
        notebook_id: str,
        source_ids: list[str] | None = None,
        format: str = "detailed_deck",
        length: str = "default",
        language: str = "en",
        focus_prompt: str = "",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate slide deck. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            source_ids: Source IDs (default: all)
            format: detailed_deck|presenter_slides
            length: short|default
            language: BCP-47 code
            focus_prompt: Optional focus text
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating the slide deck", {
                "notebook_id": notebook_id,
                "format": format,
                "length": length,
                "language": language,
                "focus_prompt": focus_prompt or "(none)",
                "source_ids": source_ids or "all sources",
            })
        constants.SLIDE_DECK_FORMATS.get_code(format)
        constants.SLIDE_DECK_LENGTHS.get_code(length)
        ids = await self._studio_sources(notebook_id, source_ids, "slide deck")
        artifact = await self.client.create_slide_deck(notebook_id, ids, format, length, language, focus_prompt)
        return self._studio_started(notebook_id, artifact, "Slide deck", format=format, length=length)

    @logged_tool
    async def report_create(
        self,
        notebook_id: str,
        source_ids: list[str] | None = None,
        report_format: str = "Briefing Doc",
        custom_prompt: str = "",
        language: str = "en",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate report. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            source_ids: Source IDs (default: all)
            report_format: "Briefing Doc"|"Study Guide"|"Blog Post"|"Create Your Own"
            custom_prompt: Required for "Create Your Own"
            language: BCP-47 code
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating the report", {
                "notebook_id": notebook_id,
                "report_format": report_format,
                "custom_prompt": custom_prompt or "(none)",
                "language": language,
                "source_ids": source_ids or "all sources",
            })
        ids = await self._studio_sources(notebook_id, source_ids, "report")
        artifact = await self.client.create_report(notebook_id, ids, report_format, custom_prompt, language)
        return self._studio_started(notebook_id, artifact, "Report", report_format=report_format)

    @logged_tool
    async def flashcards_create(
        self,
        notebook_id: str,
        source_ids: list[str] | None = None,
        difficulty: str = "medium",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate flashcards. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            source_ids: Source IDs (default: all)
            difficulty: easy|medium|hard
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating flashcards", {
                "notebook_id": notebook_id,
                "difficulty": difficulty,
                "source_ids": source_ids or "all sources",
            })
        ids = await self._studio_sources(notebook_id, source_ids, "flashcards")
        artifact = await self.client.create_flashcards(notebook_id, ids, difficulty)
        return self._studio_started(notebook_id, artifact, "Flashcard", difficulty=difficulty)

    @logged_tool
    async def quiz_create(
        self,
        notebook_id: str,
        source_ids: list[str] | None = None,
        question_count: int = constants.QUIZ_QUESTION_COUNT_DEFAULT,
        difficulty: str = "medium",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate quiz. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            source_ids: Source IDs (default: all)
            question_count: Number of questions (default: 5)
            difficulty: easy|medium|hard
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating the quiz", {
                "notebook_id": notebook_id,
                "question_count": question_count,
                "difficulty": difficulty,
                "source_ids": source_ids or "all sources",
            })
        ids = await self._studio_sources(notebook_id, source_ids, "quiz")
        artifact = await self.client.create_quiz(notebook_id, ids, question_count, difficulty)
        return self._studio_started(notebook_id, artifact, "Quiz", question_count=question_count)

    @logged_tool
    async def data_table_create(
        self,
        notebook_id: str,
        description: str,
        source_ids: list[str] | None = None,
        language: str = "en",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate data table. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            description: What data to extract into the table
            source_ids: Source IDs (default: all)
            language: BCP-47 code
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating the data table", {
                "notebook_id": notebook_id,
                "description": description,
                "language": language,
                "source_ids": source_ids or "all sources",
            })
        ids = await self._studio_sources(notebook_id, source_ids, "data table")
        artifact = await self.client.create_data_table(notebook_id, ids, description, language)
        return self._studio_started(notebook_id, artifact, "Data table", description=description)

    @logged_tool
    async def mind_map_create(
        self,
        notebook_id: str,
        source_ids: list[str] | None = None,
        title: str = "Mind Map",
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Generate and save a mind map. Requires confirm=True after user approval.

        Args:
            notebook_id: Notebook UUID
            source_ids: Source IDs (default: all)
            title: Display title
            confirm: Must be True after user approval
        """
        if not confirm:
            return _confirmation_required("creating the mind map", {
                "notebook_id": notebook_id,
                "title": title,
                "source_ids": source_ids or "all sources",
            })
        ids = await self._studio_sources(notebook_id, source_ids, "mind map")
        mind_map = await self.client.create_mind_map(notebook_id, ids, title)
        return {
            "status": "success",
            **mind_map,
            "message": "Mind map created.",
            "notebook_url": f"{constants.BASE_URL}/notebook/{notebook_id}",
        }

    @logged_tool
    async def studio_status(self, notebook_id: str) -> dict[str, Any]:
        """Check studio content generation status and get URLs.

        Args:
            notebook_id: Notebook UUID
        """
        artifacts = [artifact.to_dict() for artifact in await self.client.poll_studio(notebook_id)]
        for mind_map in await self.client.list_mind_maps(notebook_id):
            artifacts.append({
                "artifact_id": mind_map["mind_map_id"],
                "type": "mind_map",
                "title": mind_map["title"],
                "status": "completed",
                "created_at": mind_map["created_at"],
            })

        return {
            "status": "success",
            "notebook_id": notebook_id,
            "summary": {
                "total": len(artifacts),
                "completed": sum(1 for a in artifacts if a["status"] == "completed"),
                "in_progress": sum(1 for a in artifacts if a["status"] in ("pending", "generating")),
                "failed": sum(1 for a in artifacts if a["status"] == "failed"),
            },
            "artifacts": artifacts,
            "notebook_url": f"{constants.BASE_URL}/notebook/{notebook_id}",
        }

    @logged_tool
    async def studio_delete(self, notebook_id: str, artifact_id: str, confirm: bool = False) -> dict[str, Any]:
        """Delete studio artifact. IRREVERSIBLE. Requires confirm=True.

        Args:
            notebook_id: Notebook UUID
            artifact_id: Artifact UUID (from studio_status)
            confirm: Must be True after user approval
        """
        if not confirm:
            return _deletion_not_confirmed(
                "This action is IRREVERSIBLE. The artifact will be permanently deleted.",
                hint="First call studio_status to list artifacts with their IDs and titles.",
            )
        if not await self.client.delete_studio_artifact(artifact_id, notebook_id):
            return {"status": "error", "error": "Failed to delete artifact"}
        return {
            "status": "success",
            "message": f"Artifact {artifact_id} has been permanently deleted.",
            "notebook_id": notebook_id,
        }


def create_server(tools: NotebookTools) -> FastMCP:
    """Build the FastMCP app with every tool bound to ``tools``."""
    mcp = FastMCP(name="notebooklm", instructions=INSTRUCTIONS)

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> JSONResponse:
        return JSONResponse({
            "status": "healthy",
            "service": "notebooklm-rpc",
            "version": __version__,
        })

    for name in TOOL_NAMES:
        mcp.tool()(getattr(tools, name))
    return mcp


def _configure_debug_logging() -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))

    # Tool calls, plus wire traffic between this server and NotebookLM
    for name in ("notebooklm_rpc.mcp", "notebooklm_rpc.api"):
        debug_logger = logging.getLogger(name)
        debug_logger.setLevel(logging.DEBUG)
        debug_logger.addHandler(handler)


def main():
    """Run the tool server.

    Transports:
    - stdio (default): for desktop apps
    - http: streamable HTTP for network access
    - sse: legacy SSE transport
    """
    parser = argparse.ArgumentParser(
        description="NotebookLM RPC tool server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  NOTEBOOKLM_MCP_TRANSPORT     Transport type (stdio, http, sse)
  NOTEBOOKLM_MCP_HOST          Host to bind (default: 127.0.0.1)
  NOTEBOOKLM_MCP_PORT          Port to listen on (default: 8000)
  NOTEBOOKLM_MCP_PATH          MCP endpoint path (default: /mcp)
  NOTEBOOKLM_MCP_STATELESS     Enable stateless mode for scaling (true/false)
  NOTEBOOKLM_MCP_DEBUG         Enable debug logging for tool + API traffic (true/false)
  NOTEBOOKLM_QUERY_TIMEOUT     Query timeout in seconds (default: 120.0)
  NOTEBOOKLM_API_KEY           Bearer token required on HTTP/SSE requests

Examples:
  notebooklm-rpc                              # Default stdio transport
  notebooklm-rpc --transport http --port 3000 # HTTP on custom port
  notebooklm-rpc --debug                      # Log tool calls + NotebookLM API traffic
""",
    )
    parser.add_argument(
        "--transport", "-t",
        choices=["stdio", "http", "sse"],
        default=os.environ.get("NOTEBOOKLM_MCP_TRANSPORT", "stdio"),
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host", "-H",
        default=os.environ.get("NOTEBOOKLM_MCP_HOST", "127.0.0.1"),
        help="Host to bind for HTTP/SSE (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=int(os.environ.get("NOTEBOOKLM_MCP_PORT", "8000")),
        help="Port for HTTP/SSE transport (default: 8000)",
    )
    parser.add_argument(
        "--path",
        default=os.environ.get("NOTEBOOKLM_MCP_PATH", "/mcp"),
        help="MCP endpoint path for HTTP (default: /mcp)",
    )
    parser.add_argument(
        "--stateless",
        action="store_true",
        default=os.environ.get("NOTEBOOKLM_MCP_STATELESS", "").lower() == "true",
        help="Enable stateless mode for horizontal scaling",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=os.environ.get("NOTEBOOKLM_MCP_DEBUG", "").lower() == "true",
        help="Enable debug logging (tool calls + NotebookLM API requests/responses)",
    )
    parser.add_argument(
        "--query-timeout",
        type=float,
        default=float(os.environ.get("NOTEBOOKLM_QUERY_TIMEOUT", str(constants.QUERY_TIMEOUT))),
        help="Query timeout in seconds (default: 120.0)",
    )
    parser.add_argument(
        "--api-key",
        default=os.environ.get("NOTEBOOKLM_API_KEY"),
        help="API key for HTTP/SSE authentication (also via NOTEBOOKLM_API_KEY)",
    )
    args = parser.parse_args()

    global _api_key
    _api_key = args.api_key

    if args.debug:
        _configure_debug_logging()

    mcp = create_server(NotebookTools(query_timeout=args.query_timeout))

    if args.transport == "stdio":
        # stdio must stay silent on stdout
        mcp.run()
        return 0

    endpoint = args.path if args.transport == "http" else "/sse"
    print(f"Starting NotebookLM RPC server ({args.transport.upper()}) on http://{args.host}:{args.port}{endpoint}")
    print(f"Health check: http://{args.host}:{args.port}/health")
    if _api_key:
        print("API key authentication: ENABLED")
    else:
        print("WARNING: No API key set. Server is publicly accessible!")
        print("         Use --api-key or NOTEBOOKLM_API_KEY to secure your server.")

    if _api_key:
        import uvicorn

        if args.transport == "http":
            base_app = mcp.http_app(path=args.path, stateless_http=args.stateless)
        else:
            base_app = mcp.http_app(transport="sse")
        uvicorn.run(APIKeyAuthMiddleware(base_app), host=args.host, port=args.port)
    elif args.transport == "http":
        mcp.run(transport="http", host=args.host, port=args.port, path=args.path, stateless_http=args.stateless)
    else:
        mcp.run(transport="sse", host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    exit(main())
