"""
Wire constants and code mappings for the NotebookLM RPC transport.

Everything positional about the protocol that is not a parameter tree lives
here: endpoint paths, RPC identifiers, timeouts, and the closed enumerations
the server encodes as small integers.
"""

from .errors import ValidationError


class CodeMapper:
    """
    Bidirectional name <-> code mapping for one closed enumeration.

    Names are matched case-insensitively. Unknown names raise ValidationError
    listing the valid options; unknown codes decode to ``unknown_label``.
    """

    def __init__(self, mapping: dict[str, int], unknown_label: str = "unknown"):
        self._name_to_code: dict[str, int] = {k.lower(): v for k, v in mapping.items()}
        self._code_to_name: dict[int, str] = {v: k for k, v in mapping.items()}
        self._unknown_label = unknown_label
        self._display_names = sorted(mapping)

    def get_code(self, name: str) -> int:
        """
        Get the integer code for a name.

        Raises:
            ValidationError: If the name is empty or not part of the mapping.
        """
        if not name:
            raise ValidationError(f"Invalid name: '{name}'. Must be one of: {self.options_str}")

        code = self._name_to_code.get(name.lower())
        if code is None:
            raise ValidationError(f"Unknown name '{name}'. Must be one of: {self.options_str}")
        return code

    def get_name(self, code: int | None) -> str:
        """Get the name for a code, or the unknown label."""
        if code is None:
            return self._unknown_label
        return self._code_to_name.get(code, self._unknown_label)

    @property
    def options_str(self) -> str:
        return ", ".join(self._display_names)

    @property
    def names(self) -> list[str]:
        return list(self._display_names)


# =============================================================================
# Endpoints
# =============================================================================
BASE_URL = "https://notebooklm.google.com"
BATCHEXECUTE_PATH = "/_/LabsTailwindUi/data/batchexecute"
QUERY_PATH = (
    "/_/LabsTailwindUi/data/google.internal.labs.tailwind.orchestration.v1."
    "LabsTailwindOrchestrationService/GenerateFreeFormStreamed"
)
LOGIN_HOST = "accounts.google.com"

# Fallback when neither the credential record nor NOTEBOOKLM_BL carries a build label
DEFAULT_BL = "boq_labs-tailwind-frontend_20260218.06_p0"

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
)

# =============================================================================
# Response envelope markers
# =============================================================================
XSSI_PREFIX = ")]}'"
RESULT_MARKER = "wrb.fr"
SESSION_ROTATION_MARKER = "af.httprm"
AUTH_EXPIRED_CODE = 16

# =============================================================================
# Timeouts (seconds)
# =============================================================================
DEFAULT_TIMEOUT = 30.0
EXTENDED_TIMEOUT = 120.0  # source adds, research import, drive sync
QUERY_TIMEOUT = 120.0
PAGE_FETCH_TIMEOUT = 15.0
WARMUP_TIMEOUT = 5.0
SETTLE_DELAY = 1.0

# =============================================================================
# Credentials
# =============================================================================
REQUIRED_COOKIES = ("SID", "HSID", "SSID", "APISID", "SAPISID")

# =============================================================================
# RPC identifiers
# =============================================================================
RPC_LIST_NOTEBOOKS = "wXbhsf"
RPC_GET_NOTEBOOK = "rLM1Ne"
RPC_CREATE_NOTEBOOK = "CCqFvf"
RPC_RENAME_NOTEBOOK = "s0tc2d"  # also carries chat settings
RPC_DELETE_NOTEBOOK = "WWINqb"
RPC_ADD_SOURCE = "izAoDd"  # URL, text and Drive sources
RPC_GET_SOURCE = "hizoJc"
RPC_CHECK_FRESHNESS = "yR9Yof"
RPC_SYNC_DRIVE = "FLmJqe"
RPC_DELETE_SOURCE = "tGMBJ"
RPC_GET_CONVERSATIONS = "hPTbtc"
RPC_PREFERENCES = "hT54vc"
RPC_SUBSCRIPTION = "ozz5Z"
RPC_SETTINGS = "ZwVcOc"  # side-effect free, used as the warm-up call
RPC_GET_SUMMARY = "VfAZjd"
RPC_GET_SOURCE_GUIDE = "tr032e"
RPC_START_FAST_RESEARCH = "Ljjv0c"
RPC_START_DEEP_RESEARCH = "QA9ei"
RPC_POLL_RESEARCH = "e3bVqc"
RPC_IMPORT_RESEARCH = "LBwxtb"
RPC_CREATE_STUDIO = "R7cb6c"
RPC_POLL_STUDIO = "gArtLc"
RPC_DELETE_STUDIO = "V5N4be"
RPC_GENERATE_MIND_MAP = "yyryJe"
RPC_SAVE_MIND_MAP = "CYK0Xb"
RPC_LIST_MIND_MAPS = "cFji9"
RPC_DELETE_MIND_MAP = "AH0mwd"

# Debug-log names for RPC identifiers
RPC_NAMES = {
    value: name[len("RPC_"):].lower()
    for name, value in dict(globals()).items()
    if name.startswith("RPC_") and isinstance(value, str)
}

WARMUP_PARAMS = [None, 1]
STUDIO_POLL_FILTER = 'NOT artifact.status = "ARTIFACT_STATUS_SUGGESTED"'

# Trailing client-context blocks the web UI attaches to mutating calls
CLIENT_CONTEXT = [2]
PROJECT_CONTEXT = [1, None, None, None, None, None, None, None, None, None, [1]]

# =============================================================================
# Ownership
# =============================================================================
OWNERSHIP_MINE = 1
OWNERSHIP_SHARED = 2

# =============================================================================
# Chat configuration
# =============================================================================
CHAT_GOALS = CodeMapper({"default": 1, "custom": 2, "learning_guide": 3})
CHAT_RESPONSE_LENGTHS = CodeMapper({"default": 1, "longer": 4, "shorter": 5})
CHAT_CUSTOM_PROMPT_MAX = 10000

# =============================================================================
# Research
# =============================================================================
RESEARCH_SOURCES = CodeMapper({"web": 1, "drive": 2})
RESEARCH_MODES = CodeMapper({"fast": 1, "deep": 5})
RESULT_TYPES = CodeMapper({
    "web": 1,
    "google_doc": 2,
    "google_slides": 3,
    "deep_report": 5,
    "google_sheets": 8,
})
RESEARCH_STATUSES = CodeMapper(
    {"in_progress": 1, "completed": 2, "imported": 6},
    unknown_label="in_progress",
)

DRIVE_MIME_TYPES = {
    2: "application/vnd.google-apps.document",
    3: "application/vnd.google-apps.presentation",
    8: "application/vnd.google-apps.spreadsheet",
}

# =============================================================================
# Sources (notebook content)
# =============================================================================
SOURCE_TYPES = CodeMapper({
    "google_docs": 1,
    "google_slides_sheets": 2,
    "pdf": 3,
    "pasted_text": 4,
    "web_page": 5,
    "generated_text": 8,
    "youtube": 9,
    "uploaded_file": 11,
    "image": 13,
    "word_doc": 14,
})
SYNCABLE_SOURCE_TYPES = (1, 2)

# =============================================================================
# Studio
# =============================================================================
STUDIO_TYPES = CodeMapper({
    "audio": 1,
    "report": 2,
    "video": 3,
    "flashcards": 4,  # quizzes share this type
    "infographic": 7,
    "slide_deck": 8,
    "data_table": 9,
})
STUDIO_STATUSES = CodeMapper(
    {"pending": 1, "generating": 2, "completed": 3, "failed": 4},
    unknown_label="pending",
)

AUDIO_FORMATS = CodeMapper({"deep_dive": 1, "brief": 2, "critique": 3, "debate": 4})
AUDIO_LENGTHS = CodeMapper({"short": 1, "default": 2, "long": 3})

VIDEO_FORMATS = CodeMapper({"explainer": 1, "brief": 2})
VIDEO_STYLES = CodeMapper({
    "auto_select": 1,
    "custom": 2,
    "classic": 3,
    "whiteboard": 4,
    "kawaii": 5,
    "anime": 6,
    "watercolor": 7,
    "retro_print": 8,
    "heritage": 9,
    "paper_craft": 10,
})

INFOGRAPHIC_ORIENTATIONS = CodeMapper({"landscape": 1, "portrait": 2, "square": 3})
INFOGRAPHIC_DETAILS = CodeMapper({"concise": 1, "standard": 2, "detailed": 3})

SLIDE_DECK_FORMATS = CodeMapper({"detailed_deck": 1, "presenter_slides": 2})
SLIDE_DECK_LENGTHS = CodeMapper({"short": 1, "default": 3})

FLASHCARD_DIFFICULTIES = CodeMapper({"easy": 1, "medium": 2, "hard": 3})
FLASHCARD_COUNT_DEFAULT = 2
QUIZ_QUESTION_COUNT_DEFAULT = 5

REPORT_FORMAT_CUSTOM = "Create Your Own"
REPORT_FORMATS = {
    "Briefing Doc": {
        "title": "Briefing Doc",
        "description": "A comprehensive briefing document",
        "prompt": "Create a briefing document",
    },
    "Study Guide": {
        "title": "Study Guide",
        "description": "A study guide for the material",
        "prompt": "Create a study guide",
    },
    "Blog Post": {
        "title": "Blog Post",
        "description": "A blog post about the material",
        "prompt": "Create a blog post",
    },
    REPORT_FORMAT_CUSTOM: {
        "title": "Create Your Own",
        "description": "Custom report format",
        "prompt": "",
    },
}
