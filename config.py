import logging.handlers
import os
import platform
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Tuple

from dotenv import load_dotenv

# Import all model constants
from models import *

# Load environment variables from .env file
load_dotenv()

# --- Path Constants ---
TOP_LEVEL_DIR = Path.cwd()
LOGS_DIR = TOP_LEVEL_DIR / "logs"

# Log Files
LOG_FILE_APP = LOGS_DIR / "app.log"
TOOL_LOG_FILE = LOGS_DIR / "tool.log"

# --- Logging Constants ---
LOG_LEVEL_CONSOLE = "INFO"
LOG_LEVEL_FILE = "DEBUG"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5
OS_NAME = platform.system()

# --- Remote Services ---
AI_SERVICE_URL = "https://embeddable.co"
AWS_ACCESS_KEY_ID = ""
AWS_SECRET_ACCESS_KEY = ""
AWS_REGION = "us-west-2"
WIDGET_UPDATE_FUNCTION = "embeddable-widget-src-update"
COMMONNINJA_SECRET = ""
EMBEDDINGS_MONGODB_URI = ""
# Stored widget sources, one document per code chunk
WIDGET_SOURCE_DATABASE = "embeddable-core"
WIDGET_SOURCE_COLLECTION = "embedded_files"
# Search chunks with their embedding vectors
EMBEDDINGS_DATABASE = "ai"
EMBEDDINGS_COLLECTION = "embeddings"
VECTOR_SEARCH_INDEX = "vector_index"
REMOTE_TIMEOUT_SECONDS = 45
WIDGET_INDEXING_ENABLED = False

# --- Engine Limits ---
VIEW_DEFAULT_LINES = 500
SEARCH_CONTEXT_LINES = 3
SEARCH_LIMIT = 10
SEMANTIC_MIN_SCORE = 0.4

# Packages pre-installed in every widget build; imports of these are never
# reported by the code checker. Entries ending in "/" match by prefix.
DEFAULT_IGNORED_IMPORTS: Tuple[str, ...] = (
    "@embeddable/sdk",
    "@hookform/resolvers",
    "@radix-ui/react-accordion",
    "@radix-ui/react-avatar",
    "@radix-ui/react-checkbox",
    "@radix-ui/react-collapsible",
    "@radix-ui/react-dialog",
    "@radix-ui/react-dropdown-menu",
    "@radix-ui/react-hover-card",
    "@radix-ui/react-icons",
    "@radix-ui/react-label",
    "@radix-ui/react-menubar",
    "@radix-ui/react-navigation-menu",
    "@radix-ui/react-popover",
    "@radix-ui/react-progress",
    "@radix-ui/react-radio-group",
    "@radix-ui/react-scroll-area",
    "@radix-ui/react-select",
    "@radix-ui/react-separator",
    "@radix-ui/react-slider",
    "@radix-ui/react-slot",
    "@radix-ui/react-switch",
    "@radix-ui/react-tabs",
    "@radix-ui/react-toggle",
    "@radix-ui/react-toggle-group",
    "@radix-ui/react-tooltip",
    "@radix-ui/themes",
    "@tailwindcss/vite",
    "@tanstack/react-table",
    "@/components/ui/",
    "chart.js",
    "class-variance-authority",
    "clsx",
    "cmdk",
    "date-fns",
    "embla-carousel-react",
    "input-otp",
    "lucide-react",
    "motion",
    "next-themes",
    "react",
    "react-chartjs-2",
    "react-day-picker",
    "react-dom",
    "react-hook-form",
    "react-resizable-panels",
    "react-spring",
    "recharts",
    "sonner",
    "tailwind-merge",
    "tailwindcss",
    "three",
    "vaul",
    "zod",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}


# --- Constants Management ---

def get_constants() -> dict:
    """Return the module defaults that can be overridden from the environment."""
    return {
        "TOP_LEVEL_DIR": TOP_LEVEL_DIR,
        "LOGS_DIR": LOGS_DIR,
        "LOG_FILE_APP": LOG_FILE_APP,
        "TOOL_LOG_FILE": TOOL_LOG_FILE,
        "LOG_LEVEL_CONSOLE": LOG_LEVEL_CONSOLE,
        "LOG_LEVEL_FILE": LOG_LEVEL_FILE,
        "LOG_MAX_BYTES": LOG_MAX_BYTES,
        "LOG_BACKUP_COUNT": LOG_BACKUP_COUNT,
        "OS_NAME": OS_NAME,
        "EMBEDDING_MODEL": EMBEDDING_MODEL,
        "AI_SERVICE_URL": AI_SERVICE_URL,
        "AWS_ACCESS_KEY_ID": AWS_ACCESS_KEY_ID,
        "AWS_SECRET_ACCESS_KEY": AWS_SECRET_ACCESS_KEY,
        "AWS_REGION": AWS_REGION,
        "WIDGET_UPDATE_FUNCTION": WIDGET_UPDATE_FUNCTION,
        "COMMONNINJA_SECRET": COMMONNINJA_SECRET,
        "EMBEDDINGS_MONGODB_URI": EMBEDDINGS_MONGODB_URI,
        "WIDGET_SOURCE_DATABASE": WIDGET_SOURCE_DATABASE,
        "WIDGET_SOURCE_COLLECTION": WIDGET_SOURCE_COLLECTION,
        "EMBEDDINGS_DATABASE": EMBEDDINGS_DATABASE,
        "EMBEDDINGS_COLLECTION": EMBEDDINGS_COLLECTION,
        "VECTOR_SEARCH_INDEX": VECTOR_SEARCH_INDEX,
        "REMOTE_TIMEOUT_SECONDS": REMOTE_TIMEOUT_SECONDS,
        "WIDGET_INDEXING_ENABLED": WIDGET_INDEXING_ENABLED,
        "VIEW_DEFAULT_LINES": VIEW_DEFAULT_LINES,
        "SEARCH_CONTEXT_LINES": SEARCH_CONTEXT_LINES,
        "SEARCH_LIMIT": SEARCH_LIMIT,
        "SEMANTIC_MIN_SCORE": SEMANTIC_MIN_SCORE,
    }


def get_constant(name: str, default: Any = None) -> Any:
    """Look up a constant, preferring the environment over the module default.

    Environment values are coerced to the type of the module default, and
    names containing DIR/FILE come back as ``Path`` objects.
    """
    constants = get_constants()
    fallback = constants.get(name, default)
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return fallback

    if isinstance(fallback, bool):
        return raw.strip().lower() in _TRUE_VALUES
    if isinstance(fallback, int):
        try:
            return int(raw)
        except ValueError:
            logging.warning(f"Ignoring non-integer value for {name}: {raw!r}")
            return fallback
    if isinstance(fallback, float):
        try:
            return float(raw)
        except ValueError:
            logging.warning(f"Ignoring non-numeric value for {name}: {raw!r}")
            return fallback
    if ("DIR" in name.upper() or "FILE" in name.upper()) and "URL" not in name.upper():
        return Path(raw)
    return raw


def require_constant(name: str, *aliases: str) -> str:
    """Return a non-empty setting or raise ``ConfigurationMissing``.

    ``aliases`` are older variable names checked in order when ``name`` is unset.
    """
    from tools.base import ConfigurationMissing

    for candidate in (name, *aliases):
        value = get_constant(candidate)
        if value:
            return str(value)
    raise ConfigurationMissing(f"{name} environment variable is required")


@dataclass(frozen=True)
class WidgetSettings:
    """Tunables shared by the widget engines, passed in at construction."""

    view_default_lines: int = VIEW_DEFAULT_LINES
    search_context_lines: int = SEARCH_CONTEXT_LINES
    search_limit: int = SEARCH_LIMIT
    semantic_min_score: float = SEMANTIC_MIN_SCORE
    remote_timeout_seconds: float = REMOTE_TIMEOUT_SECONDS
    embedding_model: str = EMBEDDING_MODEL
    ignored_imports: Tuple[str, ...] = field(default=DEFAULT_IGNORED_IMPORTS)

    @classmethod
    def from_env(cls) -> "WidgetSettings":
        return cls(
            view_default_lines=get_constant("VIEW_DEFAULT_LINES"),
            search_context_lines=get_constant("SEARCH_CONTEXT_LINES"),
            search_limit=get_constant("SEARCH_LIMIT"),
            semantic_min_score=float(get_constant("SEMANTIC_MIN_SCORE")),
            remote_timeout_seconds=float(get_constant("REMOTE_TIMEOUT_SECONDS")),
            embedding_model=get_constant("EMBEDDING_MODEL"),
        )

    def with_ignored_imports(self, extra: Optional[list] = None) -> "WidgetSettings":
        """Return settings whose ignored-import list also covers ``extra``."""
        if not extra:
            return self
        merged = tuple(self.ignored_imports) + tuple(p for p in extra if p not in self.ignored_imports)
        return replace(self, ignored_imports=merged)


# --- Logging Setup ---

_LOGGING_CONFIGURED = False


def setup_logging(logs_dir: Optional[Path] = None) -> logging.Logger:
    """Set up logging for the application.

    Installs a rotating file handler and a console handler on the root
    logger. Calling it again is a no-op.
    """
    global _LOGGING_CONFIGURED
    logger = logging.getLogger()
    if _LOGGING_CONFIGURED:
        return logger
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s')

    log_dir = Path(logs_dir) if logs_dir else get_constant("LOGS_DIR")
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / LOG_FILE_APP.name,
        maxBytes=get_constant("LOG_MAX_BYTES"),
        backupCount=get_constant("LOG_BACKUP_COUNT"),
        encoding='utf-8'
    )
    file_level = getattr(logging, str(get_constant("LOG_LEVEL_FILE")).upper(), logging.DEBUG)
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_level = getattr(logging, str(get_constant("LOG_LEVEL_CONSOLE")).upper(), logging.INFO)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    logger.addHandler(console_handler)

    # Suppress verbose logs
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('openai').setLevel(logging.WARNING)
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('aiobotocore').setLevel(logging.WARNING)
    logging.getLogger('pymongo').setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
    logging.info("Logging setup complete.")
    return logger
