"""Central configuration for the Lumina content pipeline."""

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


# --- API Config ---
LLM_API_KEY_ENV = os.getenv("LLM_API_KEY", "")
NVIDIA_API_KEY = os.getenv("NVIDIA_API_KEY", "")

# Determine which provider to use
# Priority: USE_LOCAL_OLLAMA > generic OpenAI-compatible key > NVIDIA NIM > unconfigured
USE_LOCAL_OLLAMA = os.getenv("USE_LOCAL_OLLAMA", "false").lower() == "true"

if USE_LOCAL_OLLAMA:
    LLM_API_KEY = "ollama"
    LLM_BASE_URL = "http://localhost:11434/v1"
    LLM_MODEL = os.getenv("OLLAMA_MODEL", "qwen2.5:14b")
    API_PROVIDER = "Local_Ollama"
elif LLM_API_KEY_ENV:
    LLM_API_KEY = LLM_API_KEY_ENV
    LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.openai.com/v1")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
    API_PROVIDER = os.getenv("LLM_PROVIDER_NAME", "OpenAI")
elif NVIDIA_API_KEY and len(NVIDIA_API_KEY) > 10:
    LLM_API_KEY = NVIDIA_API_KEY
    LLM_BASE_URL = "https://integrate.api.nvidia.com/v1"
    LLM_MODEL = os.getenv("LLM_MODEL", "meta/llama-3.3-70b-instruct")
    API_PROVIDER = "NVIDIA"
else:
    # No credentials: generation raises ConfigurationError until a key is set
    LLM_API_KEY = ""
    LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.openai.com/v1")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
    API_PROVIDER = "Unconfigured"

IS_LOCAL = API_PROVIDER == "Local_Ollama"

# --- Storage Config ---
# Empty path keeps everything in memory (single process only)
STORE_PATH = os.getenv("STORE_PATH", "output/lumina-store.json")
SOURCE_REGISTRY_PATH = os.getenv("SOURCE_REGISTRY_PATH", "")
ADMIN_USERS = [u.strip() for u in os.getenv("ADMIN_USERS", "").split(",") if u.strip()]

# --- Pipeline Config ---
_colon_window = os.getenv("TITLE_COLON_WINDOW")
TITLE_COLON_WINDOW = int(_colon_window) if _colon_window else 45

_display_title_threshold = os.getenv("DISPLAY_TITLE_THRESHOLD")
DISPLAY_TITLE_THRESHOLD = int(_display_title_threshold) if _display_title_threshold else 70

_discovery_max_items = os.getenv("DISCOVERY_MAX_ITEMS")
DISCOVERY_MAX_ITEMS = int(_discovery_max_items) if _discovery_max_items else 5

DISCOVERY_MAX_WORKERS = max(1, int(os.getenv("DISCOVERY_MAX_WORKERS", "4")))
FEED_TIMEOUT_SECONDS = float(os.getenv("FEED_TIMEOUT_SECONDS", "15"))
PAGE_TIMEOUT_SECONDS = float(os.getenv("PAGE_TIMEOUT_SECONDS", "5"))

WORKER_CONCURRENCY = max(1, int(os.getenv("WORKER_CONCURRENCY", "1")))
TASK_MAX_ATTEMPTS = max(1, int(os.getenv("TASK_MAX_ATTEMPTS", "3")))
TASK_MIN_BACKOFF_SECONDS = float(os.getenv("TASK_MIN_BACKOFF_SECONDS", "60"))

REQUEUE_CHUNK_SIZE = int(os.getenv("REQUEUE_CHUNK_SIZE", "100"))
STORE_BATCH_LIMIT = int(os.getenv("STORE_BATCH_LIMIT", "500"))

POSITIVITY_ON_FAILURE = os.getenv("POSITIVITY_ON_FAILURE", "downgrade").strip().lower()
GROUNDED_SEARCH = os.getenv("GROUNDED_SEARCH", "false").lower() == "true"

LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2400"))
LLM_MIN_REQUEST_INTERVAL_SECONDS = float(
    os.getenv("LLM_MIN_REQUEST_INTERVAL_SECONDS", "0.2" if IS_LOCAL else "1.0")
)

# User-Agent for feed and page fetches (Feed/页面抓取使用的 UA)
USER_AGENT = os.getenv(
    "LUMINA_USER_AGENT",
    "Lumina-Content-Pipeline/1.0 (+https://lumina.example/bot)",
)


# Supported category vocabulary (feed categories are intersected with this list)
SUPPORTED_CATEGORIES = [
    "Science & Technology",
    "Health & Wellness",
    "History & Culture",
    "Politics & Society",
    "Digital & Media Literacy",
    "Business & Finance",
    "Environment & Sustainability",
    "Education & Learning",
    "Arts, Media & Creativity",
]

VALID_MODES = ("discover", "generate", "admin", "maintenance")


@dataclass(frozen=True)
class Settings:
    """Snapshot of pipeline tunables passed into components."""

    title_colon_window: int = TITLE_COLON_WINDOW
    display_title_threshold: int = DISPLAY_TITLE_THRESHOLD
    discovery_max_items: int = DISCOVERY_MAX_ITEMS
    discovery_max_workers: int = DISCOVERY_MAX_WORKERS
    feed_timeout_seconds: float = FEED_TIMEOUT_SECONDS
    page_timeout_seconds: float = PAGE_TIMEOUT_SECONDS
    worker_concurrency: int = WORKER_CONCURRENCY
    task_max_attempts: int = TASK_MAX_ATTEMPTS
    task_min_backoff_seconds: float = TASK_MIN_BACKOFF_SECONDS
    requeue_chunk_size: int = REQUEUE_CHUNK_SIZE
    store_batch_limit: int = STORE_BATCH_LIMIT
    positivity_on_failure: str = POSITIVITY_ON_FAILURE
    grounded_search: bool = GROUNDED_SEARCH
    user_agent: str = USER_AGENT
    supported_categories: tuple[str, ...] = field(default=tuple(SUPPORTED_CATEGORIES))

    @staticmethod
    def from_env() -> "Settings":
        return Settings()


def validate_config(mode: str = "generate") -> tuple[bool, list[str]]:
    """
    检查运行所需配置 (Validate configuration for the given run mode).
    Returns (ok, errors).
    """
    errors: list[str] = []
    if mode not in VALID_MODES:
        errors.append(f"Unknown mode '{mode}', expected one of {', '.join(VALID_MODES)}")
        return False, errors

    if mode == "generate" and not IS_LOCAL and not LLM_API_KEY:
        errors.append(
            "LLM API key is not set. Define LLM_API_KEY (or NVIDIA_API_KEY) "
            "or set USE_LOCAL_OLLAMA=true."
        )
    if POSITIVITY_ON_FAILURE not in ("downgrade", "keep"):
        errors.append(
            f"POSITIVITY_ON_FAILURE must be 'downgrade' or 'keep', got '{POSITIVITY_ON_FAILURE}'"
        )
    if REQUEUE_CHUNK_SIZE <= 0 or REQUEUE_CHUNK_SIZE > 100:
        errors.append("REQUEUE_CHUNK_SIZE must be between 1 and 100 (queue enqueue limit)")
    if STORE_BATCH_LIMIT <= 0 or STORE_BATCH_LIMIT > 500:
        errors.append("STORE_BATCH_LIMIT must be between 1 and 500")
    return not errors, errors
