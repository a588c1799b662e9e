"""
Configuration constants and environment setup.

Engine defaults are plain constants; only the host-level settings at the
bottom (API adapter, request log) come from the environment.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# =============================================================================
# PATHS
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent.parent
DB_PATH = Path(os.environ.get("TIMESYNC_DB_PATH", PROJECT_ROOT / "data" / "db" / "timesync.db"))

# =============================================================================
# UPSTREAM (CLOCKIFY)
# =============================================================================

CLOCKIFY_BASE_URL = "https://api.clockify.me/api/v1"
API_KEY_HEADER = "X-Api-Key"
HTTP_TIMEOUT_SECONDS = 30.0
PAGE_SIZE = 200  # Upstream allows up to 5000, smaller pages keep responses snappy

# Marker the upstream expects on brand-new entries
DEFAULT_ENTRY_TYPE = "REGULAR"

# =============================================================================
# RATE LIMITING
# =============================================================================

RATE_LIMIT_MAX_REQUESTS = 60
RATE_LIMIT_WINDOW_SECONDS = 60.0
RATE_LIMIT_STALE_SECONDS = 60.0  # Windows older than reset + this are swept

# =============================================================================
# BATCHED DELETES
# =============================================================================

BATCH_SIZE = 5
BATCH_DELAY_SECONDS = 1.0

# Upstream message fragments meaning "object is not in the claimed parent scope"
NOT_IN_SCOPE_PATTERNS = (
    "doesn't belong to",
    "does not belong to",
    "not belong to workspace",
)

# =============================================================================
# BULK INTAKE
# =============================================================================

REQUIRED_HEADERS = ("description", "start", "end")
TAG_SEPARATORS = r"[,;|]\s*"
TRUTHY_VALUES = {"true", "yes", "1", "y"}
PREVIEW_ROWS = 10

# =============================================================================
# API CONFIGURATION (from environment)
# =============================================================================

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))
API_DEBUG = os.environ.get("API_DEBUG", "false").lower() == "true"
API_RATE_LIMIT_MAX_REQUESTS = int(
    os.environ.get("API_RATE_LIMIT_MAX_REQUESTS", str(RATE_LIMIT_MAX_REQUESTS))
)
API_RATE_LIMIT_WINDOW_SECONDS = float(
    os.environ.get("API_RATE_LIMIT_WINDOW_SECONDS", str(RATE_LIMIT_WINDOW_SECONDS))
)
MIN_API_KEY_LENGTH = 10
MAX_LOGS_PER_CREDENTIAL = 1000
API_VERSION = "1.0.0"

# =============================================================================
# SCRIPTS (from environment)
# =============================================================================

CLOCKIFY_API_KEY = os.environ.get("CLOCKIFY_API_KEY", "")
CLOCKIFY_WORKSPACE_ID = os.environ.get("CLOCKIFY_WORKSPACE_ID", "")
DEFAULT_TIMEZONE = os.environ.get("TIMESYNC_TIMEZONE", "UTC")
