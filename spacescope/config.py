"""Runtime configuration, read once from the environment at import time."""
from __future__ import annotations

import os
from pathlib import Path

API_BASE_URL: str = os.getenv("SPACESCOPE_API_URL", "http://localhost:8080/api").rstrip("/")
"""Base URL of the space-program REST backend."""

API_TIMEOUT: float = float(os.getenv("SPACESCOPE_API_TIMEOUT", "30"))
"""Per-request timeout in seconds. No retries are attempted."""

PAGE_SIZE: int = int(os.getenv("SPACESCOPE_PAGE_SIZE", "500"))
"""Page-size hint sent with every list request."""

CACHE_TTL_SECONDS: float = float(os.getenv("SPACESCOPE_CACHE_TTL", "300"))
"""Age after which a cache entry is refetched on next access."""

DATA_DIR: Path = Path(os.getenv("SPACESCOPE_DATA_DIR", str(Path(__file__).parent / "data")))
"""Directory holding the favorites/preferences SQLite database."""
