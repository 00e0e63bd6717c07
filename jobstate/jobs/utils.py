"""
Job Utilities

Shared helpers for hashing job options and formatting timestamps.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def canonical_json(value: Any) -> str:
    """JSON with sorted keys so equal payloads encode identically."""
    return json.dumps(value, sort_keys=True, default=str)


def options_digest(options: Optional[Dict[str, Any]]) -> str:
    """Content hash of a job's options, used as the default lock key."""
    return hashlib.sha1(canonical_json(options or {}).encode()).hexdigest()


def timestamp() -> str:
    """Current UTC time for status messages."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S %Z")
