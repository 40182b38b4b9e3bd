"""Human-readable request log file, newest entry first."""
from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = ("password", "token", "secret", "credential")
MAX_RESPONSE_CHARS = 1000
SEPARATOR = "═" * 80
LOG_TZ = ZoneInfo("Asia/Shanghai")


@dataclass
class LogEntry:
    method: str
    url: str
    status_code: int
    duration_ms: int
    ip: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(LOG_TZ))
    user_agent: Optional[str] = None
    query: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    response: Any = None
    error: Optional[str] = None


def mask_sensitive(body: Any) -> Any:
    if not isinstance(body, dict):
        return body
    masked = dict(body)
    for key in SENSITIVE_FIELDS:
        if key in masked:
            masked[key] = "***"
    return masked or None


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "[unserializable]"


def format_entry(entry: LogEntry) -> str:
    lines = [
        SEPARATOR,
        f"time: {entry.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
        f"{entry.method} {entry.url}",
        f"status: {entry.status_code} | duration: {entry.duration_ms}ms",
        f"ip: {entry.ip}",
    ]
    if entry.user_agent:
        lines.append(f"ua: {entry.user_agent}")
    if entry.query:
        lines.append(f"query: {_stringify(entry.query)}")
    if entry.body:
        lines.append(f"body: {_stringify(entry.body)}")
    if entry.response is not None:
        text = _stringify(entry.response)
        if len(text) > MAX_RESPONSE_CHARS:
            text = text[:MAX_RESPONSE_CHARS] + "...(truncated)"
        lines.append(f"response: {text}")
    if entry.error:
        lines.append(f"error: {entry.error}")
    lines.append("")
    return "\n".join(lines) + "\n"


class RequestLog:
    """Prepends formatted entries to a single file and caps its length."""

    def __init__(self, path: str, max_lines: int = 10000) -> None:
        self.path = path
        self.max_lines = max_lines
        self._lock = threading.Lock()

    def write(self, entry: LogEntry) -> None:
        """Record an entry; failures are logged and never raised."""
        text = format_entry(entry)
        with self._lock:
            try:
                os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
                existing = ""
                if os.path.exists(self.path):
                    with open(self.path, "r", encoding="utf-8") as handle:
                        existing = handle.read()
                lines = (text + existing).split("\n")
                with open(self.path, "w", encoding="utf-8") as handle:
                    handle.write("\n".join(lines[: self.max_lines]))
            except OSError:
                logger.exception("Failed to write request log %s", self.path)

    def recent(self, lines: int = 100) -> str:
        with self._lock:
            if not os.path.exists(self.path):
                return ""
            with open(self.path, "r", encoding="utf-8") as handle:
                return "\n".join(handle.read().split("\n")[:lines])

    def clear(self) -> None:
        with self._lock:
            if os.path.exists(self.path):
                with open(self.path, "w", encoding="utf-8"):
                    pass
        logger.info("Request log cleared")
