"""
Structured event logging for cache operations.

Every event goes to the standard `lesson_cache` logger in a readable
`[event] key=value` form and, when a log directory is configured, is also
appended as one JSON object per line for later analysis.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO


class StructuredLogger:
    """
    Logger that writes human-readable console lines and optional JSON lines.

    Usage:
        logger = StructuredLogger("lesson_cache", log_dir=Path("logs"))
        logger.info("content_removed", content_id="lesson-1")
    """

    def __init__(self, name: str, log_dir: Path | None = None):
        self.name = name
        self._logger = logging.getLogger(name)
        self._json_file: TextIO | None = None
        self._session = {"session_id": f"{int(time.time())}_{id(self)}"}

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self._json_file = open(  # noqa: SIM115
                log_dir / f"lesson_cache_{stamp}.jsonl", "a", encoding="utf-8"
            )

    @property
    def json_enabled(self) -> bool:
        return self._json_file is not None and not self._json_file.closed

    def _emit(self, level: int, event: str, context: dict[str, Any]) -> None:
        parts = [f"[{event}]"] + [f"{key}={value}" for key, value in context.items()]
        self._logger.log(level, " ".join(parts))

        if not self.json_enabled:
            return
        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": logging.getLevelName(level),
            "event": event,
            **self._session,
            **context,
        }
        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def debug(self, event: str, **context) -> None:
        self._emit(logging.DEBUG, event, context)

    def info(self, event: str, **context) -> None:
        self._emit(logging.INFO, event, context)

    def warning(self, event: str, **context) -> None:
        self._emit(logging.WARNING, event, context)

    def error(self, event: str, **context) -> None:
        self._emit(logging.ERROR, event, context)

    def close(self) -> None:
        """Close JSON log file."""
        if self.json_enabled:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class CacheEventLogger:
    """Named events emitted by the offline manager."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def download_started(self, content_id: str, media_count: int):
        self.logger.debug(
            "content_download_started", content_id=content_id, media_count=media_count
        )

    def download_completed(
        self, content_id: str, media_count: int, size_bytes: int, duration_s: float
    ):
        self.logger.info(
            "content_download_completed",
            content_id=content_id,
            media_count=media_count,
            size_bytes=size_bytes,
            duration_s=round(duration_s, 2),
        )

    def download_failed(self, content_id: str, error: str):
        self.logger.error("content_download_failed", content_id=content_id, error=error)

    def content_removed(self, content_id: str, had_files: bool):
        self.logger.info("content_removed", content_id=content_id, had_files=had_files)

    def remote_sync_failed(self, content_id: str, error: str):
        self.logger.warning("remote_sync_failed", content_id=content_id, error=error)

    def integrity_evicted(self, content_id: str, reason: str):
        self.logger.warning("integrity_evicted", content_id=content_id, reason=reason)


def create_event_logger(log_dir: Path | None = None) -> CacheEventLogger:
    """Builds the event logger used by the offline manager."""
    return CacheEventLogger(StructuredLogger("lesson_cache.events", log_dir=log_dir))
