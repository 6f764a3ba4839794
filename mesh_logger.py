"""
MeshFlow — Structured Result Logger
====================================
Writes detector results as JSONL (one JSON object per line) for offline
inspection of presence scores and next-frame rects.

Key Features:
  - JSONL format, flushed after every entry
  - Thread-safe writes (batch items may finish on worker threads)
  - NumPy arrays and scalars serialize transparently

Part 12 of 13 — Result Log
"""

import json
import logging
import os
import sys
import threading
import time
from typing import Any, Dict, Optional

import numpy as np

from mesh_types import FaceLandmarksResult, MultiFaceLandmarksResult


class MeshJSONEncoder(json.JSONEncoder):
    """Handles NumPy types for JSON serialization."""
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)


class MeshResultLog:
    """Append-only JSONL log of detector results."""

    def __init__(self, log_dir: str = "logs", filename: str = "mesh_results.jsonl"):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)

        self.log_path = os.path.join(self.log_dir, filename)
        self._file = open(self.log_path, "a", encoding="utf-8")
        self._lock = threading.Lock()

        self.log({
            "python_version": sys.version,
            "platform": sys.platform,
        }, level="SYSTEM", event="system_startup")

    def log(self, data: Dict[str, Any], level: str = "INFO", event: Optional[str] = None):
        """Append log entry."""
        entry = {
            "timestamp": time.time(),
            "level": level,
            "event": event or data.get("event", "unknown"),
            "data": data,
        }
        line = json.dumps(entry, cls=MeshJSONEncoder) + "\n"

        with self._lock:
            if self._file.closed:
                raise ValueError(f"{self.log_path} is closed")
            self._file.write(line)
            self._file.flush()

    def log_result(self, result, source: Optional[str] = None):
        """Log a FaceLandmarksResult or MultiFaceLandmarksResult."""
        if isinstance(result, MultiFaceLandmarksResult):
            event = "faces_processed"
        elif isinstance(result, FaceLandmarksResult):
            event = "face_processed"
        else:
            raise TypeError(f"Cannot log {type(result).__name__}")
        data = result.to_dict()
        if source is not None:
            data["source"] = source
        self.log(data, event=event)

    def error(self, message: str, exception: Optional[Exception] = None):
        """Log structured error with exception details."""
        logging.getLogger("MeshFlow.ResultLog").error(message)
        self.log(
            {"message": message, "exception": str(exception) if exception else None},
            level="ERROR",
            event="system_error",
        )

    def close(self):
        """Clean shutdown."""
        if self._file.closed:
            return
        self.log({"message": "Logger shutting down"}, level="SYSTEM", event="system_shutdown")
        with self._lock:
            self._file.close()

    def __enter__(self) -> "MeshResultLog":
        return self

    def __exit__(self, *args) -> None:
        self.close()

