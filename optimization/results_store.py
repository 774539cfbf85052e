"""
Run artifact persistence.

Records are JSON documents under a storage root:

    <root>/runs/<run_id>/<instrument>_<timestamp>.json      single-instrument runs
    <root>/schedules/<run_id>_<timestamp>.json               multi-instrument runs
    <root>/evaluations/<instrument>/<variant>_<timestamp>.json
    <root>/optimization_results.json                          latest single run
    <root>/multi_symbol_results.json                          latest schedule

Writes are atomic (temp file then rename).
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

LATEST_RUN = "optimization_results.json"
LATEST_SCHEDULE = "multi_symbol_results.json"

_SAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def _slug(text: str) -> str:
    return _SAFE.sub("_", text)[:80] or "unnamed"


def _stamp() -> str:
    return datetime.utcnow().strftime("%Y%m%dT%H%M%S%f")


class ResultStore:
    def __init__(self, root: str | Path = "storage"):
        self.root = Path(root)
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> Optional["ResultStore"]:
        from config.settings_loader import get_storage_config

        cfg = get_storage_config()
        return cls(cfg["root"]) if cfg["persist"] else None

    def _write_json(self, path: Path, payload: Dict[str, Any]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=".wfo_")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, default=str)
            Path(tmp_path).replace(path)
            tmp_path = None
        finally:
            if tmp_path is not None:
                Path(tmp_path).unlink(missing_ok=True)
        return path

    def save_run(self, run_id: str, instrument: str, record: Dict[str, Any]) -> Path:
        payload = {"run_id": run_id, "instrument": instrument,
                   "saved_at": datetime.utcnow().isoformat(), **record}
        path = self.root / "runs" / _slug(run_id) / f"{_slug(instrument)}_{_stamp()}.json"
        with self._lock:
            self._write_json(path, payload)
            self._write_json(self.root / LATEST_RUN, payload)
        logger.info(f"Saved optimization result for {instrument} to {path}")
        return path

    def save_schedule(self, run_id: str, record: Dict[str, Any]) -> Path:
        payload = {"run_id": run_id, "saved_at": datetime.utcnow().isoformat(), **record}
        path = self.root / "schedules" / f"{_slug(run_id)}_{_stamp()}.json"
        with self._lock:
            self._write_json(path, payload)
            self._write_json(self.root / LATEST_SCHEDULE, payload)
        logger.info(f"Saved multi-instrument result to {path}")
        return path

    def save_evaluation(self, record: Dict[str, Any]) -> Path:
        instrument = _slug(str(record.get("symbol", "unknown")))
        variant = _slug(str(record.get("variant", "variant")))
        path = self.root / "evaluations" / instrument / f"{variant}_{_stamp()}.json"
        with self._lock:
            return self._write_json(path, record)

    def load_latest_run(self) -> Optional[Dict[str, Any]]:
        return self._read(self.root / LATEST_RUN)

    def load_latest_schedule(self) -> Optional[Dict[str, Any]]:
        return self._read(self.root / LATEST_SCHEDULE)

    def list_runs(self, run_id: str) -> List[Path]:
        run_dir = self.root / "runs" / _slug(run_id)
        return sorted(run_dir.glob("*.json")) if run_dir.exists() else []

    @staticmethod
    def _read(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
