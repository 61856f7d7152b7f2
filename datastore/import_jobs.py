from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import ValidationError

from app.schemas import ImportResult
from settings import get_settings

logger = logging.getLogger(__name__)


class ImportJobStore:
    """Status records of CSV imports keyed by import id."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._jobs: Dict[str, ImportResult] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def save(self, job: ImportResult) -> None:
        with self._lock:
            self._jobs[job.import_id] = job.model_copy(deep=True)
            self._persist()

    def get(self, import_id: str) -> Optional[ImportResult]:
        with self._lock:
            job = self._jobs.get(import_id)
        return None if job is None else job.model_copy(deep=True)

    def recent(self, limit: int = 20) -> List[ImportResult]:
        """Newest uploads first."""
        with self._lock:
            jobs = [job.model_copy(deep=True) for job in self._jobs.values()]
        jobs.sort(key=lambda job: job.uploaded_at, reverse=True)
        return jobs[:limit]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "imports": [job.model_dump(mode="json") for job in self._jobs.values()],
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            data = json.loads(self.persistence_path.read_text(encoding="utf-8") or "{}")
            entries = data.get("imports", [])
        except (OSError, json.JSONDecodeError, AttributeError):
            entries = []

        for entry in entries:
            try:
                job = ImportResult.model_validate(entry)
            except ValidationError:
                logger.warning("Ignoring unreadable import record", extra={"reason": "invalid payload"})
                continue
            self._jobs[job.import_id] = job


@lru_cache
def build_default_import_store(path: Optional[str] = None) -> ImportJobStore:
    settings = get_settings()
    store_path = settings.imports_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ImportJobStore(persistence_path=persistence)
