from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import List, Optional

from models.records import Observation
from services.errors import StoreUnavailableError
from settings import get_settings

logger = logging.getLogger(__name__)


class ObservationLog:
    """Append-only store of every recorded observation.

    Records are never overwritten; ids are assigned here and strictly
    increase. When ``persistence_path`` is set each append is written as one
    JSON line and the file is replayed on start-up.
    """

    def __init__(self, name: str = "observations", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._records: List[Observation] = []
        self._next_id = 1
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def save(self, device_id: int, temperature: float, timestamp: datetime) -> Observation:
        with self._lock:
            observation = Observation(
                id=self._next_id,
                device_id=device_id,
                temperature=temperature,
                timestamp=timestamp,
                recorded_at=datetime.now(timezone.utc),
            )
            self._records.append(observation)
            try:
                self._append_to_disk(observation)
            except OSError as exc:
                self._records.pop()
                raise StoreUnavailableError(
                    f"Observation log {self.name!r} is not writable: {exc}"
                ) from exc
            self._next_id += 1
        return observation

    def find(self, observation_id: int) -> Optional[Observation]:
        with self._lock:
            for observation in self._records:
                if observation.id == observation_id:
                    return observation
        return None

    def find_all(self) -> list[Observation]:
        """Return every observation in id order."""

        with self._lock:
            return list(self._records)

    def delete_all(self) -> None:
        """Bulk clear; only for test and reset use."""

        with self._lock:
            self._records.clear()
            if self.persistence_path and self.persistence_path.exists():
                self.persistence_path.write_text("")
        logger.warning("Observation log cleared", extra={"channel": self.name})

    def _append_to_disk(self, observation: Observation) -> None:
        if not self.persistence_path:
            return
        with self.persistence_path.open("a", encoding="utf-8") as handle:
            handle.write(observation.model_dump_json() + "\n")

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            lines = self.persistence_path.read_text(encoding="utf-8").splitlines()
        except OSError:
            lines = []

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                observation = Observation.model_validate(json.loads(line))
            except ValueError:
                logger.warning(
                    "Skipping unreadable observation line %d",
                    line_number,
                    extra={"channel": self.name},
                )
                continue
            self._records.append(observation)
            self._next_id = max(self._next_id, observation.id + 1)


@lru_cache
def build_default_log(path: Optional[str] = None) -> ObservationLog:
    settings = get_settings()
    log_path = settings.observation_log_path if path is None else path
    persistence = Path(log_path) if log_path else None
    return ObservationLog(persistence_path=persistence)
