"""
Progress journal for deploy / delete pipelines.

Records which operation is in flight and the steps it has completed so an
interrupted or failed run can be resumed from the next step.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..errors import ModelDeckError

logger = logging.getLogger(__name__)


@dataclass
class JournalEntry:
    """An operation that has not finished all of its steps."""
    operation: str  # deploy, delete
    model_name: str
    completed: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    text: Optional[str] = None  # deploy source, kept until the run finishes

    @property
    def last_completed(self) -> Optional[str]:
        return self.completed[-1] if self.completed else None

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "model_name": self.model_name,
            "completed": self.completed,
            "started_at": self.started_at.isoformat(),
            "failed_step": self.failed_step,
            "error": self.error,
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "JournalEntry":
        started_at = datetime.now()
        if data.get("started_at"):
            try:
                started_at = datetime.fromisoformat(data["started_at"])
            except (ValueError, TypeError):
                pass

        return cls(
            operation=data["operation"],
            model_name=data["model_name"],
            completed=list(data.get("completed", [])),
            started_at=started_at,
            failed_step=data.get("failed_step"),
            error=data.get("error"),
            text=data.get("text"),
        )


class Journal:
    """A single-entry journal file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[JournalEntry]:
        if not self.path.exists():
            return None

        with open(self.path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ModelDeckError(
                    f"Journal {self.path} is not valid JSON: {e}; remove it to continue",
                    code="BAD_JOURNAL",
                ) from e

        if not isinstance(data, dict):
            raise ModelDeckError(
                f"Journal {self.path} is not a mapping; remove it to continue",
                code="BAD_JOURNAL",
            )

        try:
            return JournalEntry.from_dict(data)
        except (KeyError, TypeError) as e:
            raise ModelDeckError(
                f"Journal {self.path} is missing {e}; remove it to continue",
                code="BAD_JOURNAL",
            ) from e

    def _write(self, entry: JournalEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(entry.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)

    def begin(
        self,
        operation: str,
        model_name: str,
        completed: Optional[List[str]] = None,
        text: Optional[str] = None,
    ) -> JournalEntry:
        entry = JournalEntry(
            operation=operation,
            model_name=model_name,
            completed=list(completed or []),
            text=text,
        )
        self._write(entry)
        logger.debug(f"Journal: began {operation} {model_name}")
        return entry

    def mark(self, entry: JournalEntry, step: str) -> None:
        entry.completed.append(step)
        entry.failed_step = None
        entry.error = None
        self._write(entry)

    def fail(self, entry: JournalEntry, step: str, error: str) -> None:
        entry.failed_step = step
        entry.error = error
        self._write(entry)
        logger.warning(f"Journal: {entry.operation} {entry.model_name} stopped at {step}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
