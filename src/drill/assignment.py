"""
External collaborators for finished sessions.

A session run under a coach's assignment reports back to the assignment
collaborator; any other session is handed to the result sink.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from models.drill import SessionRecord

logger = logging.getLogger(__name__)

_TARGET_REPS = re.compile(r"(\d+)\s*(shots|reps)", re.IGNORECASE)

STATUS_COMPLETED = "Completed"


def parse_target_reps(notes: Optional[str], default: int) -> int:
    """
    Rep target from free-text assignment notes, e.g. "Do 25 shots low".

    Returns default when the notes name no positive count.
    """
    if notes:
        match = _TARGET_REPS.search(notes)
        if match:
            value = int(match.group(1))
            if value > 0:
                return value
    return default


@dataclass(frozen=True)
class AssignmentContext:
    """An assignment the session is being run for."""
    assignment_id: str
    notes: str = ""
    drill: str = "shooting"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AssignmentContext":
        return cls(
            assignment_id=str(d["id"]),
            notes=d.get("notes", "") or "",
            drill=d.get("drill", "shooting"),
        )


class ResultSink(ABC):
    """Persistence collaborator for finished sessions."""

    @abstractmethod
    def save(self, record: SessionRecord) -> None:
        pass


class AssignmentCollaborator(ABC):
    """Receives completion of an assigned drill."""

    @abstractmethod
    def complete(self, assignment_id: str, status: str, results: Dict[str, Any]) -> None:
        pass


class LoggingResultSink(ResultSink):
    """Default sink: writes the session summary to the log."""

    def save(self, record: SessionRecord) -> None:
        logger.info(f"Session saved: {record.to_dict()}")


class LoggingAssignmentCollaborator(AssignmentCollaborator):
    def complete(self, assignment_id: str, status: str, results: Dict[str, Any]) -> None:
        logger.info(f"Assignment {assignment_id} {status}: {results}")
