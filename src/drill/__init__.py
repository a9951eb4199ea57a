"""
Drill engine: per-drill profiles, the rep state machine and the session manager.
"""

from .assignment import (
    AssignmentCollaborator,
    AssignmentContext,
    LoggingAssignmentCollaborator,
    LoggingResultSink,
    ResultSink,
    parse_target_reps,
)
from .orchestrator import DrillOrchestrator, DrillStatus
from .profiles import FACEOFF, PROFILES, SHOOTING, DrillProfile, get_profile
from .session import SessionManager, SessionStatus

__all__ = [
    "AssignmentCollaborator",
    "AssignmentContext",
    "LoggingAssignmentCollaborator",
    "LoggingResultSink",
    "ResultSink",
    "parse_target_reps",
    "DrillOrchestrator",
    "DrillStatus",
    "FACEOFF",
    "PROFILES",
    "SHOOTING",
    "DrillProfile",
    "get_profile",
    "SessionManager",
    "SessionStatus",
]
