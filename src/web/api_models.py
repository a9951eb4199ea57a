from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SessionResultModel(BaseModel):
    mode: str
    count: int
    best: Optional[int] = None
    worst: Optional[int] = None
    average: Optional[int] = None
    zone_histogram: Optional[List[int]] = None


class DrillStatusResponse(BaseModel):
    """
    Everything the operator UI polls for.
    Status text follows the trainer's vocabulary (T-MINUS n, REACT!, LATENCY: nms, ...).
    """
    drill_state: str = Field(..., description="idle|starting|countdown|set|measuring|log_shot|result|error")
    session_state: str = Field(..., description="setup|calibration|running|finished")
    status_text: str
    drill: str
    mode: str
    countdown: Optional[int] = None
    remaining_seconds: Optional[int] = None
    rep_count: int = 0
    session_type: Optional[str] = None
    session_value: Optional[int] = None
    target_zone: Optional[int] = None
    last_measurement: Optional[int] = None
    measurements: List[int] = Field(default_factory=list)
    result: Optional[SessionResultModel] = None
    assignment_id: Optional[str] = None
    error: Optional[str] = None


class StartSessionRequest(BaseModel):
    type: str = Field(..., description="count|timed")
    value: int = Field(..., description="Reps for count sessions, minutes for timed sessions")
    drill: Optional[str] = Field(None, description="faceoff|shooting")
    mode: Optional[str] = Field(None, description="release|placement")
    sensitivity: Optional[float] = None
    auto_classify: Optional[bool] = None


class AssignmentRequest(BaseModel):
    id: str
    notes: str = ""
    drill: str = "shooting"


class ZoneRequest(BaseModel):
    """Either a zone index or a tap (x, y) in preview coordinates."""
    zone: Optional[int] = None
    x: Optional[float] = None
    y: Optional[float] = None


class Point(BaseModel):
    x: float
    y: float


class RoiRequest(BaseModel):
    """Either a rectangle (x, y, width, height) or a goal quad (tl, tr, bl, br), in preview coordinates."""
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    quad: Optional[Dict[str, Point]] = None


class RoiAdjustRequest(BaseModel):
    """Relative ROI edit from the preview drag handles."""
    dx: float = 0.0
    dy: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None
    corner: Optional[str] = None


class RoiResponse(BaseModel):
    x: float
    y: float
    width: float
    height: float
    display_width: int
    display_height: int
