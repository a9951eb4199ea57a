from __future__ import annotations

import logging

import cv2
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from calibration.grid import draw_zone_grid
from calibration.roi import GoalQuad
from drill.assignment import AssignmentContext
from exceptions import ConfigurationError
from models.drill import DrillMode, SessionState

from ..api_models import (
    AssignmentRequest,
    DrillStatusResponse,
    RoiAdjustRequest,
    RoiRequest,
    RoiResponse,
    StartSessionRequest,
    ZoneRequest,
)

router = APIRouter()


def _ctx(request: Request):
    return request.app.state.ctx


def _status(ctx) -> dict:
    session = ctx.session.status()
    drill = ctx.orchestrator.status()
    return {
        "drill_state": drill.state.value,
        "session_state": session.session_state.value,
        "status_text": drill.status_text,
        "drill": session.drill,
        "mode": session.mode.value,
        "countdown": drill.countdown,
        "remaining_seconds": session.remaining_seconds,
        "rep_count": session.rep_count,
        "session_type": session.session_type,
        "session_value": session.session_value,
        "target_zone": drill.target_zone,
        "last_measurement": drill.last_measurement,
        "measurements": session.measurements,
        "result": session.result.to_dict() if session.result else None,
        "assignment_id": session.assignment_id,
        "error": drill.error or session.error,
    }


def _roi_response(ctx) -> dict:
    x, y, w, h = ctx.calibrator.rect
    dw, dh = ctx.calibrator.display_size
    return {"x": x, "y": y, "width": w, "height": h, "display_width": dw, "display_height": dh}


@router.get("/drill/status", response_model=DrillStatusResponse)
def drill_status(request: Request):
    return _status(_ctx(request))


@router.post("/session/start", response_model=DrillStatusResponse)
def start_session(body: StartSessionRequest, request: Request):
    """
    Configure and start a session.
    - type: count|timed
    - value: reps (count) or minutes (timed)
    - drill/mode: optional drill selection before starting
    """
    ctx = _ctx(request)
    if body.drill is not None or body.mode is not None:
        mode = None
        if body.mode is not None:
            try:
                mode = DrillMode(body.mode)
            except ValueError:
                raise ConfigurationError(f"Unknown mode: {body.mode}", field="mode") from None
        ctx.session.select_drill(body.drill or ctx.session.status().drill, mode)
    ctx.session.configure(body.type, body.value, sensitivity=body.sensitivity, auto_classify=body.auto_classify)
    ctx.session.start()
    return _status(ctx)


@router.post("/session/assignment", response_model=DrillStatusResponse)
def attach_assignment(body: AssignmentRequest, request: Request):
    ctx = _ctx(request)
    ctx.session.set_assignment(AssignmentContext(assignment_id=body.id, notes=body.notes, drill=body.drill))
    return _status(ctx)


@router.post("/session/calibrate", response_model=DrillStatusResponse)
def enter_calibration(request: Request):
    ctx = _ctx(request)
    ctx.session.enter_calibration()
    return _status(ctx)


@router.post("/session/abort", response_model=DrillStatusResponse)
def abort_session(request: Request):
    ctx = _ctx(request)
    ctx.session.abort()
    return _status(ctx)


@router.post("/session/end", response_model=DrillStatusResponse)
def end_session(request: Request):
    ctx = _ctx(request)
    ctx.session.end()
    return _status(ctx)


@router.post("/session/new", response_model=DrillStatusResponse)
def new_session(request: Request):
    ctx = _ctx(request)
    ctx.session.new_session()
    return _status(ctx)


@router.post("/drill/zone", response_model=DrillStatusResponse)
def log_zone(body: ZoneRequest, request: Request):
    """Log the placement of the pending shot by zone index or by a tap on the preview."""
    ctx = _ctx(request)
    if body.zone is not None:
        ctx.orchestrator.log_zone(body.zone)
    elif body.x is not None and body.y is not None:
        ctx.session.log_tap(body.x, body.y)
    else:
        raise ConfigurationError("Provide a zone or a tap position", field="zone")
    return _status(ctx)


@router.get("/calibration/roi", response_model=RoiResponse)
def get_roi(request: Request):
    return _roi_response(_ctx(request))


@router.put("/calibration/roi", response_model=RoiResponse)
def put_roi(body: RoiRequest, request: Request):
    ctx = _ctx(request)
    if body.quad is not None:
        quad = GoalQuad.from_dict({k: p.model_dump() for k, p in body.quad.items()})
        ctx.session.set_roi_quad(quad)
    elif None not in (body.x, body.y, body.width, body.height):
        ctx.session.set_roi_rect(body.x, body.y, body.width, body.height)
    else:
        raise ConfigurationError("Provide x, y, width, height or a quad", field="roi")
    return _roi_response(ctx)


@router.patch("/calibration/roi", response_model=RoiResponse)
def adjust_roi(body: RoiAdjustRequest, request: Request):
    ctx = _ctx(request)
    if body.corner is not None:
        ctx.session.move_goal_corner(body.corner, body.dx, body.dy)
    elif body.width is not None and body.height is not None:
        ctx.session.resize_roi(body.width, body.height)
    else:
        ctx.session.move_roi(body.dx, body.dy)
    return _roi_response(ctx)


@router.get("/preview.jpg")
def preview(request: Request):
    """Latest camera frame with the ROI (and placement grid) drawn on it."""
    ctx = _ctx(request)
    frame_data = ctx.orchestrator.latest_frame()
    if frame_data is None:
        raise HTTPException(status_code=503, detail="No camera frame available")

    frame = frame_data.frame.copy()
    roi = ctx.calibrator.native_roi(frame_data.size)
    session = ctx.session.status()
    drill = ctx.orchestrator.status()
    show_grid = session.mode == DrillMode.PLACEMENT or session.session_state == SessionState.CALIBRATION
    draw_zone_grid(frame, roi, highlight=drill.target_zone, show_grid=show_grid)

    ok, buf = cv2.imencode(".jpg", frame)
    if not ok:
        logging.warning("Failed to encode preview JPEG")
        raise HTTPException(status_code=500, detail="Failed to encode preview")
    return Response(content=buf.tobytes(), media_type="image/jpeg")
