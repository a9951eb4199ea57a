"""
Observation layer for pluggable video sources.

This layer abstracts where frames come from (webcam, recorded video,
scripted test frames) from the drill engine. Each source implements the
ObservationSource interface and returns FrameData objects.
"""

from typing import Any, Dict

from .base import ObservationSource, ObservationConfig
from .opencv_source import OpenCVSource, OpenCVSourceConfig


def create_source_from_config(camera_cfg: Dict[str, Any], source_id: str = "drill-cam") -> ObservationSource:
    """Build the frame source described by the camera config section."""
    return OpenCVSource(OpenCVSourceConfig.from_camera_config(camera_cfg or {}, source_id=source_id))


__all__ = [
    "ObservationSource",
    "ObservationConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
    "create_source_from_config",
]
