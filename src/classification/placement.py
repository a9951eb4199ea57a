"""
Shot placement classification.

The automatic path sends the impact frame to an image model and expects a
single zone number back. Anything other than a clean 0-8 answer is treated
as "unknown" and the rep falls back to manual zone logging.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from exceptions import ClassificationError
from models.config import ClassifierConfig
from models.drill import ZONE_COUNT
from models.frame import FrameData

logger = logging.getLogger(__name__)

ZONE_PROMPT = """
Analyze this high-speed frame from a lacrosse shooting drill.
A lacrosse ball has just impacted or is passing through the net.
The net is divided into a 3x3 grid (9 zones total).
Zones are numbered 0 to 8:
0 1 2 (Top Left, Top Center, Top Right)
3 4 5 (Middle Left, Middle Center, Middle Right)
6 7 8 (Bottom Left, Bottom Center, Bottom Right)

Identify the specific quadrant where the ball or the net's displacement is most visible.
Return ONLY the zone number as a single integer (0-8).
If the ball is not visible, return -1.
"""

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_zone_response(text: Optional[str]) -> Optional[int]:
    """
    Read the leading integer of a model reply.

    Returns the zone for 0-8, None for "-1", anything out of range, or text
    that does not start with a number.
    """
    if not text:
        return None
    match = _LEADING_INT.match(text)
    if not match:
        return None
    zone = int(match.group(1))
    if zone < 0 or zone >= ZONE_COUNT:
        return None
    return zone


def _response_text(resp: Any) -> str:
    text = getattr(resp, "text", None)
    if isinstance(text, str):
        return text
    candidates = getattr(resp, "candidates", None) or []
    if candidates:
        parts = getattr(candidates[0].content, "parts", None) or []
        return "".join(getattr(p, "text", "") or "" for p in parts)
    return ""


class ZoneClassifier(ABC):
    """Maps an impact frame to a zone index."""

    @abstractmethod
    def classify(self, frame_data: FrameData) -> Optional[int]:
        """
        Returns:
            Zone 0-8, or None when the ball cannot be located.

        Raises:
            ClassificationError: If the service call fails.
        """


class GeminiZoneClassifier(ZoneClassifier):
    """Gemini vision model via google-generativeai."""

    def __init__(self, api_key: str, model_name: str = "gemini-1.5-flash", jpeg_quality: int = 80):
        if not api_key or not str(api_key).strip():
            raise ValueError("api_key is required")
        import google.generativeai as genai

        genai.configure(api_key=str(api_key).strip())
        self.model_name = model_name
        self.jpeg_quality = jpeg_quality
        self.model = genai.GenerativeModel(model_name)

    def classify(self, frame_data: FrameData) -> Optional[int]:
        try:
            jpeg = frame_data.to_jpeg(quality=self.jpeg_quality)
        except RuntimeError as e:
            raise ClassificationError(f"Could not encode impact frame: {e}") from e

        try:
            resp = self.model.generate_content([
                ZONE_PROMPT,
                {"mime_type": "image/jpeg", "data": jpeg},
            ])
            text = _response_text(resp).strip()
        except Exception as e:
            raise ClassificationError(f"Zone classification request failed: {e}") from e

        logger.debug(f"Zone classifier raw reply: {text!r}")
        return parse_zone_response(text)


class PlacementClassifierChain:
    """
    Try the automatic classifier, else ask for a manual zone.

    resolve() returns a zone when the automatic path produced a valid one,
    or None when the operator has to log the shot by hand.
    """

    def __init__(self, classifier: Optional[ZoneClassifier] = None):
        self.classifier = classifier

    @property
    def automatic(self) -> bool:
        return self.classifier is not None

    def resolve(self, frame_data: Optional[FrameData]) -> Optional[int]:
        if self.classifier is None or frame_data is None:
            return None
        try:
            zone = self.classifier.classify(frame_data)
        except ClassificationError as e:
            logger.warning(f"Automatic placement failed, falling back to manual: {e}")
            return None
        if zone is None or not 0 <= zone < ZONE_COUNT:
            logger.warning(f"Shot not located automatically (reply={zone}), falling back to manual")
            return None
        logger.info(f"Shot placed automatically in zone {zone}")
        return zone


def create_classifier_from_config(cfg: ClassifierConfig) -> Optional[ZoneClassifier]:
    """Build the automatic classifier if it is enabled and an API key is set."""
    if not cfg.enabled:
        return None
    api_key = os.environ.get(cfg.api_key_env, "")
    if not api_key:
        logger.warning(f"Classifier enabled but {cfg.api_key_env} is not set; using manual placement only")
        return None
    return GeminiZoneClassifier(api_key=api_key, model_name=cfg.model, jpeg_quality=cfg.jpeg_quality)
