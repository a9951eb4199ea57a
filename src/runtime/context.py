from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from audio.output import AudioOutput, PygameAudioOutput, SilentAudioOutput
from calibration.roi import PREVIEW_SIZE, RoiCalibrator
from classification.placement import PlacementClassifierChain, create_classifier_from_config
from drill.assignment import AssignmentCollaborator, ResultSink
from drill.orchestrator import DrillOrchestrator
from drill.session import SessionManager
from models.config import Config
from observation import create_source_from_config
from observation.base import ObservationSource

from .timers import TimerQueue

logger = logging.getLogger(__name__)


@dataclass
class DrillContext:
    """Holds the engine's services and devices; avoids global singletons."""

    config: Config
    source: ObservationSource
    audio: AudioOutput
    timers: TimerQueue
    calibrator: RoiCalibrator
    orchestrator: DrillOrchestrator
    session: SessionManager

    def shutdown(self) -> None:
        """Abort any run and stop the timer thread."""
        self.orchestrator.abort()
        self.timers.shutdown()
        logger.info("Drill engine shut down")


def build_context(
    config: Config,
    source: Optional[ObservationSource] = None,
    audio: Optional[AudioOutput] = None,
    timers: Optional[TimerQueue] = None,
    sink: Optional[ResultSink] = None,
    assignments: Optional[AssignmentCollaborator] = None,
) -> DrillContext:
    """Wire the engine from config; any device can be passed in instead."""
    if source is None:
        source = create_source_from_config(config.camera.to_dict())
    if audio is None:
        if config.audio.enabled:
            audio = PygameAudioOutput(
                clips=config.audio.clips,
                sample_rate=config.audio.sample_rate,
                volume=config.audio.volume,
            )
        else:
            audio = SilentAudioOutput()
    if timers is None:
        timers = TimerQueue()
    chain = PlacementClassifierChain(create_classifier_from_config(config.classifier))

    calibrator = RoiCalibrator(display_size=PREVIEW_SIZE)
    orchestrator = DrillOrchestrator(source, audio, timers, classifier=chain)
    session = SessionManager(
        orchestrator,
        timers,
        calibrator,
        session_config=config.session,
        timing=config.timing,
        sink=sink,
        assignments=assignments,
    )
    logger.info(f"Drill engine ready (automatic placement: {chain.automatic})")
    return DrillContext(
        config=config,
        source=source,
        audio=audio,
        timers=timers,
        calibrator=calibrator,
        orchestrator=orchestrator,
        session=session,
    )
