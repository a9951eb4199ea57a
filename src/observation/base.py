"""
ObservationSource interface for pluggable video sources.

The drill engine only needs three things from a camera: whether it is
ready (opened and its native size known), its native resolution, and the
current frame. Anything that can provide those can drive a drill:
- USB webcams
- Video files (for replaying recorded reps)
- Scripted frame sequences in tests
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from models.frame import FrameData


@dataclass
class ObservationConfig:
    """
    Base configuration for observation sources.

    Attributes:
        source_id: Identifier for this source (e.g., "drill-cam").
        resolution: Requested resolution as (width, height). None = source default.
        fps: Requested frames per second. None = source default.
        metadata: Additional source-specific configuration.
    """
    source_id: str = "default"
    resolution: Optional[Tuple[int, int]] = None
    fps: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ObservationSource(ABC):
    """
    Abstract base class for frame sources.

    Lifecycle:
        1. Create instance with config
        2. Call open() to acquire the device
        3. Check is_ready, then call read() for each frame
        4. Call close() to release the device

    Can also be used as a context manager.
    """

    def __init__(self, config: ObservationConfig):
        self._config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        """Whether the device is currently acquired."""
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Number of frames read since open."""
        return self._frame_index

    @property
    def is_ready(self) -> bool:
        """
        Whether the source has metadata and can deliver frames.

        The default is "open and native resolution known"; sources with
        slower warmup can override this.
        """
        return self._is_open and self.native_resolution is not None

    @property
    @abstractmethod
    def native_resolution(self) -> Optional[Tuple[int, int]]:
        """Actual (width, height) of delivered frames, or None before metadata is available."""

    @abstractmethod
    def open(self) -> None:
        """
        Acquire the device.

        Raises:
            RuntimeError: If the device cannot be opened.
        """

    @abstractmethod
    def read(self) -> Optional[FrameData]:
        """
        Return the current frame, or None if no frame is available right now.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the device. Safe to call multiple times."""

    def __enter__(self) -> "ObservationSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[FrameData]:
        """Yield frames until the source is exhausted or closed."""
        if not self._is_open:
            raise RuntimeError("Source must be open before iterating")

        while True:
            frame_data = self.read()
            if frame_data is None:
                break
            yield frame_data
