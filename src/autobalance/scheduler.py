#!/usr/bin/env python3
"""
Frame Scheduler

Gates incoming frames by the configured calibration step and runs the
control pipeline on the selected ones:

    histogram over ROI -> MSV -> exposure controller step -> diagnostics

The frame counter advances on every call, evaluated or not. Frames are
processed one at a time.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from .config import ConfigurationSurface
from .controller import ControlAction, ExposureController
from .diagnostics import DiagnosticsStore, draw_roi, plot_histogram
from .errors import DeviceError, EmptySample, FrameDecodeError, InvalidRegion
from .histogram import DEFAULT_DECIMATION_STRIDE, compute_histogram
from .metric import mean_sample_value
from .metrics import STAT_COUNTERS, processing_time_gauge

logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    """Outcome of one on_frame call"""
    frame_index: int
    evaluated: bool
    msv: Optional[float] = None
    error: Optional[float] = None
    action: ControlAction = ControlAction.NONE
    processing_ms: Optional[float] = None
    skipped_reason: Optional[str] = None


def decode_frame(frame: Any) -> np.ndarray:
    """
    Check that a frame is an HxWxC uint8 image with at least 3 channels

    Raises:
        FrameDecodeError: If the frame cannot be used as a BGR image
    """
    if not isinstance(frame, np.ndarray):
        raise FrameDecodeError(f"Expected numpy array, got {type(frame).__name__}")
    if frame.ndim != 3 or frame.shape[2] < 3:
        raise FrameDecodeError(f"Expected HxWxC image with C >= 3, got shape {frame.shape}")
    if frame.dtype != np.uint8:
        raise FrameDecodeError(f"Expected uint8 pixels, got {frame.dtype}")
    if frame.size == 0:
        raise FrameDecodeError("Empty frame")
    return frame


class FrameScheduler:
    """Per-camera frame gate and control pipeline"""

    def __init__(self, controller: ExposureController, config_surface: ConfigurationSurface,
                 diagnostics: Optional[DiagnosticsStore] = None,
                 decimation_stride: int = DEFAULT_DECIMATION_STRIDE,
                 log_every: int = 60, camera: str = "default"):
        """
        Args:
            controller: Exposure controller driven by evaluated frames
            config_surface: Source of the runtime configuration snapshot
            diagnostics: Store for ROI/histogram images, None disables rendering
            decimation_stride: Histogram sampling step
            log_every: Frame index period of the status log line
            camera: Label of the exported Prometheus metrics
        """
        if decimation_stride < 1:
            raise ValueError("decimation_stride must be >= 1")

        self.controller = controller
        self.config_surface = config_surface
        self.diagnostics = diagnostics
        self.decimation_stride = decimation_stride
        self.log_every = log_every
        self.camera = camera

        self.frame_counter = 0
        self.last_msv: Optional[float] = None
        self._frame_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'frames_seen': 0,
            'frames_evaluated': 0,
            'decode_errors': 0,
            'empty_samples': 0,
            'region_errors': 0,
            'device_errors': 0,
            'last_processing_ms': None,
        }

    @property
    def frame_index(self) -> int:
        return self.frame_counter

    def on_frame(self, frame: Any) -> FrameResult:
        """
        Handle one incoming frame.

        Raises:
            InvalidRegion: If the configured ROI does not fit the frame
            DeviceError: If the actuator rejected an update
        """
        with self._frame_lock:
            index = self.frame_counter
            try:
                return self._handle(frame, index)
            finally:
                self.frame_counter += 1
                self._count('frames_seen')

    def _handle(self, frame: Any, index: int) -> FrameResult:
        config = self.config_surface.snapshot()
        if index % config.calibration_step != 0:
            return FrameResult(frame_index=index, evaluated=False)

        t_start = time.perf_counter()
        self._count('frames_evaluated')

        try:
            image = decode_frame(frame)
        except FrameDecodeError as e:
            self._count('decode_errors')
            logger.error(f"Frame {index} skipped: {e}")
            return FrameResult(frame_index=index, evaluated=True, skipped_reason="decode_error")

        roi = config.roi
        try:
            hist = compute_histogram(image, roi, self.decimation_stride)
        except InvalidRegion as e:
            self._count('region_errors')
            logger.error(f"Frame {index}: {e}")
            raise

        try:
            msv = mean_sample_value(hist)
        except EmptySample as e:
            self._count('empty_samples')
            logger.warning(f"Frame {index} control step skipped: {e}")
            return FrameResult(frame_index=index, evaluated=True, skipped_reason="empty_sample")

        self.last_msv = msv

        try:
            action = self.controller.step(
                msv,
                reference=config.msv_gray_reference,
                tolerance=config.msv_error_tolerance,
                k_shutter=config.k_shutter,
                k_gain=config.k_gain,
            )
        except DeviceError as e:
            self._count('device_errors')
            logger.error(f"Frame {index}: actuator update failed, keeping last settings: {e}")
            raise

        if config.show_roi_and_hist and self.diagnostics is not None:
            self._publish_diagnostics(image, roi, hist)

        processing_ms = (time.perf_counter() - t_start) * 1000.0
        with self._stats_lock:
            self._stats['last_processing_ms'] = processing_ms
        processing_time_gauge.labels(camera=self.camera).set(processing_ms)

        state = self.controller.state
        if index % self.log_every == 0:
            logger.info(f"msv_error: {state.last_error:.1f}, shutter: {state.shutter:.3f}, "
                        f"gain: {state.gain:.1f}, ProcessingTime: {processing_ms:.2f} ms")

        return FrameResult(
            frame_index=index,
            evaluated=True,
            msv=msv,
            error=state.last_error,
            action=action,
            processing_ms=processing_ms,
        )

    def _publish_diagnostics(self, image: np.ndarray, roi, hist: np.ndarray) -> None:
        try:
            self.diagnostics.publish("roi", draw_roi(image, roi))
            self.diagnostics.publish("histogram", plot_histogram(hist))
        except Exception as e:
            logger.warning(f"Diagnostics rendering failed: {e}")

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1
        STAT_COUNTERS[key].labels(camera=self.camera).inc()

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = self._stats.copy()
        stats['frame_index'] = self.frame_counter
        stats['last_msv'] = self.last_msv
        return stats

    def reset(self) -> None:
        """Reset the frame counter and statistics"""
        with self._frame_lock:
            self.frame_counter = 0
            self.last_msv = None
            with self._stats_lock:
                self._stats = self._empty_stats()
        logger.info("FrameScheduler counters reset")
