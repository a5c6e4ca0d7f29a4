#!/usr/bin/env python3
"""
Auto-Balance Service

Wires the configuration surface, exposure controller, frame scheduler and
capture worker for one camera. start() acquires the device connection and
stop() releases it; the service can also be used as a context manager.

Independent cameras get independent service instances with no shared state.
"""

import logging
import threading
from typing import Any, Dict, Optional

from .actuator import CameraActuator
from .config import ConfigurationSurface, ReconfigureRequest, StartupParameters
from .controller import ExposureController
from .diagnostics import DiagnosticsStore
from .scheduler import FrameResult, FrameScheduler
from .worker import CameraWorker, FrameSource

logger = logging.getLogger(__name__)


class AutoBalanceService:
    """Closed-loop auto exposure for a single camera"""

    def __init__(self, params: StartupParameters, actuator: CameraActuator,
                 source: Optional[FrameSource] = None, frame_interval: float = 0.0):
        """
        Args:
            params: Startup parameters (limits, serial, initial configuration)
            actuator: Device capability that applies shutter and gain
            source: Capture source for the worker thread. If None, frames
                must be fed through on_frame()
            frame_interval: Pause between frames of the worker
        """
        self.params = params
        self.actuator = actuator
        self.source = source
        self.frame_interval = frame_interval

        self.config_surface = ConfigurationSurface(params.initial_config)
        camera = params.camera_serial_number or "default"
        self.controller = ExposureController(actuator, params.limits, camera=camera)
        self.diagnostics = DiagnosticsStore()
        self.scheduler = FrameScheduler(
            self.controller,
            self.config_surface,
            diagnostics=self.diagnostics,
            decimation_stride=params.decimation_stride,
            camera=camera,
        )

        self.worker: Optional[CameraWorker] = None
        self.running = False
        self.lock = threading.Lock()

    def start(self) -> None:
        """Connect the actuator, initialize camera parameters and start capture"""
        with self.lock:
            if self.running:
                logger.warning("AutoBalanceService already running")
                return

            if self.params.camera_serial_number is not None:
                self.actuator.set_serial(self.params.camera_serial_number)

            self.actuator.connect()
            try:
                self.controller.initialize()
                if self.source is not None:
                    self.worker = CameraWorker(
                        self.scheduler, self.source, frame_interval=self.frame_interval
                    )
                    self.worker.open()
                    self.worker.start()
            except Exception:
                self.worker = None
                self.actuator.close()
                raise

            self.running = True

        logger.info(f"Autobalance started with serial {self.params.camera_serial_number}")

    def stop(self) -> None:
        """Stop capture and release the actuator connection"""
        with self.lock:
            if not self.running:
                return
            self.running = False
            worker, self.worker = self.worker, None

        try:
            if worker is not None:
                worker.stop()
        finally:
            self.actuator.close()

        logger.info("Autobalance stopped")

    def __enter__(self) -> "AutoBalanceService":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def on_frame(self, frame) -> FrameResult:
        """Feed a frame from an external transport"""
        return self.scheduler.on_frame(frame)

    def reconfigure(self, request: ReconfigureRequest):
        return self.config_surface.apply(request)

    def get_status(self) -> Dict[str, Any]:
        worker = self.worker
        return {
            'running': self.running,
            'camera_serial_number': self.params.camera_serial_number,
            'limits': {
                'min_shutter': self.params.limits.min_shutter,
                'max_shutter': self.params.limits.max_shutter,
                'min_gain': self.params.limits.min_gain,
                'max_gain': self.params.limits.max_gain,
            },
            'controller': self.controller.state.to_dict(),
            'frames': self.scheduler.get_stats(),
            'config': self.config_surface.snapshot().to_dict(),
            'config_revision': self.config_surface.revision,
            'capture_error': worker.last_error if worker is not None else None,
            'diagnostics': self.diagnostics.available(),
        }
