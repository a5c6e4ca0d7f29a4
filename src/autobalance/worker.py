"""
Capture worker

Reads frames from a V4L2 device (through OpenCV) or from a synthetic test
source and hands each one to the FrameScheduler on its own thread.
"""

import logging
import threading
import time
from typing import Callable, Optional, Union

import cv2
import numpy as np

from .errors import DeviceError, InvalidRegion
from .scheduler import FrameScheduler

logger = logging.getLogger(__name__)

FrameSource = Union[str, int, Callable[[], np.ndarray]]


class CameraWorker(threading.Thread):
    """Threaded frame acquisition feeding one scheduler"""

    def __init__(self, scheduler: FrameScheduler, source: FrameSource,
                 resolution=(640, 480), name: str = "AutoBalanceCapture",
                 frame_interval: float = 0.0, error_backoff: float = 0.1):
        """
        Args:
            scheduler: Receives every captured frame
            source: Device path/index for cv2.VideoCapture, or a callable returning frames
            resolution: Requested capture size (width, height)
            name: Thread name
            frame_interval: Pause after each frame, used to pace test sources
            error_backoff: Pause after a rejected ROI or a failed actuator update
        """
        super().__init__(name=name, daemon=True)
        self.scheduler = scheduler
        self.source = source
        self.resolution = resolution
        self.frame_interval = frame_interval
        self.error_backoff = error_backoff
        self.stop_event = threading.Event()
        self.last_error: Optional[str] = None
        self.cap = None

    @property
    def test_mode(self) -> bool:
        return callable(self.source)

    def open(self) -> None:
        if self.test_mode:
            return

        self.cap = cv2.VideoCapture(self.source)
        if not self.cap.isOpened():
            raise DeviceError(f"Could not open capture source {self.source}")
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        logger.info(f"Capture opened on {self.source} at {self.resolution[0]}x{self.resolution[1]}")

    def stop(self, timeout: float = 2.0) -> None:
        self.stop_event.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout=timeout)
        if self.cap is not None:
            self.cap.release()
            self.cap = None
        logger.info(f"[{self.name}] stopped")

    def read_frame(self) -> Optional[np.ndarray]:
        if self.test_mode:
            return self.source()

        ret, frame = self.cap.read()
        if not ret:
            return None
        return frame

    def run(self):
        logger.info(f"[{self.name}] capture loop starting")
        while not self.stop_event.is_set():
            try:
                frame = self.read_frame()
                if frame is None:
                    logger.warning(f"[{self.name}] Frame grab failed")
                    time.sleep(0.05)
                    continue

                self.scheduler.on_frame(frame)

            except (InvalidRegion, DeviceError) as e:
                # Already logged by the scheduler; keep capturing so a
                # reconfiguration or a recovered device can take effect
                self.last_error = str(e)
                self.stop_event.wait(self.error_backoff)
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"[{self.name}] Error in capture loop: {e}", exc_info=True)
                time.sleep(0.1)

            if self.frame_interval > 0:
                time.sleep(self.frame_interval)


def gray_test_frame(value: int = 128, resolution=(640, 480)) -> np.ndarray:
    """Uniform BGR frame"""
    width, height = resolution
    return np.full((height, width, 3), value, dtype=np.uint8)


def gradient_test_frame(resolution=(640, 480)) -> np.ndarray:
    """Horizontal black-to-white ramp"""
    width, height = resolution
    ramp = np.linspace(0, 255, width, dtype=np.uint8)
    return np.repeat(np.tile(ramp, (height, 1))[:, :, np.newaxis], 3, axis=2)
