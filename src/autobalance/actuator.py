"""
Camera actuator interface and implementations.

The controller only talks to a CameraActuator. V4L2Actuator drives a UVC
camera through v4l2-ctl; GuardedActuator wraps any actuator with a call
timeout and a circuit breaker so a stuck device cannot stall the frame path
indefinitely.
"""

import logging
import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Callable, Optional, Protocol, Union

from .errors import DeviceError

logger = logging.getLogger(__name__)


class CameraActuator(Protocol):
    """Device capability used by the exposure controller"""

    def set_serial(self, serial: Union[int, str]) -> None: ...

    def connect(self) -> None: ...

    def set_shutter(self, value: float) -> None: ...

    def set_gain(self, value: float) -> None: ...

    def close(self) -> None: ...


class V4L2Actuator:
    """
    Sets exposure and gain on a V4L2 camera with v4l2-ctl.

    Shutter values are milliseconds and are converted to the
    exposure_time_absolute unit of 100 microseconds.
    """

    BY_ID_DIR = Path("/dev/v4l/by-id")

    def __init__(self, device: Optional[str] = None, timeout: float = 2.0,
                 exposure_control: str = "exposure_time_absolute",
                 gain_control: str = "gain"):
        """
        Args:
            device: Device node (e.g. /dev/video0). Resolved from the serial if None
            timeout: Seconds before a v4l2-ctl call is abandoned
            exposure_control: Name of the absolute exposure control
            gain_control: Name of the gain control
        """
        self.device = device
        self.timeout = timeout
        self.exposure_control = exposure_control
        self.gain_control = gain_control
        self.serial: Optional[str] = None
        self.connected = False

    def set_serial(self, serial: Union[int, str]) -> None:
        self.serial = str(serial)

    def connect(self) -> None:
        if self.device is None:
            self.device = self._resolve_device()

        # Switch the camera to manual exposure (UVC menu value 1)
        self._set_ctrl("auto_exposure", 1)
        self.connected = True
        logger.info(f"Connected to camera {self.device} (serial={self.serial})")

    def _resolve_device(self) -> str:
        if not self.serial:
            raise DeviceError("No device path given and no serial number set")

        if self.BY_ID_DIR.exists():
            candidates = sorted(
                p for p in self.BY_ID_DIR.iterdir()
                if self.serial in p.name and p.name.endswith("video-index0")
            )
            if candidates:
                device = str(candidates[0].resolve())
                logger.info(f"Resolved serial {self.serial} to {device}")
                return device

        raise DeviceError(f"No V4L2 device found for serial {self.serial}")

    def set_shutter(self, value: float) -> None:
        self._require_connection()
        self._set_ctrl(self.exposure_control, max(1, int(round(value * 10))))

    def set_gain(self, value: float) -> None:
        self._require_connection()
        self._set_ctrl(self.gain_control, int(round(value)))

    def close(self) -> None:
        if self.connected:
            logger.info(f"Disconnected from camera {self.device}")
        self.connected = False

    def _require_connection(self) -> None:
        if not self.connected:
            raise DeviceError("Actuator is not connected")

    def _set_ctrl(self, param: str, value: int) -> None:
        cmd = ["v4l2-ctl", "-d", str(self.device), f"--set-ctrl={param}={value}"]
        try:
            subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise DeviceError(f"Timeout setting {param}={value} on {self.device}")
        except subprocess.CalledProcessError as e:
            raise DeviceError(f"Failed to set {param}={value} on {self.device}: {(e.stderr or '').strip()}")
        except FileNotFoundError:
            raise DeviceError("v4l2-ctl not found, install v4l-utils")

        logger.debug(f"Set {param}={value} on {self.device}")


class GuardedActuator:
    """
    Wraps an actuator with a per-call timeout and a circuit breaker.

    After failure_threshold consecutive failures the breaker opens and every
    call fails fast with DeviceError until reset_after seconds have passed;
    the next call is then let through as a trial.
    """

    def __init__(self, inner: CameraActuator, timeout: float = 1.0,
                 failure_threshold: int = 3, reset_after: float = 5.0,
                 clock: Callable[[], float] = time.monotonic):
        self.inner = inner
        self.timeout = timeout
        self.failure_threshold = failure_threshold
        self.reset_after = reset_after
        self.clock = clock

        self.consecutive_failures = 0
        self.opened_at: Optional[float] = None
        self.lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def is_open(self) -> bool:
        with self.lock:
            return self.opened_at is not None

    def set_serial(self, serial: Union[int, str]) -> None:
        self.inner.set_serial(serial)

    def connect(self) -> None:
        self._call("connect", self.inner.connect)

    def set_shutter(self, value: float) -> None:
        self._call("set_shutter", self.inner.set_shutter, value)

    def set_gain(self, value: float) -> None:
        self._call("set_gain", self.inner.set_gain, value)

    def close(self) -> None:
        """Close the device. A later connect() starts a fresh call thread"""
        try:
            self.inner.close()
        finally:
            with self.lock:
                executor, self._executor = self._executor, None
            if executor is not None:
                executor.shutdown(wait=False)

    def _call(self, name: str, fn, *args) -> None:
        with self.lock:
            if self.opened_at is not None:
                if self.clock() - self.opened_at < self.reset_after:
                    raise DeviceError(f"Circuit open, {name} rejected")
                logger.info(f"Circuit half-open, trying {name}")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="actuator")
            executor = self._executor

        try:
            future = executor.submit(fn, *args)
        except RuntimeError as e:
            raise DeviceError(f"{name} rejected, actuator closed") from e
        try:
            future.result(timeout=self.timeout)
        except FutureTimeoutError:
            self._record_failure(name)
            raise DeviceError(f"{name} timed out after {self.timeout}s")
        except DeviceError:
            self._record_failure(name)
            raise
        except Exception as e:
            self._record_failure(name)
            raise DeviceError(f"{name} failed: {e}") from e

        with self.lock:
            if self.opened_at is not None:
                logger.info("Circuit closed, actuator responding again")
            self.consecutive_failures = 0
            self.opened_at = None

    def _record_failure(self, name: str) -> None:
        with self.lock:
            self.consecutive_failures += 1
            if self.opened_at is not None or self.consecutive_failures >= self.failure_threshold:
                self.opened_at = self.clock()
                logger.error(f"Circuit opened after {self.consecutive_failures} "
                             f"consecutive actuator failures (last: {name})")
