#!/usr/bin/env python3
"""
Exposure Controller

Holds the current shutter and gain of one camera and turns the brightness
error of each evaluated frame into an actuator update.

Priority rule:
- Too dark: raise shutter until it reaches its maximum, then raise gain
- Too bright: lower gain until it reaches its minimum, then lower shutter

Updates are multiplicative (x * (1 + k * error)) and saturated to the
configured limits, so both actuators converge geometrically.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .actuator import CameraActuator
from .errors import InvalidConfiguration
from .metrics import gain_gauge, shutter_gauge

logger = logging.getLogger(__name__)


def saturate(x: float, lo: float, hi: float) -> float:
    """Clamp x into [lo, hi]"""
    if lo > hi:
        raise ValueError(f"Invalid range: lo={lo} > hi={hi}")
    if x < lo:
        return lo
    if x > hi:
        return hi
    return x


class ControlAction(Enum):
    NONE = "none"
    SHUTTER_UP = "shutter_up"
    GAIN_UP = "gain_up"
    SHUTTER_DOWN = "shutter_down"
    GAIN_DOWN = "gain_down"


@dataclass(frozen=True)
class ActuatorLimits:
    """Startup bounds for shutter (ms) and gain"""
    min_shutter: float
    max_shutter: float
    min_gain: float
    max_gain: float
    epsilon_shutter: float = 1e-3
    epsilon_gain: float = 1e-1

    def validate(self) -> None:
        if self.min_shutter > self.max_shutter:
            raise InvalidConfiguration(
                f"minShutter ({self.min_shutter}) > maxShutter ({self.max_shutter})")
        if self.min_gain > self.max_gain:
            raise InvalidConfiguration(
                f"minGain ({self.min_gain}) > maxGain ({self.max_gain})")
        if self.min_shutter <= 0:
            raise InvalidConfiguration("minShutter must be positive")
        if self.min_gain < 0:
            raise InvalidConfiguration("minGain must be non-negative")
        if self.epsilon_shutter <= 0 or self.epsilon_gain <= 0:
            raise InvalidConfiguration("Saturation epsilons must be positive")


@dataclass
class ControllerState:
    shutter: float
    gain: float
    last_error: float = 0.0

    def to_dict(self) -> dict:
        return {'shutter': self.shutter, 'gain': self.gain, 'last_error': self.last_error}


class ExposureController:
    """
    Closed-loop shutter/gain controller for a single camera.

    Every changed value is pushed synchronously to the actuator. If the push
    raises DeviceError the controller keeps its last-known-good value and the
    error propagates to the caller.
    """

    def __init__(self, actuator: CameraActuator, limits: ActuatorLimits, camera: str = "default"):
        limits.validate()
        self.actuator = actuator
        self.limits = limits
        self.camera = camera
        self.lock = threading.Lock()
        self._state = ControllerState(shutter=limits.min_shutter, gain=limits.min_gain)

    @property
    def state(self) -> ControllerState:
        with self.lock:
            return replace(self._state)

    def initialize(self, shutter: Optional[float] = None, gain: Optional[float] = None) -> None:
        """
        Push starting values to the camera.

        Defaults to the darkest setting (minimum shutter and gain). Explicit
        values, e.g. restored from a previous run, are saturated to the limits.
        """
        shutter = self.limits.min_shutter if shutter is None else shutter
        gain = self.limits.min_gain if gain is None else gain

        with self.lock:
            self._push_shutter(shutter)
            self._push_gain(gain)
            self._state.last_error = 0.0
            state = replace(self._state)

        logger.info(f"Camera parameters initialized: shutter={state.shutter:.3f}, "
                    f"gain={state.gain:.1f}")

    def step(self, msv: float, reference: float, tolerance: float,
             k_shutter: float, k_gain: float) -> ControlAction:
        """
        Run one control step for a measured MSV.

        Args:
            msv: Mean sample value of the current frame
            reference: Target MSV
            tolerance: Dead-band half width
            k_shutter: Proportional constant for shutter updates
            k_gain: Proportional constant for gain updates

        Returns:
            ControlAction: Which actuator moved, if any
        """
        error = reference - msv
        limits = self.limits

        with self.lock:
            self._state.last_error = error

            if error > tolerance:
                if abs(limits.max_shutter - self._state.shutter) < limits.epsilon_shutter:
                    self._push_gain(self._state.gain * (1 + k_gain * error))
                    return ControlAction.GAIN_UP
                self._push_shutter(self._state.shutter * (1 + k_shutter * error))
                return ControlAction.SHUTTER_UP

            if error < -tolerance:
                if abs(limits.min_gain - self._state.gain) < limits.epsilon_gain:
                    self._push_shutter(self._state.shutter * (1 + k_shutter * error))
                    return ControlAction.SHUTTER_DOWN
                self._push_gain(self._state.gain * (1 + k_gain * error))
                return ControlAction.GAIN_DOWN

        return ControlAction.NONE

    def _push_shutter(self, value: float) -> None:
        value = saturate(value, self.limits.min_shutter, self.limits.max_shutter)
        self.actuator.set_shutter(value)
        self._state.shutter = value
        shutter_gauge.labels(camera=self.camera).set(value)

    def _push_gain(self, value: float) -> None:
        value = saturate(value, self.limits.min_gain, self.limits.max_gain)
        self.actuator.set_gain(value)
        self._state.gain = value
        gain_gauge.labels(camera=self.camera).set(value)
