"""
Camera Auto-Balance - Closed-loop auto exposure

Keeps the brightness of a camera's region of interest at a reference value
by adjusting shutter and gain from a decimated luminance histogram.

Architecture:
- histogram: Decimated BGR luminance histogram over an ROI
- metric: Mean sample value (MSV) brightness metric
- controller: Shutter/gain state machine with saturation and priority rule
- scheduler: Frame gating, control pipeline and periodic status logging
- config: Runtime configuration snapshots and startup parameters
- actuator: Camera device interface, V4L2 implementation, circuit breaker
- diagnostics: ROI overlay and histogram plot rendering
- worker / service / api: Capture thread, service wiring, HTTP channel

Version: 1.0.0
"""

__version__ = "1.0.0"

from .actuator import CameraActuator, GuardedActuator, V4L2Actuator
from .config import (
    AutoBalanceConfig,
    ConfigurationSurface,
    ReconfigureRequest,
    StartupParameters,
    load_startup_parameters,
)
from .controller import ActuatorLimits, ControlAction, ControllerState, ExposureController, saturate
from .errors import (
    AutoBalanceError,
    DeviceError,
    EmptySample,
    FrameDecodeError,
    InvalidConfiguration,
    InvalidRegion,
)
from .histogram import Region, compute_histogram
from .metric import mean_sample_value
from .scheduler import FrameResult, FrameScheduler
from .service import AutoBalanceService

__all__ = [
    "ActuatorLimits",
    "AutoBalanceConfig",
    "AutoBalanceError",
    "AutoBalanceService",
    "CameraActuator",
    "ConfigurationSurface",
    "ControlAction",
    "ControllerState",
    "DeviceError",
    "EmptySample",
    "ExposureController",
    "FrameDecodeError",
    "FrameResult",
    "FrameScheduler",
    "GuardedActuator",
    "InvalidConfiguration",
    "InvalidRegion",
    "ReconfigureRequest",
    "Region",
    "StartupParameters",
    "V4L2Actuator",
    "compute_histogram",
    "load_startup_parameters",
    "mean_sample_value",
    "saturate",
]
