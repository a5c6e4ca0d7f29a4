"""
Configuration Surface

Runtime tunables (ROI, reference brightness, gains, toggles) live in an
immutable AutoBalanceConfig snapshot. Reconfiguration builds a new snapshot
and swaps the reference under a lock, so the frame path always sees a
complete record.

Startup parameters (actuator limits, serial number) are read once from a
JSON file and are not hot-reloadable.
"""

import copy
import json
import logging
import math
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError

from .controller import ActuatorLimits
from .errors import InvalidConfiguration
from .histogram import DEFAULT_DECIMATION_STRIDE, Region

logger = logging.getLogger(__name__)


class ReconfigureRequest(BaseModel):
    """Record pushed by the runtime configuration channel"""
    roi_x_top_left: int = 0
    roi_y_top_left: int = 0
    roi_x_bottom_right: int = 640
    roi_y_bottom_right: int = 480
    msv_gray_reference: float = 128.0
    msv_error_tolerance: float = 3.0
    k_shutter: float = 0.005
    k_gain: float = 0.01
    calibration_step: int = 3
    show_roi_and_hist: bool = False


@dataclass(frozen=True)
class AutoBalanceConfig:
    roi_x_top_left: int
    roi_y_top_left: int
    roi_x_bottom_right: int
    roi_y_bottom_right: int
    msv_gray_reference: float
    msv_error_tolerance: float
    k_shutter: float
    k_gain: float
    calibration_step: int
    show_roi_and_hist: bool

    @property
    def roi(self) -> Region:
        return Region.from_corners(
            self.roi_x_top_left, self.roi_y_top_left,
            self.roi_x_bottom_right, self.roi_y_bottom_right,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['roi'] = self.roi.to_dict()
        return data


def normalize_corners(x_top_left: int, y_top_left: int,
                      x_bottom_right: int, y_bottom_right: int) -> Tuple[int, int, int, int]:
    """Force the bottom-right corner at least one pixel past the top-left"""
    if x_bottom_right - x_top_left <= 0:
        x_bottom_right = x_top_left + 1
        logger.info(f"ROI bottom right X can't be less than top left X. "
                    f"Setting bottom right X to {x_bottom_right}")
    if y_bottom_right - y_top_left <= 0:
        y_bottom_right = y_top_left + 1
        logger.info(f"ROI bottom right Y can't be less than top left Y. "
                    f"Setting bottom right Y to {y_bottom_right}")
    return x_top_left, y_top_left, x_bottom_right, y_bottom_right


def build_config(request: ReconfigureRequest) -> AutoBalanceConfig:
    """
    Validate and normalize a reconfiguration request

    Raises:
        InvalidConfiguration: If any field is out of range
    """
    if request.roi_x_top_left < 0 or request.roi_y_top_left < 0:
        raise InvalidConfiguration("ROI top left corner must be non-negative")

    for name in ('msv_gray_reference', 'msv_error_tolerance', 'k_shutter', 'k_gain'):
        if not math.isfinite(getattr(request, name)):
            raise InvalidConfiguration(f"'{name}' must be finite")

    if not 0 < request.msv_gray_reference <= 256:
        raise InvalidConfiguration("'msv_gray_reference' must be in (0, 256]")
    if request.msv_error_tolerance < 0:
        raise InvalidConfiguration("'msv_error_tolerance' must be non-negative")
    if request.k_shutter < 0 or request.k_gain < 0:
        raise InvalidConfiguration("'k_shutter' and 'k_gain' must be non-negative")
    if request.calibration_step < 1:
        raise InvalidConfiguration("'calibration_step' must be >= 1")

    x0, y0, x1, y1 = normalize_corners(
        request.roi_x_top_left, request.roi_y_top_left,
        request.roi_x_bottom_right, request.roi_y_bottom_right,
    )

    return AutoBalanceConfig(
        roi_x_top_left=x0,
        roi_y_top_left=y0,
        roi_x_bottom_right=x1,
        roi_y_bottom_right=y1,
        msv_gray_reference=request.msv_gray_reference,
        msv_error_tolerance=request.msv_error_tolerance,
        k_shutter=request.k_shutter,
        k_gain=request.k_gain,
        calibration_step=request.calibration_step,
        show_roi_and_hist=request.show_roi_and_hist,
    )


class ConfigurationSurface:
    """Holds the current configuration snapshot and applies updates atomically"""

    def __init__(self, initial: Optional[AutoBalanceConfig] = None):
        self.lock = threading.Lock()
        self._config = initial if initial is not None else build_config(ReconfigureRequest())
        self.revision = 0

    def snapshot(self) -> AutoBalanceConfig:
        with self.lock:
            return self._config

    def apply(self, request: ReconfigureRequest) -> AutoBalanceConfig:
        """
        Replace the whole configuration.

        Raises:
            InvalidConfiguration: The update is rejected and the prior
                configuration stays in place
        """
        try:
            config = build_config(request)
        except InvalidConfiguration as e:
            logger.warning(f"Rejected reconfigure request: {e}")
            raise

        with self.lock:
            self._config = config
            self.revision += 1

        logger.info("Camera autobalance reconfigure request received.")
        return config

    def update(self, /, **fields) -> AutoBalanceConfig:
        """Merge a partial update onto the current snapshot and apply it"""
        current = asdict(self.snapshot())
        unknown = set(fields) - set(current)
        if unknown:
            raise InvalidConfiguration(f"Unknown configuration fields: {sorted(unknown)}")

        current.update(fields)
        try:
            request = ReconfigureRequest(**current)
        except ValidationError as e:
            raise InvalidConfiguration(str(e)) from e
        return self.apply(request)


# ============================================================================
# Startup parameters
# ============================================================================

DEFAULT_STARTUP: Dict[str, Any] = {
    "camera": {
        "serial_number": None,
        "device": None,
    },
    "limits": {
        "min_shutter": 0.1,
        "max_shutter": 30.0,
        "min_gain": 1.0,
        "max_gain": 16.0,
    },
    "calibration_step": 3,
    "decimation_stride": DEFAULT_DECIMATION_STRIDE,
    "runtime": ReconfigureRequest().model_dump(exclude={'calibration_step'}),
}


@dataclass(frozen=True)
class StartupParameters:
    limits: ActuatorLimits
    calibration_step: int
    camera_serial_number: Optional[str]
    device: Optional[str]
    decimation_stride: int
    initial_config: AutoBalanceConfig


def parse_startup_parameters(data: Dict[str, Any]) -> StartupParameters:
    """
    Merge raw startup data with defaults and validate it

    Raises:
        InvalidConfiguration: If any field has an invalid type or value
    """
    if not isinstance(data, dict):
        raise InvalidConfiguration("Startup parameters must be a JSON object")

    merged = copy.deepcopy(DEFAULT_STARTUP)
    for key, value in data.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key].update(value)
        else:
            merged[key] = value

    for section in ('camera', 'limits', 'runtime'):
        if not isinstance(merged[section], dict):
            raise InvalidConfiguration(f"'{section}' must be an object")

    limits_data = merged['limits']
    for name in ('min_shutter', 'max_shutter', 'min_gain', 'max_gain'):
        if not isinstance(limits_data.get(name), (int, float)) or isinstance(limits_data.get(name), bool):
            raise InvalidConfiguration(f"'limits.{name}' must be numeric")

    step = merged['calibration_step']
    if not isinstance(step, int) or isinstance(step, bool) or step < 1:
        raise InvalidConfiguration("'calibration_step' must be a positive integer")

    stride = merged['decimation_stride']
    if not isinstance(stride, int) or isinstance(stride, bool) or stride < 1:
        raise InvalidConfiguration("'decimation_stride' must be a positive integer")

    limits = ActuatorLimits(
        min_shutter=float(limits_data['min_shutter']),
        max_shutter=float(limits_data['max_shutter']),
        min_gain=float(limits_data['min_gain']),
        max_gain=float(limits_data['max_gain']),
    )
    limits.validate()

    runtime = dict(merged['runtime'])
    runtime['calibration_step'] = step
    try:
        initial_config = build_config(ReconfigureRequest(**runtime))
    except ValidationError as e:
        raise InvalidConfiguration(f"Invalid 'runtime' section: {e}") from e

    serial = merged['camera'].get('serial_number')
    return StartupParameters(
        limits=limits,
        calibration_step=step,
        camera_serial_number=str(serial) if serial is not None else None,
        device=merged['camera'].get('device'),
        decimation_stride=stride,
        initial_config=initial_config,
    )


def load_startup_parameters(path: Optional[Union[str, Path]] = None) -> StartupParameters:
    """
    Load startup parameters from a JSON file

    Args:
        path: Config file. Defaults are used when None

    Raises:
        InvalidConfiguration: If the file is missing, malformed or invalid
    """
    if path is None:
        logger.info("No startup config given, using defaults")
        return parse_startup_parameters({})

    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise InvalidConfiguration(f"Startup config not found: {path}")
    except json.JSONDecodeError as e:
        raise InvalidConfiguration(f"Invalid JSON in startup config {path}: {e}")

    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Startup config {path} must be a JSON object")

    params = parse_startup_parameters(data)
    logger.info(f"Loaded startup parameters from {path}")
    return params
