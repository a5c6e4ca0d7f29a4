"""
Error types for the camera auto-balance controller.

Per-frame errors (FrameDecodeError, EmptySample) are local: the frame is
skipped and the actuator state is left unchanged. DeviceError is the only
class that should reach an operator.
"""


class AutoBalanceError(Exception):
    """Base class for all auto-balance errors"""


class FrameDecodeError(AutoBalanceError):
    """Incoming frame could not be interpreted as a BGR image"""


class EmptySample(AutoBalanceError):
    """Histogram holds no samples, so no brightness can be measured"""


class InvalidRegion(AutoBalanceError):
    """Region of interest does not fit inside the image"""


class DeviceError(AutoBalanceError):
    """Camera actuator failed to connect or to apply a parameter"""


class InvalidConfiguration(AutoBalanceError):
    """Configuration update or startup parameters were rejected"""
