"""Environment detection and device selection for embeddy.

Provides GPU capability detection, platform awareness, and parsing of
device selectors used when loading models.

Example:
    >>> from embeddy.environment import parse_device, check_device_available
    >>> device = parse_device("cuda")  # "cuda:0"
    >>> check_device_available(device)  # raises DeviceUnavailableError
"""

from .lib import (
    EnvironmentReport,
    GPUCapabilities,
    PlatformInfo,
    check_device_available,
    check_environment,
    detect_gpu_capabilities,
    detect_platform,
    parse_device,
)

__all__ = [
    "GPUCapabilities",
    "PlatformInfo",
    "EnvironmentReport",
    "detect_gpu_capabilities",
    "detect_platform",
    "parse_device",
    "check_device_available",
    "check_environment",
]
