"""Environment detection implementation.

Detects accelerator capabilities and platform details, and parses the
device selectors accepted by the CLI and server ("cpu", "cuda", "cuda:N",
"mps").
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

from embeddy.core.errors import DeviceUnavailableError, InvalidInputError

logger = logging.getLogger(__name__)

_CUDA_PATTERN = re.compile(r"^cuda(?::(\d+))?$")


@dataclass(frozen=True)
class GPUCapabilities:
    """Accelerator capability detection results.

    Attributes:
        torch_available: Whether PyTorch is importable.
        torch_cuda_available: Whether PyTorch CUDA is available.
        torch_cuda_devices: Number of CUDA devices detected by PyTorch.
        torch_mps_available: Whether the Apple MPS backend is available.
    """

    torch_available: bool = False
    torch_cuda_available: bool = False
    torch_cuda_devices: int = 0
    torch_mps_available: bool = False

    @property
    def has_gpu(self) -> bool:
        """True if any GPU acceleration is available."""
        return self.torch_cuda_available or self.torch_mps_available

    @property
    def summary(self) -> str:
        """Human-readable summary of GPU capabilities."""
        if not self.torch_available:
            return "PyTorch not installed"
        parts = []
        if self.torch_cuda_available:
            parts.append(f"PyTorch CUDA ({self.torch_cuda_devices} GPU)")
        if self.torch_mps_available:
            parts.append("PyTorch MPS")
        return ", ".join(parts) if parts else "PyTorch CPU only"


@dataclass(frozen=True)
class PlatformInfo:
    """Platform detection results."""

    platform: str
    is_windows: bool = False
    is_linux: bool = False
    is_macos: bool = False

    @property
    def summary(self) -> str:
        """Human-readable platform summary."""
        if self.is_windows:
            return "Windows"
        if self.is_linux:
            return "Linux"
        if self.is_macos:
            return "macOS"
        return self.platform


@dataclass
class EnvironmentReport:
    """Complete environment report.

    Attributes:
        gpu: GPU capability detection results.
        platform: Platform detection results.
        data_dir: Resolved base data directory.
        default_device: Configured default device.
        warnings: List of warning messages for the user.
    """

    gpu: GPUCapabilities
    platform: PlatformInfo
    data_dir: Path
    default_device: str
    warnings: list[str] = field(default_factory=list)

    def print_report(self) -> None:
        """Print formatted report to stdout."""
        print("=" * 60)
        print("Environment Report")
        print("=" * 60)
        print()
        print(f"Platform: {self.platform.summary}")
        print(f"GPU: {self.gpu.summary}")
        print(f"Data dir: {self.data_dir}")
        print(f"Default device: {self.default_device}")
        print()

        if self.warnings:
            print("Warnings:")
            for w in self.warnings:
                print(f"  ! {w}")
            print()


def detect_gpu_capabilities() -> GPUCapabilities:
    """Detect CUDA and MPS capabilities via PyTorch.

    Safe to call even if PyTorch is not installed.
    """
    torch_available = False
    torch_cuda_available = False
    torch_cuda_devices = 0
    torch_mps_available = False

    try:
        import torch

        torch_available = True
        torch_cuda_available = bool(torch.cuda.is_available())
        if torch_cuda_available:
            torch_cuda_devices = int(torch.cuda.device_count())
        mps = getattr(torch.backends, "mps", None)
        torch_mps_available = bool(mps is not None and mps.is_available())
    except ImportError:
        pass
    except Exception as e:
        logger.debug(f"PyTorch detection error: {e}")

    return GPUCapabilities(
        torch_available=torch_available,
        torch_cuda_available=torch_cuda_available,
        torch_cuda_devices=torch_cuda_devices,
        torch_mps_available=torch_mps_available,
    )


def detect_platform() -> PlatformInfo:
    """Detect current platform."""
    platform = sys.platform
    return PlatformInfo(
        platform=platform,
        is_windows=platform == "win32",
        is_linux=platform.startswith("linux"),
        is_macos=platform == "darwin",
    )


def parse_device(device: str) -> str:
    """Normalize a device selector.

    Args:
        device: "cpu", "cuda", "cuda:N", or "mps" (case-insensitive).

    Returns:
        Canonical selector; bare "cuda" becomes "cuda:0".

    Raises:
        InvalidInputError: If the selector is not recognized.
    """
    value = device.strip().lower()
    if value in ("cpu", "mps"):
        return value
    match = _CUDA_PATTERN.match(value)
    if match:
        return f"cuda:{int(match.group(1) or 0)}"
    raise InvalidInputError(f"Unknown device: {device}")


def check_device_available(
    device: str,
    capabilities: GPUCapabilities | None = None,
) -> None:
    """Verify that a canonical device selector can be initialized.

    Args:
        device: Canonical selector from parse_device().
        capabilities: Pre-computed capabilities (detected when omitted).

    Raises:
        DeviceUnavailableError: If the device is not present.
    """
    if device == "cpu":
        return

    caps = capabilities or detect_gpu_capabilities()
    if device == "mps":
        if not caps.torch_mps_available:
            raise DeviceUnavailableError("MPS device requested but not available")
        return

    index = int(device.split(":", 1)[1])
    if not caps.torch_cuda_available:
        raise DeviceUnavailableError(
            f"Failed to initialize CUDA device {index}: CUDA not available"
        )
    if index >= caps.torch_cuda_devices:
        raise DeviceUnavailableError(
            f"Failed to initialize CUDA device {index}: "
            f"only {caps.torch_cuda_devices} device(s) present"
        )


def check_environment(
    default_device: str | None = None,
    data_dir: Path | str | None = None,
) -> EnvironmentReport:
    """Collect platform, GPU, and storage details into a report.

    Args:
        default_device: Device to validate (reads EMBEDDY_DEVICE when omitted).
        data_dir: Data directory override.
    """
    from embeddy.config import EnvVar, get_data_dir, get_environment

    device = default_device or get_environment(EnvVar.EMBEDDY_DEVICE)
    gpu = detect_gpu_capabilities()
    platform = detect_platform()
    warnings: list[str] = []

    if not gpu.torch_available:
        warnings.append(
            "PyTorch not installed. Install with: pip install sentence-transformers"
        )
    elif not gpu.has_gpu:
        warnings.append("No GPU detected. Inference will use CPU (slower).")

    try:
        check_device_available(parse_device(device), gpu)
    except (InvalidInputError, DeviceUnavailableError) as e:
        warnings.append(f"Default device unusable: {e}")

    return EnvironmentReport(
        gpu=gpu,
        platform=platform,
        data_dir=get_data_dir(data_dir),
        default_device=device,
        warnings=warnings,
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
