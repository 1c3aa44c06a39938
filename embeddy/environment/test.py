"""Tests for environment detection module."""

from unittest.mock import MagicMock, patch

import pytest

from embeddy.core.errors import DeviceUnavailableError, InvalidInputError

from .lib import (
    GPUCapabilities,
    check_device_available,
    check_environment,
    detect_gpu_capabilities,
    detect_platform,
    parse_device,
)


class TestParseDevice:
    """Tests for device selector parsing."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("cpu", "cpu"),
            ("CPU", "cpu"),
            ("cuda", "cuda:0"),
            ("cuda:1", "cuda:1"),
            (" cuda:03 ", "cuda:3"),
            ("mps", "mps"),
        ],
    )
    def test_valid_selectors(self, raw, expected):
        assert parse_device(raw) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["gpu", "cuda:", "cuda:x", "tpu:0", ""])
    def test_invalid_selectors(self, raw):
        with pytest.raises(InvalidInputError, match="Unknown device"):
            parse_device(raw)


class TestCheckDeviceAvailable:
    """Tests for device availability checks."""

    @pytest.mark.unit
    def test_cpu_always_available(self):
        check_device_available("cpu", GPUCapabilities())

    @pytest.mark.unit
    def test_cuda_without_cuda(self):
        caps = GPUCapabilities(torch_available=True)
        with pytest.raises(DeviceUnavailableError, match="CUDA not available"):
            check_device_available("cuda:0", caps)

    @pytest.mark.unit
    def test_cuda_index_out_of_range(self):
        caps = GPUCapabilities(
            torch_available=True, torch_cuda_available=True, torch_cuda_devices=1
        )
        check_device_available("cuda:0", caps)
        with pytest.raises(DeviceUnavailableError, match="only 1 device"):
            check_device_available("cuda:1", caps)

    @pytest.mark.unit
    def test_mps(self):
        with pytest.raises(DeviceUnavailableError):
            check_device_available("mps", GPUCapabilities(torch_available=True))
        check_device_available(
            "mps", GPUCapabilities(torch_available=True, torch_mps_available=True)
        )


class TestGPUDetection:
    """Tests for GPU/CUDA detection."""

    @pytest.mark.unit
    def test_detect_torch_cuda_unavailable(self):
        """When torch has no CUDA, torch_cuda_available should be False."""
        mock_torch = MagicMock()
        mock_torch.cuda.is_available.return_value = False
        mock_torch.backends.mps.is_available.return_value = False

        with patch.dict("sys.modules", {"torch": mock_torch}):
            caps = detect_gpu_capabilities()
            assert caps.torch_available is True
            assert caps.torch_cuda_available is False
            assert caps.summary == "PyTorch CPU only"

    @pytest.mark.unit
    def test_detect_torch_cuda_available(self):
        """When torch has CUDA, the device count is recorded."""
        mock_torch = MagicMock()
        mock_torch.cuda.is_available.return_value = True
        mock_torch.cuda.device_count.return_value = 2
        mock_torch.backends.mps.is_available.return_value = False

        with patch.dict("sys.modules", {"torch": mock_torch}):
            caps = detect_gpu_capabilities()
            assert caps.torch_cuda_available is True
            assert caps.torch_cuda_devices == 2
            assert caps.has_gpu is True

    @pytest.mark.unit
    def test_torch_missing(self):
        """A missing torch install reports no capabilities."""
        with patch.dict("sys.modules", {"torch": None}):
            caps = detect_gpu_capabilities()
            assert caps.torch_available is False
            assert caps.summary == "PyTorch not installed"


class TestPlatformDetection:
    """Tests for platform-specific detection."""

    @pytest.mark.unit
    def test_detect_linux_platform(self):
        with patch("sys.platform", "linux"):
            info = detect_platform()
            assert info.is_linux is True
            assert info.summary == "Linux"

    @pytest.mark.unit
    def test_detect_windows_platform(self):
        with patch("sys.platform", "win32"):
            info = detect_platform()
            assert info.is_windows is True
            assert info.summary == "Windows"


class TestCheckEnvironment:
    """Tests for the full environment report."""

    @pytest.mark.unit
    def test_report_flags_bad_default_device(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EMBEDDY_DATA_DIR", str(tmp_path))
        report = check_environment(default_device="tpu")

        assert report.data_dir == tmp_path
        assert any("Default device unusable" in w for w in report.warnings)

    @pytest.mark.unit
    def test_print_report(self, capsys, monkeypatch, tmp_path):
        monkeypatch.setenv("EMBEDDY_DATA_DIR", str(tmp_path))
        check_environment(default_device="cpu").print_report()

        out = capsys.readouterr().out
        assert "Environment Report" in out
        assert "Platform:" in out
        assert "GPU:" in out
